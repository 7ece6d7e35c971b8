"""
voxpaste - Push-to-talk dictation into the focused window

Records the microphone, transcribes it with OpenAI, Groq or Google Gemini,
and pastes the text into whichever application had focus.
"""

__version__ = "0.1.0"
__app_name__ = "voxpaste"
