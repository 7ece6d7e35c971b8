"""
Text delivery for voxpaste.

Puts transcribed text into the currently focused window, either by pasting
from the clipboard (Ctrl+V) or by typing it out. Supports X11 (xdotool) and
Wayland (ydotool). If the automated paste fails the text stays on the
clipboard so the user can paste it by hand.
"""

import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import pyperclip

from voxpaste.logger import get_logger

logger = get_logger(__name__)

FALLBACK_MESSAGE = "Could not paste automatically. The text is on the clipboard."
NO_CLIPBOARD_MESSAGE = "Could not paste automatically and the clipboard is unavailable."


class InjectorError(Exception):
    """Exception raised for text injection errors."""
    pass


class DisplayServer(Enum):
    """Display server type."""
    X11 = "x11"
    WAYLAND = "wayland"
    UNKNOWN = "unknown"


def detect_display_server() -> DisplayServer:
    """Detect which display server is running."""
    xdg_session = os.environ.get("XDG_SESSION_TYPE", "").lower()
    if xdg_session == "wayland":
        return DisplayServer.WAYLAND
    elif xdg_session == "x11":
        return DisplayServer.X11

    # Fallback: check for WAYLAND_DISPLAY
    if os.environ.get("WAYLAND_DISPLAY"):
        return DisplayServer.WAYLAND

    # Fallback: check for DISPLAY (X11)
    if os.environ.get("DISPLAY"):
        return DisplayServer.X11

    return DisplayServer.UNKNOWN


def detect_tool(display_server: DisplayServer) -> Optional[str]:
    """Pick xdotool or ydotool, or None when neither is installed."""
    # For X11, prefer xdotool
    if display_server == DisplayServer.X11 and shutil.which("xdotool"):
        return "xdotool"

    # For Wayland or as fallback, try ydotool
    if shutil.which("ydotool"):
        return "ydotool"

    # Final fallback to xdotool (might work via XWayland)
    if shutil.which("xdotool"):
        return "xdotool"

    return None


@dataclass
class TextInjector:
    """
    Delivers text into the currently focused window.

    Usage:
        injector = TextInjector(paste_method="clipboard")
        injector.deliver("Hello, world!")
    """

    paste_method: str = "clipboard"  # clipboard | type
    restore_clipboard: bool = True
    delay_ms: int = 0  # Delay between keystrokes when typing (0 = fast)
    restore_delay: float = 0.15
    on_fallback: Optional[Callable[[str, str], None]] = None  # (message, text)

    _display_server: DisplayServer = field(default=DisplayServer.UNKNOWN, init=False)
    _tool: Optional[str] = field(default=None, init=False)

    def __post_init__(self):
        """Detect the display server and available tools."""
        self._display_server = detect_display_server()
        self._tool = detect_tool(self._display_server)

    def _run(self, cmd: list[str]) -> None:
        tool = cmd[0]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=30,
            )
        except subprocess.TimeoutExpired:
            raise InjectorError(f"{tool} timed out")
        except FileNotFoundError:
            raise InjectorError(f"{tool} not found")

        if result.returncode != 0:
            stderr = result.stderr.lower()
            if tool == "ydotool" and ("uinput" in stderr or "permission" in stderr):
                raise InjectorError(
                    "ydotool cannot access /dev/uinput. Fix with:\n"
                    "  sudo usermod -aG input $USER\n"
                    "Then log out and back in."
                )
            if tool == "ydotool" and "ydotoold" in stderr:
                raise InjectorError(
                    "ydotoold daemon not running. Start with:\n"
                    "  sudo systemctl enable ydotool --now"
                )
            raise InjectorError(f"{tool} failed: {result.stderr.strip()}")

    def _require_tool(self) -> str:
        if self._tool is None:
            raise InjectorError(
                "No text injection tool found. Please install xdotool (for X11) "
                "or ydotool (for Wayland)."
            )
        return self._tool

    def type_text(self, text: str) -> None:
        """
        Type text into the currently focused window.

        Raises:
            InjectorError: If typing fails
        """
        if not text:
            return

        tool = self._require_tool()
        # Small delay to ensure focus is ready
        time.sleep(0.05)

        if tool == "xdotool":
            cmd = ["xdotool", "type", "--clearmodifiers"]
            if self.delay_ms > 0:
                cmd.extend(["--delay", str(self.delay_ms)])
            cmd.extend(["--", text])
        else:
            cmd = ["ydotool", "type"]
            if self.delay_ms > 0:
                cmd.append(f"--key-delay={self.delay_ms}")
            cmd.extend(["--", text])
        self._run(cmd)

    def press_paste(self) -> None:
        """
        Send Ctrl+V to the focused window.

        Raises:
            InjectorError: If the key press fails
        """
        tool = self._require_tool()
        time.sleep(0.05)
        if tool == "xdotool":
            self._run(["xdotool", "key", "--clearmodifiers", "ctrl+v"])
        else:
            # KEY_LEFTCTRL=29, KEY_V=47
            self._run(["ydotool", "key", "29:1", "47:1", "47:0", "29:0"])

    def deliver(self, text: str) -> bool:
        """
        Put ``text`` into the focused window.

        The text is copied to the clipboard first. When the automated paste
        fails it is left there and ``on_fallback`` is told about it. If the
        clipboard cannot be written, the text is typed instead of pasted.

        Returns:
            True if the text was pasted/typed, False otherwise
        """
        if not text:
            return False

        previous: Optional[str] = None
        try:
            previous = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            logger.warning("Could not read clipboard: %s", e)

        copied = True
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            logger.warning("Clipboard unavailable, typing instead: %s", e)
            copied = False

        method = self.paste_method if copied else "type"
        try:
            if method == "type":
                self.type_text(text)
            else:
                self.press_paste()
        except InjectorError as e:
            logger.error("Automatic paste failed: %s", e)
            if self.on_fallback:
                message = FALLBACK_MESSAGE if copied else NO_CLIPBOARD_MESSAGE
                self.on_fallback(message, text)
            return False

        logger.info("Delivered %d chars via %s", len(text), method)
        if copied and self.restore_clipboard and previous is not None:
            # Give the target app time to read the clipboard before restoring
            time.sleep(self.restore_delay)
            try:
                pyperclip.copy(previous)
            except pyperclip.PyperclipException as e:
                logger.debug("Could not restore clipboard: %s", e)
        return True

    @property
    def display_server(self) -> DisplayServer:
        """Get the detected display server."""
        return self._display_server

    @property
    def tool_name(self) -> Optional[str]:
        """Get the name of the tool being used."""
        return self._tool
