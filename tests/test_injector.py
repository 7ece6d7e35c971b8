"""
Tests for display server detection and text delivery.

External tools (xdotool, ydotool) and the clipboard are mocked.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pyperclip
import pytest

from voxpaste.injector import (
    FALLBACK_MESSAGE,
    NO_CLIPBOARD_MESSAGE,
    DisplayServer,
    InjectorError,
    TextInjector,
    detect_display_server,
    detect_tool,
)


def completed(returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)


@pytest.fixture
def x11(monkeypatch):
    monkeypatch.setenv("XDG_SESSION_TYPE", "x11")
    with patch("voxpaste.injector.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
        yield


@pytest.fixture
def clipboard():
    """In-memory clipboard behind pyperclip.copy/paste."""
    state = {"value": "previous"}

    def copy(text):
        state["value"] = text

    with patch("voxpaste.injector.pyperclip.copy", side_effect=copy) as mock_copy, \
            patch("voxpaste.injector.pyperclip.paste", side_effect=lambda: state["value"]):
        yield state, mock_copy


class TestDetection:

    @pytest.mark.parametrize("env, expected", [
        ({"XDG_SESSION_TYPE": "wayland"}, DisplayServer.WAYLAND),
        ({"XDG_SESSION_TYPE": "x11"}, DisplayServer.X11),
        ({"WAYLAND_DISPLAY": "wayland-0"}, DisplayServer.WAYLAND),
        ({"DISPLAY": ":0"}, DisplayServer.X11),
        ({}, DisplayServer.UNKNOWN),
    ])
    def test_detect_display_server(self, monkeypatch, env, expected):
        for name in ("XDG_SESSION_TYPE", "WAYLAND_DISPLAY", "DISPLAY"):
            monkeypatch.delenv(name, raising=False)
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        assert detect_display_server() is expected

    def test_x11_prefers_xdotool(self):
        with patch("voxpaste.injector.shutil.which", return_value="/usr/bin/tool"):
            assert detect_tool(DisplayServer.X11) == "xdotool"

    def test_wayland_uses_ydotool(self):
        with patch("voxpaste.injector.shutil.which", return_value="/usr/bin/tool"):
            assert detect_tool(DisplayServer.WAYLAND) == "ydotool"

    def test_no_tool(self):
        with patch("voxpaste.injector.shutil.which", return_value=None):
            assert detect_tool(DisplayServer.X11) is None


class TestDeliver:

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed())
    def test_clipboard_paste_restores_previous(self, mock_run, mock_sleep, x11, clipboard):
        state, mock_copy = clipboard
        injector = TextInjector(restore_delay=0)

        assert injector.deliver("hello world") is True

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == ["xdotool", "key", "--clearmodifiers", "ctrl+v"]
        assert [c.args[0] for c in mock_copy.call_args_list] == ["hello world", "previous"]
        assert state["value"] == "previous"

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed())
    def test_no_restore_keeps_text(self, mock_run, mock_sleep, x11, clipboard):
        state, _ = clipboard
        TextInjector(restore_clipboard=False).deliver("keep me")
        assert state["value"] == "keep me"

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed())
    def test_type_method(self, mock_run, mock_sleep, x11, clipboard):
        injector = TextInjector(paste_method="type", delay_ms=12)

        injector.deliver("hi")

        assert mock_run.call_args.args[0] == [
            "xdotool", "type", "--clearmodifiers", "--delay", "12", "--", "hi",
        ]

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed(1, "cannot open display"))
    def test_paste_failure_leaves_text_on_clipboard(self, mock_run, mock_sleep, x11, clipboard):
        state, _ = clipboard
        fallback = MagicMock()
        injector = TextInjector(on_fallback=fallback)

        assert injector.deliver("hello") is False

        assert state["value"] == "hello"
        fallback.assert_called_once_with(FALLBACK_MESSAGE, "hello")

    def test_missing_tool_falls_back(self, monkeypatch, clipboard):
        state, _ = clipboard
        fallback = MagicMock()
        with patch("voxpaste.injector.shutil.which", return_value=None):
            injector = TextInjector(on_fallback=fallback)
            assert injector.deliver("hello") is False
        assert state["value"] == "hello"
        fallback.assert_called_once()

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed())
    def test_unreadable_clipboard_still_copies_text(self, mock_run, mock_sleep, x11, clipboard):
        """Pasting must send the transcript, never what the clipboard held before."""
        state, mock_copy = clipboard
        state["value"] = "SECRET-PASSWORD"
        pasted = []
        mock_run.side_effect = lambda cmd, **kwargs: pasted.append(state["value"]) or completed()

        with patch("voxpaste.injector.pyperclip.paste",
                   side_effect=pyperclip.PyperclipException("no clipboard")):
            assert TextInjector().deliver("hello") is True

        mock_copy.assert_called_once_with("hello")
        assert pasted == ["hello"]
        # Nothing known to restore
        assert state["value"] == "hello"

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed())
    def test_unwritable_clipboard_types_instead(self, mock_run, mock_sleep, x11):
        with patch("voxpaste.injector.pyperclip.paste", return_value="old"), \
                patch("voxpaste.injector.pyperclip.copy",
                      side_effect=pyperclip.PyperclipException("no clipboard")) as mock_copy:
            assert TextInjector().deliver("hello") is True

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == ["xdotool", "type", "--clearmodifiers", "--", "hello"]
        mock_copy.assert_called_once_with("hello")

    @patch("voxpaste.injector.time.sleep")
    @patch("voxpaste.injector.subprocess.run", return_value=completed(1, "cannot open display"))
    def test_no_clipboard_and_typing_fails(self, mock_run, mock_sleep, x11):
        fallback = MagicMock()
        with patch("voxpaste.injector.pyperclip.paste", return_value="old"), \
                patch("voxpaste.injector.pyperclip.copy",
                      side_effect=pyperclip.PyperclipException("no clipboard")):
            assert TextInjector(on_fallback=fallback).deliver("hello") is False

        fallback.assert_called_once_with(NO_CLIPBOARD_MESSAGE, "hello")
        assert "ctrl+v" not in mock_run.call_args.args[0]

    def test_empty_text_is_ignored(self, x11, clipboard):
        _, mock_copy = clipboard
        assert TextInjector().deliver("") is False
        mock_copy.assert_not_called()


class TestRunErrors:

    @pytest.fixture
    def injector(self, monkeypatch):
        monkeypatch.setenv("XDG_SESSION_TYPE", "wayland")
        with patch("voxpaste.injector.shutil.which", return_value="/usr/bin/ydotool"):
            return TextInjector()

    @patch("voxpaste.injector.time.sleep")
    def test_ydotool_uinput_permission(self, mock_sleep, injector):
        with patch("voxpaste.injector.subprocess.run",
                   return_value=completed(1, "failed to open /dev/uinput")):
            with pytest.raises(InjectorError, match="usermod"):
                injector.press_paste()

    @patch("voxpaste.injector.time.sleep")
    def test_ydotool_key_codes(self, mock_sleep, injector):
        with patch("voxpaste.injector.subprocess.run", return_value=completed()) as mock_run:
            injector.press_paste()
        assert mock_run.call_args.args[0] == ["ydotool", "key", "29:1", "47:1", "47:0", "29:0"]

    @patch("voxpaste.injector.time.sleep")
    def test_timeout(self, mock_sleep, injector):
        with patch("voxpaste.injector.subprocess.run",
                   side_effect=subprocess.TimeoutExpired("ydotool", 30)):
            with pytest.raises(InjectorError, match="timed out"):
                injector.type_text("hi")
