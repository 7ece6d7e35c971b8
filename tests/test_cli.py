"""
Tests for the voxpaste command line.
"""

from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from conftest import ScriptedClient
from voxpaste.cli import main
from voxpaste.config import ApiConfig, Config
from voxpaste.transcription import FatalProviderError


@pytest.fixture(autouse=True)
def no_log_files():
    with patch("voxpaste.cli.setup_logging"):
        yield


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    monkeypatch.setenv("VOXPASTE_CONFIG", str(path))
    return path


@pytest.fixture
def configured(config_path):
    Config(api=ApiConfig(provider="openai", openai_api_key="sk-test-key-1234")).save(config_path)
    return config_path


@pytest.fixture
def audio_file(tmp_path, capture):
    path = tmp_path / "note.wav"
    path.write_bytes(capture.data)
    return path


class TestSetupAndStatus:

    def test_setup_saves_key(self, config_path):
        result = CliRunner().invoke(
            main, ["setup", "--provider", "groq", "--api-key", "gsk-abc", "--language", "en"],
        )

        assert result.exit_code == 0, result.output
        data = yaml.safe_load(config_path.read_text())
        assert data["api"]["provider"] == "groq"
        assert data["api"]["groq_api_key"] == "gsk-abc"
        assert data["api"]["language"] == "en"

    def test_status_masks_key(self, configured):
        result = CliRunner().invoke(main, ["status"])

        assert result.exit_code == 0
        assert "sk-test-...1234" in result.output
        assert "sk-test-key-1234" not in result.output
        assert "Ready to use" in result.output

    def test_status_reports_missing_key(self, config_path):
        result = CliRunner().invoke(main, ["status"])

        assert "API Key: Not set" in result.output
        assert "OpenAI API key is not set" in result.output

    def test_status_reports_injection_tool(self, configured, monkeypatch):
        monkeypatch.setenv("XDG_SESSION_TYPE", "x11")
        with patch("voxpaste.injector.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
            result = CliRunner().invoke(main, ["status"])

        assert "Paste method: clipboard via xdotool (x11)" in result.output

    def test_status_warns_without_injection_tool(self, configured):
        with patch("voxpaste.injector.shutil.which", return_value=None):
            result = CliRunner().invoke(main, ["status"])

        assert "no tool found" in result.output


class TestTranscribe:

    def test_prints_text(self, configured, audio_file):
        with patch("voxpaste.session.create_client", return_value=ScriptedClient("hello world")):
            result = CliRunner().invoke(main, ["transcribe", str(audio_file)])

        assert result.exit_code == 0, result.output
        assert "hello world" in result.output
        assert audio_file.exists()

    def test_failure_exits_nonzero(self, configured, audio_file):
        client = ScriptedClient(FatalProviderError("fake: Invalid API key", 401))
        with patch("voxpaste.session.create_client", return_value=client):
            result = CliRunner().invoke(main, ["transcribe", str(audio_file)])

        assert result.exit_code == 1
        assert "Invalid API key (401)" in result.output

    def test_not_configured(self, config_path, audio_file):
        factory = MagicMock()
        with patch("voxpaste.session.create_client", factory):
            result = CliRunner().invoke(main, ["transcribe", str(audio_file)])

        assert result.exit_code == 1
        assert "configuration issues" in result.output
        factory.assert_not_called()


class TestDictate:

    @pytest.fixture
    def devices(self, capture):
        recorder = MagicMock()
        recorder.stop.return_value = capture
        recorder.elapsed = 2.5
        injector = MagicMock()
        with patch("voxpaste.daemon.AudioRecorder", return_value=recorder), \
                patch("voxpaste.daemon.TextInjector", return_value=injector):
            yield recorder, injector

    def test_records_and_pastes(self, configured, devices):
        recorder, injector = devices
        with patch("voxpaste.session.create_client", return_value=ScriptedClient("dictated")):
            result = CliRunner().invoke(main, ["dictate"], input="\n\n")

        assert result.exit_code == 0, result.output
        recorder.start.assert_called_once()
        injector.deliver.assert_called_once_with("dictated")
        assert "dictated" in result.output
        assert "Recorded 2.5s" in result.output

    def test_microphone_error(self, configured, devices):
        from voxpaste.audio import DeviceError

        recorder, injector = devices
        recorder.start.side_effect = DeviceError("Microphone unavailable: busy")
        result = CliRunner().invoke(main, ["dictate"], input="\n\n")

        assert result.exit_code == 1
        assert "Microphone unavailable" in result.output
        injector.deliver.assert_not_called()
