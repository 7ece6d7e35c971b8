"""
Tests for configuration loading, saving and provider selection.
"""

import pytest
import yaml

from voxpaste.config import (
    ApiConfig,
    Config,
    NotConfiguredError,
    ProviderConfig,
    ProviderKind,
)


class TestConfigFile:

    def test_load_creates_default_file(self, tmp_path):
        path = tmp_path / "voxpaste" / "config.yaml"

        config = Config.load(path)

        assert path.exists()
        assert config.api.provider == "openai"
        assert config.api.language == "ru"
        assert config.retry.max_attempts == 3
        assert config.retry.initial_backoff_ms == 1000

    def test_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        monkeypatch.setenv("VOXPASTE_CONFIG", str(path))
        assert Config.get_config_path() == path

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        config = Config()
        config.api.provider = "google"
        config.api.google_api_key = "AIza-test"
        config.retry.max_attempts = 5
        config.output.paste_method = "type"
        config.save(path)

        loaded = Config.load(path)

        assert loaded.api.provider == "google"
        assert loaded.api.google_api_key == "AIza-test"
        assert loaded.retry.max_attempts == 5
        assert loaded.output.paste_method == "type"

    def test_partial_file_gets_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"api": {"provider": "groq", "groq_api_key": "gsk-1"}}))

        config = Config.load(path)

        assert config.api.groq_api_key == "gsk-1"
        assert config.api.openai_api_key == ""
        assert config.audio.sample_rate == 16000
        assert config.output.restore_clipboard is True

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.load(path).api.provider == "openai"


class TestProviderSelection:

    @pytest.mark.parametrize("provider, field, kind", [
        ("openai", "openai_api_key", ProviderKind.OPENAI),
        ("groq", "groq_api_key", ProviderKind.GROQ),
        ("google", "google_api_key", ProviderKind.GOOGLE),
    ])
    def test_selected_key_is_used(self, provider, field, kind):
        api = ApiConfig(provider=provider, language="en")
        setattr(api, field, "  secret  ")

        selected = Config(api=api).provider_config()

        assert selected == ProviderConfig(kind=kind, api_key="secret", language="en")

    def test_provider_name_is_case_insensitive(self):
        config = Config(api=ApiConfig(provider=" OpenAI ", openai_api_key="sk"))
        assert config.provider_kind is ProviderKind.OPENAI

    def test_missing_key_is_not_configured(self):
        config = Config(api=ApiConfig(provider="groq", openai_api_key="sk"))
        with pytest.raises(NotConfiguredError, match="Groq API key is not set"):
            config.provider_config()

    def test_empty_language_means_auto(self):
        config = Config(api=ApiConfig(openai_api_key="sk", language=""))
        assert config.provider_config().language is None

    def test_unknown_provider(self):
        config = Config(api=ApiConfig(provider="whisper.cpp"))
        with pytest.raises(ValueError):
            config.provider_kind

    def test_provider_config_is_immutable(self):
        selected = ProviderConfig(ProviderKind.OPENAI, "sk")
        with pytest.raises(AttributeError):
            selected.api_key = "other"


class TestValidate:

    def test_valid(self, config):
        assert config.validate() == []
        assert config.is_valid() is True

    def test_reports_missing_key(self, unconfigured):
        errors = unconfigured.validate()
        assert len(errors) == 1
        assert "Google API key is not set" in errors[0]

    def test_reports_bad_values(self, config):
        config.audio.sample_rate = 12345
        config.retry.max_attempts = 0
        config.output.paste_method = "telepathy"
        config.api.provider = "nope"

        errors = config.validate()

        assert "Invalid sample_rate: 12345" in errors
        assert "Invalid max_attempts: 0" in errors
        assert "Invalid paste_method: telepathy" in errors
        assert "Unknown provider: nope" in errors
