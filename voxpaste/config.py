"""
Configuration management for voxpaste.

Handles loading, saving, and validating configuration from
~/.config/voxpaste/config.yaml (override with VOXPASTE_CONFIG).
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml


# Default config directory
CONFIG_DIR = Path.home() / ".config" / "voxpaste"
CONFIG_FILE = CONFIG_DIR / "config.yaml"


class NotConfiguredError(Exception):
    """Raised when the selected provider has no API key."""
    pass


class ProviderKind(Enum):
    """Speech-to-text providers."""
    OPENAI = "openai"
    GROQ = "groq"
    GOOGLE = "google"

    @property
    def display_name(self) -> str:
        return {"openai": "OpenAI", "groq": "Groq", "google": "Google"}[self.value]


@dataclass(frozen=True)
class ProviderConfig:
    """Read-only provider selection handed to a transcription client."""
    kind: ProviderKind
    api_key: str
    language: Optional[str] = None


@dataclass
class AudioConfig:
    """Audio recording settings."""
    sample_rate: int = 16000  # 16kHz for Whisper
    channels: int = 1  # Mono
    device: Optional[str] = None  # Default audio device


@dataclass
class ApiConfig:
    """Provider selection and credentials."""
    provider: str = "openai"
    openai_api_key: str = ""
    groq_api_key: str = ""
    google_api_key: str = ""
    language: str = "ru"

    def key_for(self, kind: ProviderKind) -> str:
        return {
            ProviderKind.OPENAI: self.openai_api_key,
            ProviderKind.GROQ: self.groq_api_key,
            ProviderKind.GOOGLE: self.google_api_key,
        }[kind]


@dataclass
class RetryConfig:
    """Retry settings for transcription requests."""
    max_attempts: int = 3
    initial_backoff_ms: int = 1000


@dataclass
class OutputConfig:
    """How transcribed text reaches the focused window."""
    paste_method: str = "clipboard"  # clipboard | type
    restore_clipboard: bool = True


@dataclass
class Config:
    """Main configuration for voxpaste."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def get_config_path(cls) -> Path:
        """Return the path to the config file."""
        override = os.environ.get("VOXPASTE_CONFIG")
        if override:
            return Path(override).expanduser()
        return CONFIG_FILE

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from file.
        Creates default config if file doesn't exist.
        """
        path = path or cls.get_config_path()
        if not path.exists():
            config = cls()
            config.save(path)
            return config

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary."""
        audio_data = data.get("audio") or {}
        api_data = data.get("api") or {}
        retry_data = data.get("retry") or {}
        output_data = data.get("output") or {}

        return cls(
            audio=AudioConfig(
                sample_rate=audio_data.get("sample_rate", 16000),
                channels=audio_data.get("channels", 1),
                device=audio_data.get("device"),
            ),
            api=ApiConfig(
                provider=api_data.get("provider", "openai"),
                openai_api_key=api_data.get("openai_api_key") or "",
                groq_api_key=api_data.get("groq_api_key") or "",
                google_api_key=api_data.get("google_api_key") or "",
                language=api_data.get("language", "ru"),
            ),
            retry=RetryConfig(
                max_attempts=retry_data.get("max_attempts", 3),
                initial_backoff_ms=retry_data.get("initial_backoff_ms", 1000),
            ),
            output=OutputConfig(
                paste_method=output_data.get("paste_method", "clipboard"),
                restore_clipboard=output_data.get("restore_clipboard", True),
            ),
        )

    def to_dict(self) -> dict:
        return {
            "audio": {
                "sample_rate": self.audio.sample_rate,
                "channels": self.audio.channels,
                "device": self.audio.device,
            },
            "api": {
                "provider": self.api.provider,
                "openai_api_key": self.api.openai_api_key,
                "groq_api_key": self.api.groq_api_key,
                "google_api_key": self.api.google_api_key,
                "language": self.api.language,
            },
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "initial_backoff_ms": self.retry.initial_backoff_ms,
            },
            "output": {
                "paste_method": self.output.paste_method,
                "restore_clipboard": self.output.restore_clipboard,
            },
        }

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        path = path or self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @property
    def provider_kind(self) -> ProviderKind:
        """
        The selected provider.

        Raises:
            ValueError: If the configured provider name is unknown.
        """
        return ProviderKind(self.api.provider.strip().lower())

    def provider_config(self) -> ProviderConfig:
        """
        Build the provider selection for a transcription client.

        Raises:
            NotConfiguredError: If the selected provider has no API key.
        """
        kind = self.provider_kind
        api_key = self.api.key_for(kind).strip()
        if not api_key:
            raise NotConfiguredError(f"{kind.display_name} API key is not set")
        return ProviderConfig(
            kind=kind,
            api_key=api_key,
            language=self.api.language or None,
        )

    def validate(self) -> list[str]:
        """
        Validate the configuration.
        Returns a list of error messages (empty if valid).
        """
        errors = []

        # Validate audio settings
        if self.audio.sample_rate not in [8000, 16000, 22050, 44100, 48000]:
            errors.append(f"Invalid sample_rate: {self.audio.sample_rate}")
        if self.audio.channels not in [1, 2]:
            errors.append(f"Invalid channels: {self.audio.channels}")

        # Validate API settings
        try:
            kind = self.provider_kind
        except ValueError:
            errors.append(f"Unknown provider: {self.api.provider}")
        else:
            if not self.api.key_for(kind).strip():
                errors.append(
                    f"{kind.display_name} API key is not set. "
                    "Run 'voxpaste setup' to configure."
                )

        # Validate retry and output settings
        if self.retry.max_attempts < 1:
            errors.append(f"Invalid max_attempts: {self.retry.max_attempts}")
        if self.retry.initial_backoff_ms < 0:
            errors.append(f"Invalid initial_backoff_ms: {self.retry.initial_backoff_ms}")
        if self.output.paste_method not in ["clipboard", "type"]:
            errors.append(f"Invalid paste_method: {self.output.paste_method}")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0
