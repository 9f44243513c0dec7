"""Configuration management for the streamcue service using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .actions.models import AudioConfig
from .audio.device import CommandPlaybackDevice


class AudioSettings(BaseModel):
    """Audio channel playback configuration."""

    tick_interval: float = Field(default=0.25, gt=0.0, le=5.0, description="Channel tick interval in seconds")
    player_command: list[str] = Field(
        default_factory=lambda: list(CommandPlaybackDevice.DEFAULT_COMMAND),
        description="Player argv; {path} and {volume} (0-100) are substituted",
    )
    default_volume: float = Field(default=1.0, ge=0.0, le=1.0, description="Volume for synthesized speech")


class SpeechSettings(BaseModel):
    """Speech pipeline and phrasing configuration."""

    tick_interval: float = Field(default=0.25, gt=0.0, le=5.0, description="Drain tick interval in seconds")
    max_pending_ticks: int = Field(default=10, ge=1, le=1000, description="Drain ticks before a request times out")
    speech_channel: int = Field(default=-1, description="Audio channel reserved for speech")
    speaker_timeout_ms: int = Field(default=5000, ge=0, description="How long a speaker stays current")
    said_template: str = Field(default="%userName said: %userInput")
    skip_said: bool = Field(default=False, description="Never prefix chat speech with the speaker's name")
    secret_prefixes: list[str] = Field(
        default_factory=lambda: ["|"], description="Input starting with these is not spoken"
    )
    empty_message_sound: AudioConfig | None = Field(default=None, description="Played instead of empty input")
    dictionary: dict[str, str] = Field(default_factory=dict, description="Word substitutions applied before speaking")
    skip_dictionary_for_announcements: bool = True
    wrap_ssml: bool = Field(default=False, description="Wrap phrases in <speak> tags")
    speaking_rate_override: float | None = Field(default=None, ge=0.25, le=4.0)


class GoogleSettings(BaseModel):
    """Google Cloud Text-to-Speech configuration."""

    api_key: str = Field(default="", description="API key for texttospeech.googleapis.com")
    base_url: str = Field(default="https://texttospeech.googleapis.com/v1beta1")
    default_voice: str = Field(default="", description="Voice used when randomization is off")
    randomize_voice: bool = False
    randomize_voice_language_filter: str = Field(default="en-", description="Language prefix for random voices")
    timeout: float = Field(default=10.0, ge=1.0, le=120.0, description="Request timeout in seconds")


class FeedSettings(BaseModel):
    """Trigger feed WebSocket configuration."""

    url: str = Field(default="", description="Trigger feed WebSocket URL, empty disables the feed")
    command_prefix: str = Field(default="!")
    reconnect_delay_base: float = Field(default=1.0, ge=0.1, le=60.0)
    reconnect_delay_cap: float = Field(default=60.0, ge=1.0, le=600.0)
    max_reconnect_attempts: int = Field(default=0, ge=0, description="Maximum reconnection attempts (0 = infinite)")


class HealthSettings(BaseModel):
    """Health monitoring configuration."""

    port: int = Field(default=8895, ge=1024, le=65535, description="Health check endpoint port")
    host: str = Field(default="127.0.0.1", description="Health check endpoint host")


class StorageSettings(BaseModel):
    settings_dir: Path | None = Field(
        default=None, description="Directory for persisted settings, unset keeps them in memory"
    )


class StreamCueConfig(BaseSettings):
    """Main streamcue service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMCUE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = Field(default="streamcue", description="Service name for logging and monitoring")
    chatbot_name: str = Field(default="streamcue", description="Default speaker for announcements")
    channel_name: str = Field(default="", description="Broadcaster login for system-run commands")

    audio: AudioSettings = Field(default_factory=AudioSettings)
    speech: SpeechSettings = Field(default_factory=SpeechSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    events_file: Path | None = Field(default=None, description="JSON file mapping trigger keys to actions")
    reward_ids: dict[str, str] = Field(default_factory=dict, description="Trigger key to reward id")
    webhook_urls: dict[str, str] = Field(default_factory=dict, description="Trigger key to webhook URL")
    light_ids: list[int] = Field(default_factory=list)
    screenshot_sound: AudioConfig | None = None

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Logging level")
    json_logs: bool = Field(default=True, description="Enable JSON structured logging")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    def validate_config(self) -> None:
        """Validate configuration and fail fast on errors."""
        errors = []

        if not self.google.api_key:
            errors.append("Google TTS API key is not set (STREAMCUE_GOOGLE__API_KEY)")
        if not self.google.base_url.startswith(("http://", "https://")):
            errors.append(f"Invalid Google TTS base URL: {self.google.base_url}")
        if self.feed.url and not self.feed.url.startswith(("ws://", "wss://")):
            errors.append(f"Invalid trigger feed URL: {self.feed.url}")
        if self.events_file is not None and not self.events_file.is_file():
            errors.append(f"Events file not found: {self.events_file}")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for logging."""
        return {
            "service_name": self.service_name,
            "audio": {"tick_interval": f"{self.audio.tick_interval}s", "player": self.audio.player_command[0]},
            "speech": {
                "channel": self.speech.speech_channel,
                "max_pending_ticks": self.speech.max_pending_ticks,
                "dictionary_entries": len(self.speech.dictionary),
            },
            "google": {"base_url": self.google.base_url, "api_key_set": bool(self.google.api_key)},
            "feed": {"url": self.feed.url or None},
            "health": {"endpoint": f"http://{self.health.host}:{self.health.port}/health"},
            "storage": {"settings_dir": str(self.storage.settings_dir) if self.storage.settings_dir else None},
            "events_file": str(self.events_file) if self.events_file else None,
            "logging": {"level": self.log_level, "json": self.json_logs},
        }


_config: StreamCueConfig | None = None


def get_config() -> StreamCueConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = StreamCueConfig()
        _config.validate_config()
    return _config
