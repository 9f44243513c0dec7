"""Trigger and sub-action configuration models."""

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..audio.models import AudioRequest
from ..speech.models import SpeechKind


class ActionKind(str, Enum):
    """Closed list of sub-action kinds, in invocation order."""

    HANDLER = "handler"
    SCENE = "scene"
    LIGHTS = "lights"
    PLUG = "plug"
    SOUND_AND_SPEECH = "sound_and_speech"
    OVERLAY = "overlay"
    SIGN = "sign"
    EXEC = "exec"
    WEB = "web"
    SCREENSHOT = "screenshot"
    WEBHOOK = "webhook"
    AUDIO_URL = "audio_url"
    CHAT = "chat"
    LABEL = "label"
    COMMANDS = "commands"


ACTION_ORDER: tuple[ActionKind, ...] = tuple(ActionKind)


class ActionUser(BaseModel):
    """Identity of whoever fired a trigger. Missing fields default to empty, never None."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    login: str = ""
    name: str = ""
    input: str = ""
    color: str = ""
    is_broadcaster: bool = False
    is_moderator: bool = False
    is_vip: bool = False
    is_subscriber: bool = False
    bits: int = 0
    bits_total: int = 0


class AudioConfig(BaseModel):
    """A sound effect; with several sources one is picked at play time."""

    src: str | list[str]
    channel: int = 0
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    repeat: int | None = Field(default=None, ge=0)

    def to_request(self, token: str = "", sources: list[str] | None = None) -> AudioRequest:
        if sources is None:
            sources = [self.src] if isinstance(self.src, str) else list(self.src)
        return AudioRequest(
            sources=sources,
            token=token,
            channel=self.channel,
            volume=self.volume,
            repeat=self.repeat,
        )


class AudioUrlConfig(BaseModel):
    """Playback settings for audio whose source is the viewer's input."""

    channel: int = 0
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    repeat: int | None = Field(default=None, ge=0)


class SpeechConfig(BaseModel):
    entries: str | list[str]
    voice_of_user: str | None = Field(default=None, description="Speaker template, defaults to the chatbot name")
    type: SpeechKind = SpeechKind.ANNOUNCEMENT


class SceneConfig(BaseModel):
    source_name: str
    scene_names: list[str] = Field(default_factory=list)
    state: bool = True
    duration_ms: int = Field(default=0, ge=0, description="Revert after this long, 0 keeps the new state")


class LightConfig(BaseModel):
    """CIE xy color."""

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)


class PlugConfig(BaseModel):
    id: str
    trigger_state: bool = True
    original_state: bool = False
    duration_s: float = Field(default=0.0, ge=0.0)


class OverlayConfig(BaseModel):
    """An on-screen notification preset."""

    preset: dict[str, Any] = Field(default_factory=dict)
    text_areas: int = Field(default=0, ge=0, description="Text slots the preset has; missing texts get the user's name")
    texts: list[str] | None = None
    image_path: str | None = None
    duration_ms: int = Field(default=5000, ge=0)


class SignConfig(BaseModel):
    title: str = ""
    image: str | None = None
    subtitle: str = ""
    duration_ms: int = Field(default=5000, ge=0)


class ExecConfig(BaseModel):
    uri: str | list[str]


class ScreenshotConfig(BaseModel):
    source_name: str | None = Field(
        default=None, description="Capture a compositor source instead of the default device"
    )
    delay: float = Field(default=0.0, ge=0.0)


class CommandsConfig(BaseModel):
    entries: str | list[str]
    interval: float = Field(default=0.0, ge=0.0, description="Seconds between consecutive commands")


class ActionsConfig(BaseModel):
    """Every sub-action a trigger can carry. Absent kinds are not invoked."""

    handler: str | None = None
    scene: SceneConfig | list[SceneConfig] | None = None
    lights: LightConfig | list[LightConfig] | None = None
    plug: PlugConfig | None = None
    audio: AudioConfig | None = None
    speech: SpeechConfig | None = None
    overlay: OverlayConfig | list[OverlayConfig] | None = None
    sign: SignConfig | None = None
    exec: ExecConfig | None = None
    web: str | None = None
    screenshot: ScreenshotConfig | None = None
    webhook: str | list[str] | None = None
    audio_url: AudioUrlConfig | None = None
    chat: str | list[str] | None = None
    label: str | None = None
    commands: CommandsConfig | None = None


class CommandPermissions(BaseModel):
    """Who besides the broadcaster may run a command."""

    moderators: bool = False
    vips: bool = False
    subscribers: bool = False
    everyone: bool = False

    def allows(self, user: ActionUser) -> bool:
        return (
            user.is_broadcaster
            or self.everyone
            or (self.moderators and user.is_moderator)
            or (self.vips and user.is_vip)
            or (self.subscribers and user.is_subscriber)
        )


class CommandTrigger(BaseModel):
    permissions: CommandPermissions = Field(default_factory=CommandPermissions)
    cooldown: float | None = Field(default=None, ge=0.0, description="Seconds between runs")


class RewardConfig(BaseModel):
    """Reward settings pushed to the reward sink; unknown fields pass through."""

    model_config = ConfigDict(extra="allow")

    title: str
    cost: int = Field(default=1, ge=1)
    prompt: str = ""
    is_enabled: bool = True


class TriggersConfig(BaseModel):
    reward: RewardConfig | list[RewardConfig] | None = None
    command: CommandTrigger | None = None
    cheer: int | None = None


class EventConfig(BaseModel):
    triggers: TriggersConfig = Field(default_factory=TriggersConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)


_events_adapter = TypeAdapter(dict[str, EventConfig])


def parse_events(data: dict[str, Any]) -> dict[str, EventConfig]:
    return _events_adapter.validate_python(data)


def load_events(path: Path | str) -> dict[str, EventConfig]:
    """Load the trigger/action map from a JSON file keyed by trigger key."""
    with open(path, encoding="utf-8") as f:
        return parse_events(json.load(f))
