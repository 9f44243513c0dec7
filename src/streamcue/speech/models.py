"""Speech request, slot and voice types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ..audio.models import AudioRequest


class SpeechKind(Enum):
    """How an utterance is phrased around the speaker's name."""

    SAID = "said"  # "<name> said: <text>"
    ACTION = "action"  # "<name> <text>"
    ANNOUNCEMENT = "announcement"  # "<text>"
    CHEER = "cheer"  # "<name> cheered N bits: <text>"


class SlotState(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class SpeechRequest:
    """One phrase to speak. ``serial`` is assigned by the pipeline on submit."""

    text: str
    speaker: str = ""
    kind: SpeechKind = SpeechKind.SAID
    token: str = ""
    meta: dict[str, Any] = field(default_factory=dict)
    skip_dictionary: bool = False
    serial: int = 0

    @property
    def bits(self) -> int:
        return int(self.meta.get("bits", 0) or 0)


@dataclass
class SpeechSlot:
    """Outstanding-request table entry, keyed by serial."""

    serial: int
    request: SpeechRequest | None
    state: SlotState = SlotState.PENDING
    audio: AudioRequest | None = None
    pending_ticks: int = 0
    error: str | None = None

    def resolve(self, audio: AudioRequest) -> None:
        if self.state is SlotState.PENDING:
            self.state = SlotState.RESOLVED
            self.audio = audio

    def fail(self, error: str) -> None:
        if self.state is SlotState.PENDING:
            self.state = SlotState.FAILED
            self.error = error


@dataclass
class UserVoice:
    """Per-user voice preference as persisted in ``tts_user_voices``."""

    user_name: str
    language_code: str = "en-US"
    voice_name: str = ""
    gender: str = "FEMALE"

    def to_record(self) -> dict[str, Any]:
        return {
            "user_name": self.user_name,
            "language_code": self.language_code,
            "voice_name": self.voice_name,
            "gender": self.gender,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "UserVoice":
        return cls(
            user_name=str(record.get("user_name", "")),
            language_code=str(record.get("language_code") or "en-US"),
            voice_name=str(record.get("voice_name") or ""),
            gender=str(record.get("gender") or "FEMALE"),
        )


@dataclass(frozen=True)
class CatalogVoice:
    """A voice offered by the synthesis backend."""

    name: str
    language_codes: tuple[str, ...]
    ssml_gender: str = "FEMALE"


@dataclass(frozen=True)
class VoiceParams:
    """Everything the synthesizer needs besides the text."""

    language_code: str
    voice_name: str = ""
    gender: str = "FEMALE"
    speaking_rate: float = 1.0
    pitch: float = 0.0


class SpeechSynthesizer(Protocol):
    """Turns text (SSML allowed) into encoded audio bytes. Raises on failure."""

    async def synthesize(self, text: str, voice: VoiceParams) -> bytes: ...

    async def list_voices(self) -> list[CatalogVoice]: ...
