"""Speech synthesis: request types, voices and the ordered synthesis pipeline."""

from .models import (
    CatalogVoice,
    SlotState,
    SpeechKind,
    SpeechRequest,
    SpeechSlot,
    SpeechSynthesizer,
    UserVoice,
    VoiceParams,
)

__all__ = [
    "CatalogVoice",
    "SlotState",
    "SpeechKind",
    "SpeechRequest",
    "SpeechSlot",
    "SpeechSynthesizer",
    "UserVoice",
    "VoiceParams",
]
