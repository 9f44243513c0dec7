"""Runtime audio request types."""

import base64
import random
from dataclasses import dataclass, field, replace
from enum import Enum


class ChannelState(Enum):
    """Playback state of one channel."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"


@dataclass
class AudioRequest:
    """One item for a channel queue.

    ``sources`` holds one or more candidate references (file paths, URLs or
    ``data:`` URIs); one is picked at random when the item starts playing.
    """

    sources: list[str]
    token: str = ""
    channel: int = 0
    volume: float = 1.0
    repeat: int | None = None
    label: str = field(default="", compare=False)

    def __post_init__(self):
        if isinstance(self.sources, str):
            self.sources = [self.sources]

    def choose_source(self, rng: random.Random | None = None) -> str | None:
        if not self.sources:
            return None
        if len(self.sources) == 1:
            return self.sources[0]
        return (rng or random).choice(self.sources)

    def with_token(self, token: str) -> "AudioRequest":
        return replace(self, sources=list(self.sources), token=token)

    def on_channel(self, channel: int) -> "AudioRequest":
        return replace(self, sources=list(self.sources), channel=channel)


def audio_data_uri(audio: bytes, mime_type: str = "audio/ogg") -> str:
    """Wrap synthesized audio bytes as a data URI source reference."""
    return f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime type, payload bytes)."""
    header, _, payload = uri.partition(",")
    if not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Only base64 data URIs are supported")
    mime_type = header[len("data:") : -len(";base64")] or "application/octet-stream"
    return mime_type, base64.b64decode(payload)
