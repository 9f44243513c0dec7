"""Per-channel audio playback."""

from .device import CommandPlaybackDevice, PlaybackDevice, PlaybackEvent, PlaybackListener
from .models import AudioRequest, ChannelState, audio_data_uri, decode_data_uri
from .sequencer import AudioChannel, AudioChannelSequencer

__all__ = [
    "AudioChannel",
    "AudioChannelSequencer",
    "AudioRequest",
    "ChannelState",
    "CommandPlaybackDevice",
    "PlaybackDevice",
    "PlaybackEvent",
    "PlaybackListener",
    "audio_data_uri",
    "decode_data_uri",
]
