"""Exception taxonomy for streamcue."""


class StreamCueError(Exception):
    """Base class for all streamcue errors."""

    pass


class ConfigurationError(StreamCueError):
    """A trigger references an external id or setting that does not exist."""

    pass


class SynthesisError(StreamCueError):
    """A speech synthesis call failed on the network or returned no audio."""

    pass


class SpeechTimeoutError(StreamCueError):
    """A speech request stayed pending past the drain retry bound."""

    def __init__(self, serial: int, ticks: int):
        super().__init__(f"Speech request {serial} still pending after {ticks} ticks")
        self.serial = serial
        self.ticks = ticks


class PlaybackError(StreamCueError):
    """The playback device could not load or play a source."""

    pass
