"""Per-channel FIFO audio playback driven by fixed-interval ticks.

Each channel owns one PlaybackDevice, one queue and one ticker. A tick starts
the next queued item only when the channel is idle, so exactly one item plays
per channel at any instant while separate channels play concurrently.
"""

import random
from collections import deque
from collections.abc import Callable
from typing import Any

from ..completion import CompletionRegistry, CompletionStatus
from ..logger import get_logger
from ..task_tracker import TaskTracker
from ..ticker import Ticker
from .device import PlaybackDevice, PlaybackEvent
from .models import AudioRequest, ChannelState

logger = get_logger(__name__)

DeviceFactory = Callable[[int], PlaybackDevice]


class AudioChannel:
    """Queue, device and state machine for a single channel id."""

    def __init__(
        self,
        channel_id: int,
        device: PlaybackDevice,
        completions: CompletionRegistry,
        rng: random.Random | None = None,
    ):
        self.channel_id = channel_id
        self.device = device
        self.queue: deque[AudioRequest] = deque()
        self.state = ChannelState.IDLE
        self.current: AudioRequest | None = None
        self._completions = completions
        self._rng = rng or random.Random()
        # Bumped on every load and stop so late events from a discarded load are ignored
        self._load_id = 0

        self.played_count = 0
        self.error_count = 0

    def enqueue(self, request: AudioRequest) -> None:
        copies = request.repeat if request.repeat is not None else 1
        for _ in range(max(copies, 0)):
            self.queue.append(request)
        logger.debug(
            "Audio enqueued",
            channel=self.channel_id,
            token=request.token or None,
            copies=copies,
            queue_depth=len(self.queue),
        )

    def tick(self) -> None:
        if self.state is not ChannelState.IDLE or not self.queue:
            return

        request = self.queue.popleft()
        source = request.choose_source(self._rng)
        if source is None:
            logger.warning("Dequeued audio without a source", channel=self.channel_id, token=request.token or None)
            self.error_count += 1
            self._completions.fire(request.token, CompletionStatus.ERROR)
            return

        self._load_id += 1
        load_id = self._load_id
        self.current = request
        self.state = ChannelState.LOADING

        def on_event(event: PlaybackEvent, detail: str | None = None) -> None:
            if load_id != self._load_id:
                return
            self._on_device_event(event, detail)

        try:
            self.device.load(source, request.volume, on_event)
        except Exception as e:
            self._on_device_event(PlaybackEvent.ERROR, str(e))

    def stop(self, clear_queue: bool = False) -> None:
        self._load_id += 1
        try:
            self.device.stop()
        except Exception as e:
            logger.warning("Device stop failed", channel=self.channel_id, error=str(e))
        discarded = self.current
        self.current = None
        self.state = ChannelState.IDLE
        if clear_queue:
            self.queue.clear()
        logger.info(
            "Audio channel stopped",
            channel=self.channel_id,
            discarded_token=discarded.token if discarded else None,
            cleared=clear_queue,
        )

    def _on_device_event(self, event: PlaybackEvent, detail: str | None) -> None:
        if event is PlaybackEvent.STARTED:
            if self.state is ChannelState.LOADING:
                self.state = ChannelState.PLAYING
            return

        finished = self.current
        self._load_id += 1
        self.current = None
        self.state = ChannelState.IDLE

        if event is PlaybackEvent.ENDED:
            self.played_count += 1
            status = CompletionStatus.OK
        else:
            self.error_count += 1
            status = CompletionStatus.ERROR
            logger.warning(
                "Audio playback failed",
                channel=self.channel_id,
                token=finished.token if finished else None,
                error=detail,
            )

        if finished is not None and finished.token:
            self._completions.fire(finished.token, status)

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "queue_depth": len(self.queue),
            "current_token": self.current.token if self.current else None,
            "played": self.played_count,
            "errors": self.error_count,
        }


class AudioChannelSequencer:
    """Owns every audio channel and its tick loop."""

    def __init__(
        self,
        device_factory: DeviceFactory,
        completions: CompletionRegistry,
        tracker: TaskTracker,
        tick_interval: float = 0.25,
        rng: random.Random | None = None,
    ):
        self._device_factory = device_factory
        self._completions = completions
        self._tracker = tracker
        self.tick_interval = tick_interval
        self._rng = rng or random.Random()
        self._channels: dict[int, AudioChannel] = {}
        self._tickers: dict[int, Ticker] = {}
        self._running = False

    def channel(self, channel_id: int) -> AudioChannel:
        """Return the channel, creating its queue, device and ticker on first use."""
        channel = self._channels.get(channel_id)
        if channel is None:
            channel = AudioChannel(channel_id, self._device_factory(channel_id), self._completions, self._rng)
            self._channels[channel_id] = channel
            logger.info("Audio channel created", channel=channel_id)
            if self._running:
                self._start_ticker(channel)
        return channel

    @property
    def channels(self) -> dict[int, AudioChannel]:
        return dict(self._channels)

    def enqueue(self, channel_id: int, request: AudioRequest) -> None:
        self.channel(channel_id).enqueue(request)

    def play(self, request: AudioRequest | None) -> None:
        """Enqueue on the channel the request itself names."""
        if request is not None:
            self.enqueue(request.channel, request)

    def stop(self, channel_id: int, clear_queue: bool = False) -> None:
        channel = self._channels.get(channel_id)
        if channel is not None:
            channel.stop(clear_queue)

    def tick(self, channel_id: int | None = None) -> None:
        """Run one tick for a channel, or for every channel when no id is given."""
        if channel_id is not None:
            channel = self._channels.get(channel_id)
            if channel is not None:
                channel.tick()
            return
        for channel in list(self._channels.values()):
            channel.tick()

    def start(self) -> None:
        self._running = True
        for channel in self._channels.values():
            self._start_ticker(channel)

    async def stop_all(self) -> None:
        self._running = False
        for channel in self._channels.values():
            channel.stop(clear_queue=True)
        tickers, self._tickers = list(self._tickers.values()), {}
        for ticker in tickers:
            await ticker.stop()

    def snapshot(self) -> dict[str, Any]:
        return {str(channel_id): channel.snapshot() for channel_id, channel in sorted(self._channels.items())}

    def _start_ticker(self, channel: AudioChannel) -> None:
        if channel.channel_id in self._tickers:
            return
        ticker = Ticker(f"audio:{channel.channel_id}", self.tick_interval, channel.tick, self._tracker)
        self._tickers[channel.channel_id] = ticker
        ticker.start()
