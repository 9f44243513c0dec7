"""Ordered speech synthesis.

Synthesis calls run concurrently and finish in any order, but their audio
reaches the sequencer in submission order. Every submission gets a serial and
a slot in the outstanding-request table; a drain tick looks only at the lowest
outstanding serial and either waits on it, drops it, or forwards its audio to
the speech channel.
"""

import heapq
import time
from collections.abc import Callable, Sequence
from typing import Any

from ..audio.models import AudioRequest, audio_data_uri
from ..audio.sequencer import AudioChannelSequencer
from ..completion import CompletionRegistry, CompletionStatus
from ..domains.phrasing import PhrasingOptions, phrase, prosody_for, should_name_speaker
from ..errors import SpeechTimeoutError, SynthesisError
from ..logger import get_logger
from ..settings_store import TTS_SUPPRESSED_USERS, SettingsStore
from ..task_tracker import TaskTracker
from ..ticker import Ticker
from .models import SlotState, SpeechKind, SpeechRequest, SpeechSlot, SpeechSynthesizer, UserVoice
from .voices import VoiceLibrary

logger = get_logger(__name__)

VOICE_CHANGED_TEXT = "now sounds like this"
VOICE_UNCHANGED_TEXT = "still sounds like this"


class SpeechSynthesisPipeline:
    """Serial-numbered outstanding-request table drained in ascending serial order."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        sequencer: AudioChannelSequencer,
        completions: CompletionRegistry,
        store: SettingsStore,
        voices: VoiceLibrary,
        tracker: TaskTracker,
        *,
        options: PhrasingOptions | None = None,
        speech_channel: int = -1,
        max_pending_ticks: int = 10,
        tick_interval: float = 0.25,
        secret_prefixes: Sequence[str] = (),
        empty_message_sound: AudioRequest | None = None,
        volume: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._synthesizer = synthesizer
        self._sequencer = sequencer
        self._completions = completions
        self._store = store
        self._voices = voices
        self._tracker = tracker
        self.options = options or PhrasingOptions()
        self.speech_channel = speech_channel
        self.max_pending_ticks = max_pending_ticks
        self.tick_interval = tick_interval
        self.secret_prefixes = tuple(p for p in secret_prefixes if p)
        self.empty_message_sound = empty_message_sound
        self.volume = volume
        self._clock = clock

        self._serial = 0
        self._slots: dict[int, SpeechSlot] = {}
        # Min-heap of serials; entries whose slot is gone are skipped lazily
        self._heap: list[int] = []
        self._last_speaker = ""
        self._last_enqueued: float | None = None
        self._ticker: Ticker | None = None

        self.forwarded_count = 0
        self.failed_count = 0
        self.timed_out_count = 0

    @property
    def outstanding(self) -> int:
        return len(self._slots)

    def slot(self, serial: int) -> SpeechSlot | None:
        return self._slots.get(serial)

    def submit(self, request: SpeechRequest) -> int:
        """Assign the next serial, open a pending slot and start synthesis. Returns the serial."""
        slot = self._open_slot(request)
        serial = slot.serial

        if not request.text or not request.text.strip():
            self._resolve_empty(slot)
            return serial
        if self.secret_prefixes and request.text.startswith(self.secret_prefixes):
            self._drop(slot, "secret")
            return serial

        self._tracker.create_task(self._synthesize(slot), name=f"speech:{serial}")
        return serial

    def submit_sound_effect(self, audio: AudioRequest | None) -> int | None:
        """Queue ready audio in serial order so it plays in line with speech."""
        if audio is None:
            return None
        slot = self._open_slot(None)
        slot.resolve(audio.on_channel(self.speech_channel))
        return slot.serial

    def stop_speaking(self, clear_queue: bool = False) -> None:
        self._sequencer.stop(self.speech_channel, clear_queue)

    async def set_voice_for_user(self, user_name: str, text: str, token: str = "") -> UserVoice:
        """Change a user's voice from free text and let them hear the result."""
        user_name = user_name.lower()
        voice, changed = await self._voices.set_voice_for_user(user_name, text)
        self.submit(
            SpeechRequest(
                text=VOICE_CHANGED_TEXT if changed else VOICE_UNCHANGED_TEXT,
                speaker=user_name,
                kind=SpeechKind.ACTION,
                token=token,
            )
        )
        return voice

    async def set_suppressed(self, user_name: str, active: bool = True) -> bool:
        return await self._store.push(
            TTS_SUPPRESSED_USERS, "user_name", {"user_name": user_name.lower(), "active": active}
        )

    async def is_suppressed(self, user_name: str) -> bool:
        record = await self._store.pull(TTS_SUPPRESSED_USERS, "user_name", user_name.lower())
        return bool(record and record.get("active"))

    def tick(self) -> None:
        """Drain step: act on the lowest outstanding serial only."""
        while self._heap and self._heap[0] not in self._slots:
            heapq.heappop(self._heap)
        if not self._heap:
            return

        serial = self._heap[0]
        slot = self._slots[serial]

        if slot.state is SlotState.PENDING:
            slot.pending_ticks += 1
            if slot.pending_ticks > self.max_pending_ticks:
                self._time_out(slot)
            return

        self._remove(serial)
        if slot.state is SlotState.RESOLVED and slot.audio is not None:
            self.forwarded_count += 1
            logger.debug("Speech forwarded", serial=serial, channel=self.speech_channel, token=slot.audio.token or None)
            self._sequencer.enqueue(self.speech_channel, slot.audio)
        else:
            logger.warning("Speech request failed", serial=serial, error=slot.error)

    def start(self) -> None:
        if self._ticker is None:
            self._ticker = Ticker("speech", self.tick_interval, self.tick, self._tracker)
        self._ticker.start()

    async def stop(self) -> None:
        if self._ticker is not None:
            await self._ticker.stop()

    def snapshot(self) -> dict[str, Any]:
        head = min(self._slots) if self._slots else None
        return {
            "outstanding": len(self._slots),
            "head_serial": head,
            "last_serial": self._serial,
            "forwarded": self.forwarded_count,
            "failed": self.failed_count,
            "timed_out": self.timed_out_count,
        }

    def _open_slot(self, request: SpeechRequest | None) -> SpeechSlot:
        self._serial += 1
        serial = self._serial
        if request is not None:
            request.serial = serial
        slot = SpeechSlot(serial=serial, request=request)
        self._slots[serial] = slot
        heapq.heappush(self._heap, serial)
        return slot

    def _remove(self, serial: int) -> None:
        self._slots.pop(serial, None)

    def _drop(self, slot: SpeechSlot, reason: str) -> None:
        self._remove(slot.serial)
        logger.debug("Speech request dropped", serial=slot.serial, reason=reason)

    def _resolve_empty(self, slot: SpeechSlot) -> None:
        if self.empty_message_sound is None:
            self._drop(slot, "empty")
            return
        token = slot.request.token if slot.request else ""
        slot.resolve(self.empty_message_sound.with_token(token).on_channel(self.speech_channel))

    def _fail(self, slot: SpeechSlot, error: str) -> None:
        if slot.state is not SlotState.PENDING:
            return
        slot.fail(error)
        self.failed_count += 1
        self._last_speaker = ""
        if slot.request is not None:
            self._completions.fire(slot.request.token, CompletionStatus.ERROR)

    def _time_out(self, slot: SpeechSlot) -> None:
        slot.state = SlotState.TIMED_OUT
        self._remove(slot.serial)
        self.timed_out_count += 1
        error = SpeechTimeoutError(slot.serial, slot.pending_ticks)
        logger.warning("Speech request timed out", serial=slot.serial, ticks=slot.pending_ticks, error=str(error))
        if slot.request is not None:
            self._completions.fire(slot.request.token, CompletionStatus.ERROR)

    async def _synthesize(self, slot: SpeechSlot) -> None:
        request = slot.request
        speaker = request.speaker.lower()
        try:
            if speaker and await self.is_suppressed(speaker):
                self._drop(slot, "suppressed")
                return

            elapsed_ms = float("inf") if self._last_enqueued is None else (self._clock() - self._last_enqueued) * 1000
            name_speaker = should_name_speaker(
                self._last_speaker, speaker, elapsed_ms, self.options.speaker_timeout_ms, self.options.skip_said
            )
            text = phrase(
                request.kind,
                request.text,
                speaker,
                self.options,
                bits=request.bits,
                name_speaker=name_speaker,
                skip_dictionary=request.skip_dictionary,
                clear_ranges=request.meta.get("clear_ranges", ()),
            )
            if not text:
                self._resolve_empty(slot)
                return

            voice = await self._voices.voice_for(speaker)
            rate, pitch = prosody_for(text, self.options.speaking_rate_override)
            self._last_speaker = speaker
            audio = await self._synthesizer.synthesize(text, VoiceLibrary.params_for(voice, rate, pitch))
            if not audio:
                raise SynthesisError("Synthesizer returned no audio")
        except SynthesisError as e:
            logger.warning("Speech synthesis failed", serial=slot.serial, speaker=speaker, error=str(e))
            self._fail(slot, str(e))
            return
        except Exception as e:
            logger.error("Speech request crashed", serial=slot.serial, speaker=speaker, error=str(e), exc_info=e)
            self._fail(slot, str(e))
            return

        if slot.state is not SlotState.PENDING:
            logger.info("Speech resolved after its slot was closed", serial=slot.serial, state=slot.state.value)
            return

        self._last_enqueued = self._clock()
        logger.debug("Speech synthesized", serial=slot.serial, speaker=speaker, bytes=len(audio))
        slot.resolve(
            AudioRequest(
                sources=[audio_data_uri(audio)],
                token=request.token,
                channel=self.speech_channel,
                volume=self.volume,
                label=f"speech:{slot.serial}",
            )
        )
