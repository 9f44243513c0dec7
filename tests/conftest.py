"""Test configuration and shared fixtures for streamcue tests."""

import asyncio
import random

import pytest

from streamcue.actions.composer import ActionComposer, ComposerSettings
from streamcue.actions.models import ActionUser, AudioConfig
from streamcue.actions.sinks import Collaborators
from streamcue.audio.device import PlaybackDevice, PlaybackEvent
from streamcue.audio.models import AudioRequest
from streamcue.audio.sequencer import AudioChannelSequencer
from streamcue.completion import CompletionRegistry
from streamcue.domains.phrasing import PhrasingOptions
from streamcue.settings_store import InMemorySettingsStore
from streamcue.speech.models import CatalogVoice
from streamcue.speech.pipeline import SpeechSynthesisPipeline
from streamcue.speech.voices import VoiceLibrary
from streamcue.task_tracker import TaskTracker

SPEECH_CHANNEL = -1


class FakePlaybackDevice(PlaybackDevice):
    """Records loads; tests emit the device events by hand."""

    def __init__(self, channel_id: int = 0, fail_load: bool = False):
        self.channel_id = channel_id
        self.fail_load = fail_load
        self.loads: list[tuple[str, float]] = []
        self.listeners = []
        self.stop_count = 0

    def load(self, source, volume, on_event):
        if self.fail_load:
            raise OSError("device unavailable")
        self.loads.append((source, volume))
        self.listeners.append(on_event)

    def stop(self):
        self.stop_count += 1

    @property
    def sources(self) -> list[str]:
        return [source for source, _ in self.loads]

    def emit(self, event: PlaybackEvent, detail: str | None = None, load: int = -1):
        self.listeners[load](event, detail)

    def finish(self, load: int = -1):
        self.emit(PlaybackEvent.STARTED, load=load)
        self.emit(PlaybackEvent.ENDED, load=load)


class FakeDevices:
    """Device factory that keeps every device it creates, keyed by channel."""

    def __init__(self):
        self.devices: dict[int, FakePlaybackDevice] = {}

    def __call__(self, channel_id: int) -> FakePlaybackDevice:
        device = FakePlaybackDevice(channel_id)
        self.devices[channel_id] = device
        return device

    def __getitem__(self, channel_id: int) -> FakePlaybackDevice:
        return self.devices[channel_id]


DEFAULT_CATALOG = [
    CatalogVoice("en-US-Wavenet-A", ("en-US",), "FEMALE"),
    CatalogVoice("en-US-Wavenet-B", ("en-US",), "MALE"),
    CatalogVoice("en-GB-Wavenet-A", ("en-GB",), "FEMALE"),
    CatalogVoice("de-DE-Wavenet-B", ("de-DE",), "MALE"),
    CatalogVoice("en-US-Standard-A", ("en-US",), "FEMALE"),
]


class FakeSynthesizer:
    """Controllable synthesizer.

    Returns the phrase bytes immediately unless ``hold`` is set, in which case
    each call waits on a future the test resolves with ``release``.
    """

    def __init__(self, voices: list[CatalogVoice] | None = None):
        self.catalog = list(DEFAULT_CATALOG if voices is None else voices)
        self.calls = []
        self.pending: list[asyncio.Future] = []
        self.hold = False
        self.fail_with: Exception | None = None
        self.catalog_error: Exception | None = None

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.calls]

    async def synthesize(self, text, voice):
        self.calls.append((text, voice))
        if self.fail_with is not None:
            raise self.fail_with
        if self.hold:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future
        return text.encode()

    def release(self, index: int, audio: bytes | None = None):
        self.pending[index].set_result(audio if audio is not None else self.calls[index][0].encode())

    async def list_voices(self):
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.catalog)


class RecordingSink:
    """Every collaborator protocol at once; calls land in ``calls`` as (method, args)."""

    def __init__(self, log: list | None = None):
        self.calls = []
        self.log = log if log is not None else []
        self.avatars: dict[str, str] = {}

    def _record(self, method, *args):
        self.calls.append((method, args))
        self.log.append(method)

    def named(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    async def send_chat(self, text):
        self._record("send_chat", text)

    async def post_message(self, key, user_name, avatar_url, text):
        self._record("post_message", key, user_name, avatar_url, text)

    async def get(self, url):
        self._record("get", url)

    async def launch(self, uri):
        self._record("launch", uri)

    async def toggle(self, key, config, state):
        self._record("toggle", key, config, state)

    async def set_light_state(self, light_id, x, y):
        self._record("set_light_state", light_id, x, y)

    async def run_plug(self, config):
        self._record("run_plug", config)

    async def show_preset(self, config):
        self._record("show_preset", config)

    async def show_sign(self, config):
        self._record("show_sign", config)

    async def capture(self, key, user, source_name, delay, token):
        self._record("capture", key, user, source_name, delay, token)

    async def update_reward(self, reward_id, config):
        self._record("update_reward", reward_id, config)

    async def avatar_url(self, user_id):
        return self.avatars.get(user_id)

    async def user_by_login(self, login):
        return None


@pytest.fixture
def settle():
    """Let pending tasks run without wall-clock waits."""

    async def _settle(rounds: int = 10):
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def tracker():
    return TaskTracker("test")


@pytest.fixture
def completions(tracker):
    return CompletionRegistry(tracker)


@pytest.fixture
def store():
    return InMemorySettingsStore()


@pytest.fixture
def devices():
    return FakeDevices()


@pytest.fixture
def sequencer(devices, completions, tracker):
    return AudioChannelSequencer(devices, completions, tracker, rng=random.Random(7))


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def voices(store, synthesizer):
    return VoiceLibrary(store, synthesizer, default_voice="en-US-Wavenet-A", rng=random.Random(3))


@pytest.fixture
def pipeline(synthesizer, sequencer, completions, store, voices, tracker):
    return SpeechSynthesisPipeline(
        synthesizer,
        sequencer,
        completions,
        store,
        voices,
        tracker,
        options=PhrasingOptions(dictionary={"gg": "good game"}),
        speech_channel=SPEECH_CHANNEL,
        max_pending_ticks=3,
        secret_prefixes=["|"],
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def collaborators(sink):
    return Collaborators(
        scenes=sink,
        lights=sink,
        overlay=sink,
        screenshots=sink,
        chat=sink,
        webhooks=sink,
        web=sink,
        launcher=sink,
        users=sink,
        rewards=sink,
    )


@pytest.fixture
def composer(sequencer, pipeline, completions, store, tracker, collaborators):
    return ActionComposer(
        sequencer,
        pipeline,
        completions,
        store,
        tracker,
        collaborators=collaborators,
        settings=ComposerSettings(
            chatbot_name="streamcue",
            light_ids=[1, 2],
            screenshot_sound=AudioConfig(src="shutter.wav", channel=3),
        ),
        rng=random.Random(11),
    )


@pytest.fixture
def user():
    return ActionUser(id="42", login="alice_99", name="Alice", input="hello there", color="#FF0000")


@pytest.fixture
def audio_request():
    def _make(token: str = "", source: str = "sound.wav", channel: int = 0, **kwargs) -> AudioRequest:
        return AudioRequest(sources=[source], token=token, channel=channel, **kwargs)

    return _make
