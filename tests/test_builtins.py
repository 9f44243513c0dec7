"""Tests for the named speech handlers."""

import pytest

from streamcue.actions.builtins import speech_handlers
from streamcue.actions.models import ActionUser

from conftest import SPEECH_CHANNEL

pytestmark = pytest.mark.asyncio


@pytest.fixture
def handlers(pipeline):
    return speech_handlers(pipeline)


class TestSpeechHandlers:
    async def test_say(self, handlers, synthesizer, settle):
        """tts_say speaks the input as chat."""
        handlers["tts_say"](ActionUser(login="alice", input="hello"), None)
        await settle()

        assert synthesizer.texts == ["alice said: hello"]

    async def test_cheer(self, handlers, synthesizer, settle):
        """tts_cheer mentions the bits and drops cheer emotes."""
        handlers["tts_cheer"](ActionUser(login="alice", input="Cheer100 nice", bits=100), None)
        await settle()

        assert synthesizer.texts == ["alice cheered 100 bits: nice"]

    async def test_set_voice(self, handlers, synthesizer, settle):
        """tts_set_voice changes the caller's voice."""
        await handlers["tts_set_voice"](ActionUser(login="alice", input="male"), None)
        await settle()

        assert synthesizer.calls[0][1].gender == "MALE"

    async def test_suppress_and_restore(self, handlers, pipeline):
        """tts_suppress targets the first word of the input, without the @."""
        await handlers["tts_suppress"](ActionUser(login="mod", input="@Bob is spamming"), None)
        assert await pipeline.is_suppressed("bob")

        await handlers["tts_unsuppress"](ActionUser(login="mod", input="bob"), None)
        assert not await pipeline.is_suppressed("bob")

    async def test_suppress_without_target(self, handlers, pipeline):
        """No name, nothing suppressed."""
        await handlers["tts_suppress"](ActionUser(login="mod", input="  "), None)

        assert not await pipeline.is_suppressed("")

    async def test_clear(self, handlers, pipeline, sequencer, devices, settle):
        """tts_clear stops speech and empties the speech queue."""
        for text in ("one", "two"):
            handlers["tts_say"](ActionUser(login="alice", input=text), None)
        await settle()
        pipeline.tick()
        pipeline.tick()
        sequencer.tick(SPEECH_CHANNEL)

        handlers["tts_clear"](ActionUser(login="mod"), None)

        assert devices[SPEECH_CHANNEL].stop_count == 1
        assert len(sequencer.channel(SPEECH_CHANNEL).queue) == 0
