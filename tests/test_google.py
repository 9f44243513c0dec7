"""Tests for the Google Text-to-Speech client against a local aiohttp server."""

import base64
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils, web

from streamcue.circuit_breaker import CircuitState
from streamcue.errors import SynthesisError
from streamcue.speech.google import GoogleSpeechSynthesizer
from streamcue.speech.models import CatalogVoice, VoiceParams

pytestmark = pytest.mark.asyncio

VOICE = VoiceParams(language_code="en-US", voice_name="en-US-Wavenet-A", gender="female", speaking_rate=1.2)


class FakeTextToSpeechApi:
    """Serves canned responses and records every request it receives."""

    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload if payload is not None else {}
        self.requests = []

    async def _respond(self, request):
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.method, request.path, request.query.get("key"), body))
        if self.status != 200:
            return web.Response(status=self.status, text="backend exploded")
        return web.json_response(self.payload)

    def app(self):
        app = web.Application()
        app.router.add_post("/v1beta1/text:synthesize", self._respond)
        app.router.add_get("/v1beta1/voices", self._respond)
        return app


@asynccontextmanager
async def synthesizer_for(api):
    async with test_utils.TestServer(api.app()) as server:
        base_url = str(server.make_url("/v1beta1"))
        async with GoogleSpeechSynthesizer("test-key", base_url=base_url) as synthesizer:
            yield synthesizer


class TestSynthesize:
    async def test_returns_decoded_audio(self):
        """The base64 audio content is decoded and the request carries voice and encoding."""
        api = FakeTextToSpeechApi(payload={"audioContent": base64.b64encode(b"OggS-audio").decode()})

        async with synthesizer_for(api) as synthesizer:
            audio = await synthesizer.synthesize("hello there", VOICE)

        assert audio == b"OggS-audio"
        method, path, key, body = api.requests[0]
        assert (method, path, key) == ("POST", "/v1beta1/text:synthesize", "test-key")
        assert body["input"] == {"text": "hello there"}
        assert body["voice"] == {"languageCode": "en-US", "name": "en-US-Wavenet-A", "ssmlGender": "FEMALE"}
        assert body["audioConfig"]["audioEncoding"] == "OGG_OPUS"
        assert body["audioConfig"]["speakingRate"] == 1.2

    async def test_ssml_sent_as_ssml(self):
        """Text wrapped in <speak> goes in the ssml input field."""
        api = FakeTextToSpeechApi(payload={"audioContent": base64.b64encode(b"x").decode()})

        async with synthesizer_for(api) as synthesizer:
            await synthesizer.synthesize("<speak>hi</speak>", VOICE)

        assert api.requests[0][3]["input"] == {"ssml": "<speak>hi</speak>"}

    async def test_http_error_raises(self):
        """A non-200 response surfaces as SynthesisError with the status."""
        api = FakeTextToSpeechApi(status=500)

        async with synthesizer_for(api) as synthesizer:
            with pytest.raises(SynthesisError, match="HTTP 500"):
                await synthesizer.synthesize("hello", VOICE)

    async def test_missing_audio_content_raises(self):
        """A 200 response without audioContent is a failed synthesis."""
        api = FakeTextToSpeechApi(payload={"error": "quota"})

        async with synthesizer_for(api) as synthesizer:
            with pytest.raises(SynthesisError, match="No audio"):
                await synthesizer.synthesize("hello", VOICE)

    async def test_undecodable_audio_content_raises(self):
        """Audio content that is not base64 is rejected."""
        api = FakeTextToSpeechApi(payload={"audioContent": "not base64!"})

        async with synthesizer_for(api) as synthesizer:
            with pytest.raises(SynthesisError, match="Undecodable"):
                await synthesizer.synthesize("hello", VOICE)

    async def test_open_circuit_skips_the_request(self):
        """After repeated failures the breaker opens and further calls never reach the API."""
        api = FakeTextToSpeechApi(status=503)

        async with synthesizer_for(api) as synthesizer:
            for _ in range(synthesizer.circuit_breaker.failure_threshold):
                with pytest.raises(SynthesisError, match="HTTP 503"):
                    await synthesizer.synthesize("hello", VOICE)
            assert synthesizer.circuit_breaker.state is CircuitState.OPEN

            with pytest.raises(SynthesisError, match="is open"):
                await synthesizer.synthesize("hello", VOICE)

        assert len(api.requests) == synthesizer.circuit_breaker.failure_threshold


class TestListVoices:
    async def test_catalog_parsed(self):
        """Voices are read from the catalog; entries without a name are skipped."""
        api = FakeTextToSpeechApi(
            payload={
                "voices": [
                    {"name": "en-US-Wavenet-A", "languageCodes": ["en-US"], "ssmlGender": "FEMALE"},
                    {"name": "de-DE-Wavenet-B", "languageCodes": ["de-DE"]},
                    {"languageCodes": ["fr-FR"]},
                ]
            }
        )

        async with synthesizer_for(api) as synthesizer:
            voices = await synthesizer.list_voices()

        assert voices == [
            CatalogVoice("en-US-Wavenet-A", ("en-US",), "FEMALE"),
            CatalogVoice("de-DE-Wavenet-B", ("de-DE",), "FEMALE"),
        ]
        assert api.requests[0][:3] == ("GET", "/v1beta1/voices", "test-key")

    async def test_http_error_raises(self):
        """A failing catalog request surfaces as SynthesisError."""
        api = FakeTextToSpeechApi(status=403)

        async with synthesizer_for(api) as synthesizer:
            with pytest.raises(SynthesisError, match="HTTP 403"):
                await synthesizer.list_voices()
