"""Google Cloud Text-to-Speech client."""

import base64
import binascii

import aiohttp

from ..circuit_breaker import CircuitBreaker, CircuitOpenError
from ..errors import SynthesisError
from ..logger import get_logger
from .models import CatalogVoice, VoiceParams

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://texttospeech.googleapis.com/v1beta1"


class GoogleSpeechSynthesizer:
    """Synthesizes OGG/Opus speech through the REST ``text:synthesize`` endpoint.

    One attempt per request; HTTP errors, bad payloads and an open circuit all
    surface as ``SynthesisError``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
        self._owns_session = session is None

        self.circuit_breaker = CircuitBreaker(
            name="google_tts",
            failure_threshold=5,
            recovery_timeout=30.0,
            expected_exception=(aiohttp.ClientError, TimeoutError, SynthesisError),
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None

    async def synthesize(self, text: str, voice: VoiceParams) -> bytes:
        is_ssml = text.startswith("<speak>")
        body = {
            "input": {"ssml": text} if is_ssml else {"text": text},
            "voice": {
                "languageCode": voice.language_code,
                "name": voice.voice_name,
                "ssmlGender": voice.gender.upper(),
            },
            "audioConfig": {
                "audioEncoding": "OGG_OPUS",
                "speakingRate": voice.speaking_rate,
                "pitch": voice.pitch,
                "volumeGainDb": 0.0,
            },
        }
        data = await self._call("POST", "text:synthesize", json=body)

        content = data.get("audioContent")
        if not content:
            raise SynthesisError(f"No audio in synthesis response: {data.get('error') or 'empty'}")
        try:
            audio = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SynthesisError(f"Undecodable audio content: {e}") from e

        logger.debug("Speech synthesized", voice=voice.voice_name, bytes=len(audio))
        return audio

    async def list_voices(self) -> list[CatalogVoice]:
        data = await self._call("GET", "voices")
        voices = []
        for entry in data.get("voices") or []:
            name = entry.get("name")
            if not name:
                continue
            voices.append(
                CatalogVoice(
                    name=name,
                    language_codes=tuple(entry.get("languageCodes") or ()),
                    ssml_gender=entry.get("ssmlGender") or "FEMALE",
                )
            )
        return voices

    async def _call(self, method: str, path: str, **kwargs) -> dict:
        if self.session is None:
            await self.start()
        try:
            return await self.circuit_breaker.call(self._request, method, path, **kwargs)
        except CircuitOpenError as e:
            raise SynthesisError(str(e)) from e
        except (aiohttp.ClientError, TimeoutError) as e:
            raise SynthesisError(f"Google TTS request failed: {e}") from e

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}/{path}"
        async with self.session.request(method, url, params={"key": self.api_key}, **kwargs) as response:
            if response.status != 200:
                detail = (await response.text())[:200]
                raise SynthesisError(f"Google TTS returned HTTP {response.status}: {detail}")
            data = await response.json()
        if not isinstance(data, dict):
            raise SynthesisError("Google TTS returned a non-object payload")
        return data
