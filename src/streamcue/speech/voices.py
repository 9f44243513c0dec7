"""Per-user voice preferences on top of the synthesizer's voice catalog."""

import random
import re

from ..errors import SynthesisError
from ..logger import get_logger
from ..settings_store import TTS_USER_VOICES, SettingsStore
from .models import CatalogVoice, SpeechSynthesizer, UserVoice, VoiceParams

logger = get_logger(__name__)

VOICE_NAME_RE = re.compile(r"([a-z]+)-([a-z]+)-(\w+)-([a-z])")
GENDER_WORDS = ("female", "male")
RESET_WORDS = ("reset", "x")
RANDOM_WORDS = ("random", "rand", "?")


class VoiceLibrary:
    """Resolves and updates which voice each user speaks with.

    The catalog is fetched once from the synthesizer and filtered to Wavenet
    voices. Users without a stored preference get the configured default
    voice, or a random catalog voice matching ``language_filter`` when
    ``randomize`` is on; that choice is persisted on first use.
    """

    def __init__(
        self,
        store: SettingsStore,
        synthesizer: SpeechSynthesizer,
        default_voice: str = "",
        randomize: bool = False,
        language_filter: str = "en-",
        voice_family: str = "Wavenet",
        rng: random.Random | None = None,
    ):
        self._store = store
        self._synthesizer = synthesizer
        self.default_voice_name = default_voice.lower()
        self.randomize = randomize
        self.language_filter = language_filter
        self.voice_family = voice_family
        self._rng = rng or random.Random()

        self.voices: list[CatalogVoice] = []
        self.random_voices: list[CatalogVoice] = []
        self.languages: list[str] = []

    async def load(self) -> bool:
        """Fill the catalog caches. Returns False if the catalog could not be fetched."""
        if self.voices:
            return True
        try:
            catalog = await self._synthesizer.list_voices()
        except SynthesisError as e:
            logger.warning("Voice catalog unavailable", error=str(e))
            return False

        self.voices = [v for v in catalog if self.voice_family in v.name]
        self.random_voices = [
            v for v in self.voices if any(code.startswith(self.language_filter) for code in v.language_codes)
        ]
        languages: list[str] = []
        for voice in self.voices:
            for code in voice.language_codes:
                code = code.lower()
                if code not in languages:
                    languages.append(code)
        self.languages = languages
        logger.info("Voice catalog loaded", voices=len(self.voices), languages=len(self.languages))
        return bool(self.voices)

    def build_voice(self, user_name: str, voice: CatalogVoice | None) -> UserVoice:
        if voice is None:
            return UserVoice(user_name=user_name)
        return UserVoice(
            user_name=user_name,
            language_code=voice.language_codes[0] if voice.language_codes else "en-US",
            voice_name=voice.name,
            gender=voice.ssml_gender or "FEMALE",
        )

    async def default_voice(self, user_name: str) -> UserVoice:
        await self.load()
        if self.randomize and self.random_voices:
            return self.build_voice(user_name, self._rng.choice(self.random_voices))
        configured = next((v for v in self.voices if v.name.lower() == self.default_voice_name), None)
        return self.build_voice(user_name, configured)

    async def voice_for(self, user_name: str) -> UserVoice:
        """Stored preference for the user, creating and persisting the default on first use."""
        record = await self._store.pull(TTS_USER_VOICES, "user_name", user_name)
        if record is not None:
            return UserVoice.from_record(record)
        voice = await self.default_voice(user_name)
        await self._store.push(TTS_USER_VOICES, "user_name", voice.to_record())
        return voice

    async def set_voice_for_user(self, user_name: str, text: str) -> tuple[UserVoice, bool]:
        """Apply voice-change words from ``text`` and persist the result.

        Words are applied left to right: ``female``/``male``, a full or partial
        language code, a full voice name (``en-US-Wavenet-B``), ``reset``/``x``
        and ``random``/``rand``/``?``. Returns the voice and whether anything
        changed.
        """
        await self.load()
        default = await self.default_voice(user_name)
        record = await self._store.pull(TTS_USER_VOICES, "user_name", user_name)
        voice = UserVoice.from_record(record) if record is not None else default
        changed = False

        for word in text.lower().split():
            if word in GENDER_WORDS:
                if word != voice.gender.lower():
                    # A named voice overrides gender
                    voice.voice_name = ""
                    voice.gender = word.upper()
                    changed = True
                    logger.debug("Matched gender", user_name=user_name, gender=word)
                continue

            if ("-" in word and len(word.split("-")) == 2) or len(word) <= 3:
                code = self._match_language(word)
                if code and code != voice.language_code.lower():
                    voice.voice_name = ""
                    voice.language_code = code
                    changed = True
                    logger.debug("Matched language code", user_name=user_name, language_code=code)
                    continue

            match = VOICE_NAME_RE.fullmatch(word)
            if match:
                catalog_voice = next((v for v in self.voices if v.name.lower() == match.group(0)), None)
                if catalog_voice is not None and catalog_voice.name.lower() != voice.voice_name.lower():
                    voice.voice_name = catalog_voice.name
                    voice.language_code = f"{match.group(1)}-{match.group(2).upper()}"
                    changed = True
                    logger.debug("Matched voice name", user_name=user_name, voice_name=catalog_voice.name)
                continue

            if word in RESET_WORDS:
                voice = UserVoice(**default.to_record())
                changed = True
                logger.debug("Matched reset", user_name=user_name)
                continue

            if word in RANDOM_WORDS and self.voices:
                voice = self.build_voice(user_name, self._rng.choice(self.voices))
                changed = True
                logger.debug("Matched random", user_name=user_name)

        saved = await self._store.push(TTS_USER_VOICES, "user_name", voice.to_record())
        logger.info("Voice saved", user_name=user_name, voice_name=voice.voice_name, changed=changed, saved=saved)
        return voice, changed

    def _match_language(self, word: str) -> str | None:
        if word in self.languages:
            return word
        return next((lang for lang in self.languages if lang.startswith(word)), None) or next(
            (lang for lang in self.languages if lang.endswith(word)), None
        )

    @staticmethod
    def params_for(voice: UserVoice, speaking_rate: float = 1.0, pitch: float = 0.0) -> VoiceParams:
        return VoiceParams(
            language_code=voice.language_code,
            voice_name=voice.voice_name,
            gender=voice.gender,
            speaking_rate=speaking_rate,
            pitch=pitch,
        )
