"""Named handlers for the ``handler`` sub-action that drive the speech pipeline."""

from ..logger import get_logger
from ..speech.models import SpeechKind, SpeechRequest
from ..speech.pipeline import SpeechSynthesisPipeline
from .models import ActionUser
from .sinks import Handler

logger = get_logger(__name__)


def _target(user: ActionUser) -> str:
    """First word of the input, without a leading @."""
    word = user.input.strip().split(" ", 1)[0] if user.input.strip() else ""
    return word.lstrip("@").lower()


def speech_handlers(pipeline: SpeechSynthesisPipeline) -> dict[str, Handler]:
    """Handlers keyed by the name an ``actions.handler`` entry uses.

    - ``tts_say``: speak the user's input as chat
    - ``tts_cheer``: speak the input as a cheer with the user's bits
    - ``tts_set_voice``: change the user's voice from the input words
    - ``tts_stop`` / ``tts_clear``: stop the current line, ``tts_clear`` also empties the queue
    - ``tts_suppress`` / ``tts_unsuppress``: silence or restore the user named in the input
    """

    def say(user: ActionUser, index: int | None):
        pipeline.submit(SpeechRequest(text=user.input, speaker=user.login, kind=SpeechKind.SAID))

    def cheer(user: ActionUser, index: int | None):
        pipeline.submit(
            SpeechRequest(
                text=user.input,
                speaker=user.login,
                kind=SpeechKind.CHEER,
                meta={"bits": user.bits},
            )
        )

    async def set_voice(user: ActionUser, index: int | None):
        await pipeline.set_voice_for_user(user.login, user.input)

    def stop(user: ActionUser, index: int | None):
        pipeline.stop_speaking(clear_queue=False)

    def clear(user: ActionUser, index: int | None):
        pipeline.stop_speaking(clear_queue=True)

    async def suppress(user: ActionUser, index: int | None):
        target = _target(user)
        if not target:
            logger.info("No user named to suppress", invoked_by=user.login)
            return
        await pipeline.set_suppressed(target, True)
        logger.info("Speech suppressed for user", target=target, invoked_by=user.login)

    async def unsuppress(user: ActionUser, index: int | None):
        target = _target(user)
        if not target:
            return
        await pipeline.set_suppressed(target, False)
        logger.info("Speech restored for user", target=target, invoked_by=user.login)

    return {
        "tts_say": say,
        "tts_cheer": cheer,
        "tts_set_voice": set_voice,
        "tts_stop": stop,
        "tts_clear": clear,
        "tts_suppress": suppress,
        "tts_unsuppress": unsuppress,
    }
