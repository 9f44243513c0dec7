"""Playback devices: the per-channel output the sequencer drives."""

import asyncio
import contextlib
import mimetypes
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from enum import Enum

from ..errors import PlaybackError
from ..logger import get_logger
from ..task_tracker import TaskTracker
from .models import decode_data_uri

logger = get_logger(__name__)


class PlaybackEvent(Enum):
    """Events a device reports for one load."""

    STARTED = "started"
    ENDED = "ended"
    ERROR = "error"


PlaybackListener = Callable[[PlaybackEvent, str | None], None]


class PlaybackDevice(ABC):
    """Output for a single channel.

    After ``load`` the device reports STARTED (optional) and then exactly one
    of ENDED or ERROR through ``on_event``. After ``stop`` it reports nothing
    more for the stopped load.
    """

    @abstractmethod
    def load(self, source: str, volume: float, on_event: PlaybackListener) -> None:
        """Begin playing ``source`` at ``volume`` (0.0 - 1.0)."""

    @abstractmethod
    def stop(self) -> None:
        """Abort the current load, if any."""


class CommandPlaybackDevice(PlaybackDevice):
    """Plays each source through an external player process.

    ``command`` is an argv template; ``{path}`` and ``{volume}`` (0-100) are
    substituted per load. ``data:`` URIs are written to a temporary file first.
    """

    DEFAULT_COMMAND = ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet", "-volume", "{volume}", "{path}")

    def __init__(self, tracker: TaskTracker, command: Sequence[str] = DEFAULT_COMMAND, name: str = "device"):
        self.command = list(command)
        self.name = name
        self._tracker = tracker
        self._task: asyncio.Task | None = None
        self._process: asyncio.subprocess.Process | None = None

    def load(self, source: str, volume: float, on_event: PlaybackListener) -> None:
        self.stop()
        self._task = self._tracker.create_task(self._play(source, volume, on_event), name=f"playback:{self.name}")

    def stop(self) -> None:
        if self._process is not None and self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
        self._process = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _build_argv(self, path: str, volume: float) -> list[str]:
        level = str(round(max(0.0, min(volume, 1.0)) * 100))
        return [part.replace("{path}", path).replace("{volume}", level) for part in self.command]

    async def _play(self, source: str, volume: float, on_event: PlaybackListener) -> None:
        temp_path = None
        try:
            path = source
            if source.startswith("data:"):
                mime_type, payload = decode_data_uri(source)
                suffix = mimetypes.guess_extension(mime_type) or ".bin"
                with tempfile.NamedTemporaryFile(prefix="streamcue-", suffix=suffix, delete=False) as handle:
                    handle.write(payload)
                    temp_path = path = handle.name

            self._process = await asyncio.create_subprocess_exec(
                *self._build_argv(path, volume),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            on_event(PlaybackEvent.STARTED, None)
            _, stderr = await self._process.communicate()

            if self._process.returncode != 0:
                detail = stderr.decode(errors="replace").strip()[-200:] if stderr else ""
                raise PlaybackError(f"player exited with {self._process.returncode} {detail}".strip())
            on_event(PlaybackEvent.ENDED, None)
        except asyncio.CancelledError:
            raise
        except PlaybackError as e:
            on_event(PlaybackEvent.ERROR, str(e))
        except (OSError, ValueError) as e:
            logger.warning("Playback failed to start", device=self.name, error=str(e))
            on_event(PlaybackEvent.ERROR, str(e))
        finally:
            if temp_path:
                with contextlib.suppress(OSError):
                    os.unlink(temp_path)
