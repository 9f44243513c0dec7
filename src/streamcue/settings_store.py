"""Persisted settings collections (reward counters, voices, suppression list, labels).

A collection is a list of flat records. ``pull`` finds the first record whose
``match_key`` equals a value; ``push`` replaces the record with the same
``match_key`` value or appends it. Last write wins.
"""

import asyncio
import copy
import json
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .logger import get_logger

logger = get_logger(__name__)

REWARD_COUNTERS = "reward_counters"
TTS_USER_VOICES = "tts_user_voices"
TTS_SUPPRESSED_USERS = "tts_suppressed_users"
LABELS = "labels"

Record = dict[str, Any]


class SettingsStore(Protocol):
    async def pull(self, collection: str, match_key: str, match_value: Any) -> Record | None: ...

    async def push(self, collection: str, match_key: str, record: Record) -> bool: ...


def _find(records: list[Record], match_key: str, match_value: Any) -> int:
    for i, record in enumerate(records):
        if record.get(match_key) == match_value:
            return i
    return -1


def _upsert(records: list[Record], match_key: str, record: Record) -> None:
    index = _find(records, match_key, record.get(match_key))
    if index >= 0:
        records[index] = record
    else:
        records.append(record)


class InMemorySettingsStore:
    """Process-local store, used in tests and when no settings directory is configured."""

    def __init__(self, initial: dict[str, list[Record]] | None = None):
        self._collections: dict[str, list[Record]] = copy.deepcopy(initial) if initial else {}

    async def pull(self, collection: str, match_key: str, match_value: Any) -> Record | None:
        records = self._collections.get(collection, [])
        index = _find(records, match_key, match_value)
        return dict(records[index]) if index >= 0 else None

    async def push(self, collection: str, match_key: str, record: Record) -> bool:
        _upsert(self._collections.setdefault(collection, []), match_key, dict(record))
        return True

    def records(self, collection: str) -> list[Record]:
        return [dict(r) for r in self._collections.get(collection, [])]


class JsonFileSettingsStore:
    """One ``<collection>.json`` file per collection under ``directory``.

    Collections are cached after the first read; every push rewrites the file.
    File I/O runs in a worker thread so the event loop never blocks on disk.
    Each collection has its own lock covering the first read and every
    upsert plus write, so concurrent first uses cannot drop each other's records.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self._cache: dict[str, list[Record]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.json"

    def _read(self, collection: str) -> list[Record]:
        path = self._path(collection)
        if not path.is_file():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read settings collection", collection=collection, path=str(path), error=str(e))
            return []
        if not isinstance(data, list):
            logger.warning("Settings collection is not a list, ignoring", collection=collection, path=str(path))
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write(self, collection: str, records: list[Record]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(collection)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.directory, prefix=f".{collection}-", suffix=".tmp", delete=False
        ) as handle:
            json.dump(records, handle, indent=2, ensure_ascii=False)
        Path(handle.name).replace(path)

    def _lock(self, collection: str) -> asyncio.Lock:
        return self._locks.setdefault(collection, asyncio.Lock())

    async def _load(self, collection: str) -> list[Record]:
        # Caller holds the collection lock
        if collection not in self._cache:
            self._cache[collection] = await asyncio.to_thread(self._read, collection)
        return self._cache[collection]

    async def pull(self, collection: str, match_key: str, match_value: Any) -> Record | None:
        async with self._lock(collection):
            records = await self._load(collection)
            index = _find(records, match_key, match_value)
            return dict(records[index]) if index >= 0 else None

    async def push(self, collection: str, match_key: str, record: Record) -> bool:
        async with self._lock(collection):
            records = await self._load(collection)
            _upsert(records, match_key, dict(record))
            snapshot = copy.deepcopy(records)
            try:
                await asyncio.to_thread(self._write, collection, snapshot)
            except OSError as e:
                logger.error("Failed to write settings collection", collection=collection, error=str(e))
                return False
        return True
