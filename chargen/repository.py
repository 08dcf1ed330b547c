"""Concurrency-safe persistence helpers for characters."""

from __future__ import annotations

import abc
import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import AsyncIterator, Dict, List, Mapping

from .characters import Character
from .errors import NotFoundError, PersistenceError

__all__ = [
    "CharacterRepository",
    "FileCharacterRepository",
    "InMemoryCharacterRepository",
]

log = logging.getLogger(__name__)

FILE_MODE = 0o644


class CharacterRepository(abc.ABC):
    """Storage port for characters keyed by name."""

    @abc.abstractmethod
    async def save(self, character: Character) -> None:
        """Insert or replace ``character``."""

    @abc.abstractmethod
    async def find_by_id(self, name: str) -> Character:
        """Return the character called ``name`` or raise :class:`NotFoundError`."""

    @abc.abstractmethod
    async def find_all(self) -> List[Character]:
        """Return every stored character."""

    @abc.abstractmethod
    async def delete(self, name: str) -> None:
        """Remove ``name`` or raise :class:`NotFoundError`."""


class _ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writing = False

    @contextlib.asynccontextmanager
    async def reading(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                self._condition.notify_all()

    @contextlib.asynccontextmanager
    async def writing(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writing and self._readers == 0)
            self._writing = True
        try:
            yield
        finally:
            async with self._condition:
                self._writing = False
                self._condition.notify_all()


def _decode(payload: Mapping[str, object]) -> Character:
    try:
        return Character.from_dict(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Stored character is malformed: {exc}") from exc


class FileCharacterRepository(CharacterRepository):
    """Store all characters as a JSON array in a single file.

    Every write rewrites the whole document through a temporary file that is
    atomically moved into place, so an interrupted write leaves the previous
    contents intact.
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = Path(storage_path)
        self._lock = _ReadWriteLock()

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def _read_records(self) -> List[Dict[str, object]]:
        try:
            text = self._storage_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceError(f"Error reading character file {self._storage_path}: {exc}") from exc
        if not text.strip():
            return []
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Error parsing character file {self._storage_path}: {exc}") from exc
        if not isinstance(raw, list):
            raise PersistenceError(f"Character file {self._storage_path} must contain a JSON array")
        return [dict(entry) for entry in raw if isinstance(entry, dict)]

    def _write_records(self, records: List[Dict[str, object]]) -> None:
        text = json.dumps(records, indent=2)
        directory = self._storage_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{self._storage_path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(text)
                os.chmod(temp_name, FILE_MODE)
                os.replace(temp_name, self._storage_path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Error writing character file {self._storage_path}: {exc}") from exc

    async def save(self, character: Character) -> None:
        payload = character.to_dict()
        async with self._lock.writing():
            records = await asyncio.to_thread(self._read_records)
            for index, existing in enumerate(records):
                if existing.get("name") == character.name:
                    records[index] = payload
                    break
            else:
                records.append(payload)
            await asyncio.to_thread(self._write_records, records)
        log.debug("Saved character %s to %s", character.name, self._storage_path)

    async def find_by_id(self, name: str) -> Character:
        async with self._lock.reading():
            records = await asyncio.to_thread(self._read_records)
        for record in records:
            if record.get("name") == name:
                return _decode(record)
        raise NotFoundError("character", name)

    async def find_all(self) -> List[Character]:
        async with self._lock.reading():
            records = await asyncio.to_thread(self._read_records)
        characters: List[Character] = []
        for record in records:
            try:
                characters.append(_decode(record))
            except PersistenceError as exc:
                log.warning("Skipping unreadable character %r: %s", record.get("name"), exc)
        return characters

    async def delete(self, name: str) -> None:
        async with self._lock.writing():
            records = await asyncio.to_thread(self._read_records)
            remaining = [record for record in records if record.get("name") != name]
            if len(remaining) == len(records):
                raise NotFoundError("character", name)
            await asyncio.to_thread(self._write_records, remaining)
        log.debug("Deleted character %s from %s", name, self._storage_path)


class InMemoryCharacterRepository(CharacterRepository):
    """Process-local repository holding serialised snapshots."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: Dict[str, Dict[str, object]] = {}

    async def save(self, character: Character) -> None:
        async with self._lock:
            self._records[character.name] = character.to_dict()

    async def find_by_id(self, name: str) -> Character:
        async with self._lock:
            record = self._records.get(name)
        if record is None:
            raise NotFoundError("character", name)
        return _decode(record)

    async def find_all(self) -> List[Character]:
        async with self._lock:
            records = list(self._records.values())
        return [_decode(record) for record in records]

    async def delete(self, name: str) -> None:
        async with self._lock:
            if name not in self._records:
                raise NotFoundError("character", name)
            del self._records[name]
