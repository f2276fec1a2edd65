"""Durable key/value slots holding whole snapshots.

Whole-value replace only, no partial updates, no locking: callers that care
about ordering (the facade) serialize their own writes.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    async def save(self, key: str, blob: bytes) -> None: ...
    async def load(self, key: str) -> Optional[bytes]: ...
    async def delete(self, key: str) -> None: ...


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key or ""):
        raise ValueError(f"invalid storage key: {key!r}")
    return key


class MemoryStore:
    """Slots kept in a dict; lost with the process."""

    def __init__(self) -> None:
        self._slots: dict[str, bytes] = {}

    async def save(self, key: str, blob: bytes) -> None:
        self._slots[_check_key(key)] = bytes(blob)

    async def load(self, key: str) -> Optional[bytes]:
        return self._slots.get(_check_key(key))

    async def delete(self, key: str) -> None:
        self._slots.pop(_check_key(key), None)

    def keys(self) -> list[str]:
        return sorted(self._slots)


class FileStore:
    """One file per slot under ``directory``; writes go through a temp file + rename."""

    SUFFIX = ".bin"

    def __init__(self, directory: str) -> None:
        if os.path.isfile(directory):
            raise ValueError(f"Path points to a file, expected directory: {directory}")
        self.directory = directory

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, _check_key(key) + self.SUFFIX)

    async def save(self, key: str, blob: bytes) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), bytes(blob))

    async def load(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(os.remove, path)
        except FileNotFoundError:
            pass

    # --- Internal -------------------------------------------------------------------
    def _write(self, path: str, blob: bytes) -> None:
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise
        logger.debug("slot written %s (%d bytes)", path, len(blob))

    @staticmethod
    def _read(path: str) -> Optional[bytes]:
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
