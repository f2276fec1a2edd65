# tests/conftest.py
from __future__ import annotations

import dataclasses
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from config import StoreSettings
from database.durable import MemoryStore
from database.facade import PersistenceFacade
from database.fallback import FallbackBackend
from database.relational import RelationalBackend

TEST_DB_URL = "sqlite+aiosqlite://"


@pytest.fixture()
def settings() -> StoreSettings:
    return StoreSettings(
        db_url=TEST_DB_URL,
        db_engine="sqlite",
        backup_enabled=False,
        unknown_author="Unknown User",
        min_password_length=6,
        max_media_bytes=1024,
    )


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest_asyncio.fixture(params=["sqlite", "fallback"])
async def db(request, store: MemoryStore, settings: StoreSettings) -> AsyncIterator[PersistenceFacade]:
    """Facade over each backend in turn."""
    facade = PersistenceFacade(store, dataclasses.replace(settings, db_engine=request.param))
    await facade.ready()
    try:
        yield facade
    finally:
        await facade.close()


@pytest_asyncio.fixture()
async def relational() -> AsyncIterator[RelationalBackend]:
    backend = RelationalBackend(TEST_DB_URL)
    await backend.start(None)
    try:
        yield backend
    finally:
        await backend.close()


@pytest_asyncio.fixture()
async def fallback() -> FallbackBackend:
    backend = FallbackBackend("Unknown User")
    await backend.start(None)
    return backend

