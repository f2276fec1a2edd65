"""Persistence facade: the one object the application talks to.

* picks the relational engine or the fallback store once, at first use;
* makes every call wait for that single initialization;
* turns constraint errors into ``OpResult`` failures;
* serializes ``toggle_like`` per (post, user);
* writes a full snapshot after every successful mutation, in the
  background, and keeps the outcome queryable.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import aiocron

from config import BACKUP_KEY, StoreSettings
from database.backend import Backend
from database.durable import KeyValueStore
from database.errors import ConstraintViolation, StorageWriteFailure
from database.fallback import FallbackBackend
from database.records import CommentRecord, OpResult, PostRecord, UserRecord
from database.relational import RelationalBackend

logger = logging.getLogger(__name__)


class PersistenceFacade:
    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[StoreSettings] = None,
        *,
        relational_factory: Optional[Callable[[], Backend]] = None,
        fallback_factory: Optional[Callable[[], Backend]] = None,
    ):
        self.store = store
        self.settings = settings or StoreSettings()
        self._relational_factory = relational_factory or (
            lambda: RelationalBackend(self.settings.db_url, self.settings.db_echo)
        )
        self._fallback_factory = fallback_factory or (
            lambda: FallbackBackend(self.settings.unknown_author)
        )

        self.backend: Optional[Backend] = None
        self.fallback_reason: Optional[str] = None
        self._init_task: Optional[asyncio.Task] = None

        self._like_locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._like_users: defaultdict[tuple[int, int], int] = defaultdict(int)

        self._snapshot_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self.snapshots_written = 0
        self.snapshot_failures = 0
        self.last_snapshot_error: Optional[StorageWriteFailure] = None

        self._backup_job: Optional[aiocron.Cron] = None

    async def __aenter__(self) -> "PersistenceFacade":
        await self.ready()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ───────────────────────────────  INIT  ───────────────────────────────────
    @property
    def mode(self) -> Optional[str]:
        return self.backend.name if self.backend else None

    async def ready(self) -> Backend:
        """Start initialization on first call; every caller awaits the same task."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        return await self._init_task

    async def _initialize(self) -> Backend:
        if self.settings.db_engine == "fallback":
            self.fallback_reason = "relational engine disabled by configuration"
        else:
            backend = None
            try:
                backend = self._relational_factory()
                await backend.start(await self._load_slot(backend.snapshot_key))
            except Exception as e:
                # définitif pour la durée du process, jamais retenté
                self.fallback_reason = f"{type(e).__name__}: {e}"
                logger.warning("relational engine unavailable, using fallback store: %s",
                               self.fallback_reason)
                if backend is not None:
                    await backend.close()
            else:
                return self._activate(backend)

        backend = self._fallback_factory()
        await backend.start(await self._load_slot(backend.snapshot_key))
        return self._activate(backend)

    def _activate(self, backend: Backend) -> Backend:
        self.backend = backend
        logger.info("persistence ready (%s backend)", backend.name)
        if self.settings.backup_enabled:
            self._backup_job = aiocron.crontab(self.settings.backup_cron, func=self.backup, start=True)
        return backend

    async def _load_slot(self, key: str) -> Optional[bytes]:
        try:
            return await self.store.load(key)
        except OSError as e:
            logger.warning("could not read slot %s, starting without it: %s", key, e)
            return None

    async def close(self) -> None:
        if self._init_task is None:
            return
        # init en cours : _activate peut encore lancer le job
        await self._init_task
        if self._backup_job is not None:
            self._backup_job.stop()
            self._backup_job = None
        await self.flush()
        await self.backend.close()

    # ──────────────────────────────  SNAPSHOT  ────────────────────────────────
    def _schedule_snapshot(self) -> None:
        task = asyncio.get_running_loop().create_task(self._write_snapshot())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_snapshot(self, key: Optional[str] = None) -> bool:
        backend = self.backend
        key = key or backend.snapshot_key
        # export dans le verrou : la dernière écriture porte toujours l'état le plus récent
        async with self._snapshot_lock:
            try:
                blob = await backend.export_state()
                await self.store.save(key, blob)
            except Exception as e:
                self.snapshot_failures += 1
                self.last_snapshot_error = StorageWriteFailure(f"{key}: {type(e).__name__}: {e}")
                logger.error("snapshot write failed for %s: %s", key, e)
                return False
        self.snapshots_written += 1
        return True

    async def flush(self) -> None:
        """Wait until every scheduled snapshot write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def snapshot_status(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "pending": len(self._pending),
            "written": self.snapshots_written,
            "failures": self.snapshot_failures,
            "last_error": str(self.last_snapshot_error) if self.last_snapshot_error else None,
        }

    async def save(self) -> bool:
        """Write a snapshot of the active backend now and wait for it."""
        await self.ready()
        return await self._write_snapshot()

    async def backup(self) -> bool:
        """Copy the current store into the auxiliary backup slot."""
        await self.ready()
        ok = await self._write_snapshot(BACKUP_KEY)
        if ok:
            logger.debug("backup written to %s", BACKUP_KEY)
        return ok

    async def export_snapshot(self) -> bytes:
        backend = await self.ready()
        return await backend.export_state()

    async def import_snapshot(self, blob: bytes) -> None:
        """Replace the whole store with ``blob``; raises CorruptSnapshot and keeps the old state."""
        backend = await self.ready()
        await backend.load_state(blob)
        self._schedule_snapshot()

    async def restore_backup(self) -> bool:
        blob = await self.store.load(BACKUP_KEY)
        if blob is None:
            return False
        await self.import_snapshot(blob)
        return True

    async def verify_counters(self) -> dict[int, tuple[int, int]]:
        backend = await self.ready()
        return await backend.counter_mismatches()

    # ──────────────────────────────  MUTATIONS  ───────────────────────────────
    async def _mutate(self, op: str, *args) -> OpResult:
        backend = await self.ready()
        try:
            new_id = await getattr(backend, op)(*args)
        except ConstraintViolation as e:
            logger.info("%s refused: %s", op, e)
            return OpResult.fail(str(e))
        self._schedule_snapshot()
        return OpResult.ok(id=new_id)

    @staticmethod
    def _missing(**fields) -> Optional[OpResult]:
        for name, value in fields.items():
            if value is None or (isinstance(value, str) and not value):
                return OpResult.fail(f"Missing required field: {name}")
        return None

    async def create_user(self, name: str, email: str, password: str) -> OpResult:
        return self._missing(name=name, email=email, password=password) or \
            await self._mutate("create_user", name, email, password)

    async def create_post(
        self,
        title: str,
        description: str,
        tags: Optional[str],
        image_data: Optional[str],
        audio_data: Optional[str],
        video_data: Optional[str],
        author_id: int,
    ) -> OpResult:
        return self._missing(title=title, description=description, author_id=author_id) or \
            await self._mutate("create_post", title, description, tags or None,
                               image_data, audio_data, video_data, author_id)

    async def add_comment(self, post_id: int, user_id: int, content: str) -> OpResult:
        return self._missing(post_id=post_id, user_id=user_id, content=content) or \
            await self._mutate("add_comment", post_id, user_id, content)

    @asynccontextmanager
    async def _like_lock(self, post_id: int, user_id: int) -> AsyncIterator[None]:
        key = (post_id, user_id)
        lock = self._like_locks.setdefault(key, asyncio.Lock())
        self._like_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._like_users[key] -= 1
            if self._like_users[key] == 0:
                del self._like_users[key]
                del self._like_locks[key]

    async def toggle_like(self, post_id: int, user_id: int) -> OpResult:
        backend = await self.ready()
        async with self._like_lock(post_id, user_id):
            try:
                liked = await backend.toggle_like(post_id, user_id)
            except ConstraintViolation as e:
                logger.info("toggle_like refused: %s", e)
                return OpResult.fail(str(e))
        self._schedule_snapshot()
        return OpResult.ok(liked=liked)

    # ───────────────────────────────  LECTURES  ───────────────────────────────
    async def authenticate_user(self, email: str, password: str) -> Optional[UserRecord]:
        backend = await self.ready()
        return await backend.authenticate_user(email, password)

    async def get_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        backend = await self.ready()
        return await backend.get_user_by_id(user_id)

    async def get_all_posts(self) -> list[PostRecord]:
        backend = await self.ready()
        return await backend.get_all_posts()

    async def get_post_by_id(self, post_id: int) -> Optional[PostRecord]:
        backend = await self.ready()
        return await backend.get_post_by_id(post_id)

    async def get_comments_by_post_id(self, post_id: int) -> list[CommentRecord]:
        backend = await self.ready()
        return await backend.get_comments_by_post_id(post_id)

    async def is_post_liked_by_user(self, post_id: int, user_id: int) -> bool:
        backend = await self.ready()
        return await backend.is_post_liked_by_user(post_id, user_id)
