"""Relational backend: SQLAlchemy asyncio over an in-memory SQLite database.

The whole database lives in one shared connection (``StaticPool``), so every
statement goes through ``self._lock``; snapshots are the engine's own SQL
dump, replayed with ``executescript`` on restore.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import func, inspect, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config import DB_URL, SNAPSHOT_KEY
from database.codec import decode_sql, encode_sql
from database.comment import Comment
from database.database import Base, init_db, make_engine, make_session_factory
from database.errors import ConstraintViolation, CorruptSnapshot, EngineUnavailable
from database.post import Post
from database.post_like import PostLike
from database.records import CommentRecord, PostRecord, UserRecord
from database.user import User

logger = logging.getLogger(__name__)


def _constraint_message(err: IntegrityError) -> str:
    msg = str(err.orig) if err.orig is not None else str(err)
    if "users.email" in msg:
        return "Email already exists"
    return msg


def _user_record(u: User) -> UserRecord:
    return UserRecord(id=u.id, name=u.name, email=u.email, created_at=u.created_at)


def _post_record(p: Post, author_name: str) -> PostRecord:
    return PostRecord(
        id=p.id,
        title=p.title,
        description=p.description,
        tags=p.tags,
        image_data=p.image_data,
        audio_data=p.audio_data,
        video_data=p.video_data,
        author_id=p.author_id,
        created_at=p.created_at,
        likes_count=p.likes_count,
        author_name=author_name,
    )


class RelationalBackend:
    name = "relational"
    snapshot_key = SNAPSHOT_KEY

    def __init__(self, url: str = DB_URL, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    # ───────────────────────────────  CYCLE  ──────────────────────────────────
    async def start(self, blob: Optional[bytes]) -> None:
        try:
            self.engine = make_engine(self.url, self.echo)
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            if self.engine is not None:
                await self.engine.dispose()
                self.engine = None
            raise EngineUnavailable(f"{type(e).__name__}: {e}") from e

        self._sessions = make_session_factory(self.engine)
        if blob is not None:
            try:
                await self._replay(blob)
                logger.info("relational store restored from snapshot (%d bytes)", len(blob))
            except CorruptSnapshot as e:
                # perte acceptée : on repart d'un schéma vide
                logger.warning("corrupt snapshot ignored, starting fresh: %s", e)
                await self._reset()
        await self._create_schema()

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

    async def export_state(self) -> bytes:
        async with self._lock:
            async with self.engine.connect() as conn:
                raw = await conn.get_raw_connection()
                lines = [line async for line in raw.driver_connection.iterdump()]
        return encode_sql("\n".join(lines))

    async def load_state(self, blob: bytes) -> None:
        decode_sql(blob)        # refuse early on a bad header
        previous = await self.export_state()
        await self._reset()
        try:
            await self._replay(blob)
        except CorruptSnapshot:
            await self._reset()
            await self._replay(previous)
            raise
        await self._create_schema()

    async def _replay(self, blob: bytes) -> None:
        script = decode_sql(blob)
        async with self._lock:
            async with self.engine.connect() as conn:
                raw = await conn.get_raw_connection()
                driver = raw.driver_connection
                await driver.commit()
                # le dump suit l'ordre alphabétique des tables, pas celui des FK
                await driver.execute("PRAGMA foreign_keys=OFF")
                try:
                    await driver.executescript(script)
                except sqlite3.Error as e:
                    await driver.rollback()
                    raise CorruptSnapshot(f"SQL dump failed to replay: {e}") from e
                finally:
                    await driver.execute("PRAGMA foreign_keys=ON")
        await self._check_schema()

    async def _check_schema(self) -> None:
        """Refuse a replayed dump whose tables lack columns the models write."""
        def _lacking(sync_conn) -> list[str]:
            insp = inspect(sync_conn)
            present = set(insp.get_table_names())
            out = []
            for table in Base.metadata.sorted_tables:
                if table.name not in present:
                    continue        # create_all s'en charge
                have = {c["name"] for c in insp.get_columns(table.name)}
                out += [f"{table.name}.{c.name}" for c in table.columns if c.name not in have]
            return out

        async with self._lock:
            async with self.engine.connect() as conn:
                lacking = await conn.run_sync(_lacking)
        if lacking:
            raise CorruptSnapshot(f"snapshot schema lacks columns: {', '.join(lacking)}")

    async def _create_schema(self) -> None:
        async with self._lock:
            await init_db(self.engine)

    async def _reset(self) -> None:
        """Drop every table; the caller replays a dump or recreates the schema."""
        async with self._lock:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._lock:
            async with self._sessions() as ses:
                yield ses

    async def _insert(self, row) -> int:
        async with self._session() as ses:
            ses.add(row)
            try:
                await ses.commit()
            except IntegrityError as e:
                await ses.rollback()
                raise ConstraintViolation(_constraint_message(e)) from e
            return row.id

    # ───────────────────────────────  USERS  ──────────────────────────────────
    async def create_user(self, name: str, email: str, password: str) -> int:
        return await self._insert(User(name=name, email=email, password=password))

    async def authenticate_user(self, email: str, password: str) -> Optional[UserRecord]:
        async with self._session() as ses:
            user = await ses.scalar(
                select(User).where(User.email == email, User.password == password)
            )
            return _user_record(user) if user else None

    async def get_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        async with self._session() as ses:
            user = await ses.get(User, user_id)
            return _user_record(user) if user else None

    # ───────────────────────────────  POSTS  ──────────────────────────────────
    async def create_post(self, title, description, tags, image_data, audio_data, video_data, author_id) -> int:
        return await self._insert(Post(
            title=title, description=description, tags=tags,
            image_data=image_data, audio_data=audio_data, video_data=video_data,
            author_id=author_id, likes_count=0,
        ))

    async def get_all_posts(self) -> list[PostRecord]:
        async with self._session() as ses:
            rows = await ses.execute(
                select(Post, User.name)
                .join(User, Post.author_id == User.id)
                .order_by(Post.created_at.desc(), Post.id.desc())
            )
            return [_post_record(p, name) for p, name in rows.all()]

    async def get_post_by_id(self, post_id: int) -> Optional[PostRecord]:
        async with self._session() as ses:
            row = (await ses.execute(
                select(Post, User.name)
                .join(User, Post.author_id == User.id)
                .where(Post.id == post_id)
            )).first()
            return _post_record(*row) if row else None

    # ──────────────────────────────  COMMENTS  ────────────────────────────────
    async def add_comment(self, post_id: int, user_id: int, content: str) -> int:
        return await self._insert(Comment(post_id=post_id, user_id=user_id, content=content))

    async def get_comments_by_post_id(self, post_id: int) -> list[CommentRecord]:
        async with self._session() as ses:
            rows = await ses.execute(
                select(Comment, User.name)
                .join(User, Comment.user_id == User.id)
                .where(Comment.post_id == post_id)
                .order_by(Comment.created_at.asc(), Comment.id.asc())
            )
            return [
                CommentRecord(
                    id=c.id, post_id=c.post_id, user_id=c.user_id,
                    content=c.content, created_at=c.created_at, user_name=name,
                )
                for c, name in rows.all()
            ]

    # ───────────────────────────────  LIKES  ──────────────────────────────────
    async def toggle_like(self, post_id: int, user_id: int) -> bool:
        async with self._session() as ses:
            try:
                async with ses.begin():
                    like = await ses.scalar(
                        select(PostLike).where(PostLike.post_id == post_id,
                                               PostLike.user_id == user_id)
                    )
                    if like:
                        await ses.delete(like)
                        delta, liked = -1, False
                    else:
                        ses.add(PostLike(post_id=post_id, user_id=user_id))
                        delta, liked = 1, True
                    await ses.flush()
                    await ses.execute(
                        update(Post)
                        .where(Post.id == post_id)
                        .values(likes_count=Post.likes_count + delta)
                    )
            except IntegrityError as e:
                raise ConstraintViolation(_constraint_message(e)) from e
            return liked

    async def is_post_liked_by_user(self, post_id: int, user_id: int) -> bool:
        async with self._session() as ses:
            found = await ses.scalar(
                select(PostLike.id).where(PostLike.post_id == post_id,
                                          PostLike.user_id == user_id)
            )
            return found is not None

    # ──────────────────────────────  CONTRÔLE  ────────────────────────────────
    async def counter_mismatches(self) -> dict[int, tuple[int, int]]:
        """{post_id: (likes_count stocké, nombre réel de likes)} pour les posts incohérents."""
        async with self._session() as ses:
            actual = (
                select(PostLike.post_id, func.count().label("n"))
                .group_by(PostLike.post_id)
                .subquery()
            )
            rows = await ses.execute(
                select(Post.id, Post.likes_count, func.coalesce(actual.c.n, 0))
                .outerjoin(actual, actual.c.post_id == Post.id)
            )
            return {pid: (stored, real) for pid, stored, real in rows.all() if stored != real}
