"""Capability set shared by the relational engine and the fallback store.

The facade picks one implementation at startup and only ever talks to it
through this interface.
"""
from __future__ import annotations

from typing import Optional, Protocol

from database.records import CommentRecord, PostRecord, UserRecord


class Backend(Protocol):
    name: str
    snapshot_key: str

    async def start(self, blob: Optional[bytes]) -> None:
        """Build the store, replaying ``blob`` when a previous snapshot exists."""
        ...

    async def close(self) -> None: ...

    async def export_state(self) -> bytes: ...

    async def load_state(self, blob: bytes) -> None:
        """Replace every record with the contents of ``blob`` (raises CorruptSnapshot)."""
        ...

    # users
    async def create_user(self, name: str, email: str, password: str) -> int: ...
    async def authenticate_user(self, email: str, password: str) -> Optional[UserRecord]: ...
    async def get_user_by_id(self, user_id: int) -> Optional[UserRecord]: ...

    # posts
    async def create_post(
        self,
        title: str,
        description: str,
        tags: Optional[str],
        image_data: Optional[str],
        audio_data: Optional[str],
        video_data: Optional[str],
        author_id: int,
    ) -> int: ...
    async def get_all_posts(self) -> list[PostRecord]: ...
    async def get_post_by_id(self, post_id: int) -> Optional[PostRecord]: ...

    # comments
    async def add_comment(self, post_id: int, user_id: int, content: str) -> int: ...
    async def get_comments_by_post_id(self, post_id: int) -> list[CommentRecord]: ...

    # likes
    async def toggle_like(self, post_id: int, user_id: int) -> bool: ...
    async def is_post_liked_by_user(self, post_id: int, user_id: int) -> bool: ...

    async def counter_mismatches(self) -> dict[int, tuple[int, int]]:
        """Posts whose stored like counter disagrees with their like rows."""
        ...
