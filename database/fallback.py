"""Fallback backend: four record lists in process memory.

Used when the relational engine cannot be built. Records are plain
JSON-ready dicts, so the snapshot is a direct dump of the collections.
Uniqueness and counters are maintained by hand; foreign references are not
enforced and resolve to a placeholder name when dangling.

None of the operations awaits anything, so each one runs to completion
without interleaving on the event loop.
"""
from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Optional

from config import FALLBACK_KEY, UNKNOWN_AUTHOR
from database.codec import decode_documents, empty_documents, encode_documents
from database.errors import ConstraintViolation, CorruptSnapshot
from database.records import CommentRecord, PostRecord, UserRecord
from database.utils import utcnow

logger = logging.getLogger(__name__)


def _ts(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


class FallbackBackend:
    name = "fallback"
    snapshot_key = FALLBACK_KEY

    def __init__(self, unknown_author: str = UNKNOWN_AUTHOR):
        self.unknown_author = unknown_author
        self._state: dict[str, Any] = empty_documents()

    # ───────────────────────────────  CYCLE  ──────────────────────────────────
    async def start(self, blob: Optional[bytes]) -> None:
        self._state = empty_documents()
        if blob is None:
            return
        try:
            self._adopt(decode_documents(blob))
            logger.info("fallback store restored: %d users, %d posts",
                        len(self._state["users"]), len(self._state["posts"]))
        except CorruptSnapshot as e:
            logger.warning("corrupt fallback snapshot ignored, starting empty: %s", e)
            self._state = empty_documents()

    async def close(self) -> None:
        pass

    async def export_state(self) -> bytes:
        return encode_documents(self._state)

    async def load_state(self, blob: bytes) -> None:
        self._adopt(decode_documents(blob))

    def _adopt(self, state: dict[str, Any]) -> None:
        try:
            highest = max(
                (row["id"] for name in ("users", "posts", "comments", "likes") for row in state[name]),
                default=0,
            )
            state["next_id"] = max(state["next_id"], highest + 1)
        except (KeyError, TypeError) as e:
            raise CorruptSnapshot(f"cannot recompute id counter: {e}") from e
        self._state = state

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the raw collections."""
        return copy.deepcopy(self._state)

    def _next_id(self) -> int:
        nid = self._state["next_id"]
        self._state["next_id"] = nid + 1
        return nid

    # --- Jointures émulées ----------------------------------------------------------
    def _user_name(self, user_id: int) -> str:
        user = next((u for u in self._state["users"] if u["id"] == user_id), None)
        return user["name"] if user else self.unknown_author

    def _post_record(self, p: dict[str, Any]) -> PostRecord:
        return PostRecord(
            id=p["id"],
            title=p["title"],
            description=p["description"],
            tags=p.get("tags"),
            image_data=p.get("image_data"),
            audio_data=p.get("audio_data"),
            video_data=p.get("video_data"),
            author_id=p["author_id"],
            created_at=_ts(p["created_at"]),
            likes_count=p.get("likes_count", 0),
            author_name=self._user_name(p["author_id"]),
        )

    @staticmethod
    def _user_record(u: dict[str, Any]) -> UserRecord:
        return UserRecord(id=u["id"], name=u["name"], email=u["email"], created_at=_ts(u["created_at"]))

    # ───────────────────────────────  USERS  ──────────────────────────────────
    async def create_user(self, name: str, email: str, password: str) -> int:
        users = self._state["users"]
        if any(u["email"] == email for u in users):
            raise ConstraintViolation("Email already exists")
        uid = self._next_id()
        users.append({
            "id": uid,
            "name": name,
            "email": email,
            "password": password,
            "created_at": utcnow().isoformat(),
        })
        return uid

    async def authenticate_user(self, email: str, password: str) -> Optional[UserRecord]:
        user = next(
            (u for u in self._state["users"] if u["email"] == email and u["password"] == password),
            None,
        )
        return self._user_record(user) if user else None

    async def get_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        user = next((u for u in self._state["users"] if u["id"] == user_id), None)
        return self._user_record(user) if user else None

    # ───────────────────────────────  POSTS  ──────────────────────────────────
    async def create_post(self, title, description, tags, image_data, audio_data, video_data, author_id) -> int:
        pid = self._next_id()
        # le plus récent en tête : get_all_posts ne trie pas
        self._state["posts"].insert(0, {
            "id": pid,
            "title": title,
            "description": description,
            "tags": tags,
            "image_data": image_data,
            "audio_data": audio_data,
            "video_data": video_data,
            "author_id": author_id,
            "created_at": utcnow().isoformat(),
            "likes_count": 0,
        })
        return pid

    async def get_all_posts(self) -> list[PostRecord]:
        return [self._post_record(p) for p in self._state["posts"]]

    async def get_post_by_id(self, post_id: int) -> Optional[PostRecord]:
        post = next((p for p in self._state["posts"] if p["id"] == post_id), None)
        return self._post_record(post) if post else None

    # ──────────────────────────────  COMMENTS  ────────────────────────────────
    async def add_comment(self, post_id: int, user_id: int, content: str) -> int:
        cid = self._next_id()
        self._state["comments"].append({
            "id": cid,
            "post_id": post_id,
            "user_id": user_id,
            "content": content,
            "created_at": utcnow().isoformat(),
        })
        return cid

    async def get_comments_by_post_id(self, post_id: int) -> list[CommentRecord]:
        rows = [c for c in self._state["comments"] if c["post_id"] == post_id]
        rows.sort(key=lambda c: _ts(c["created_at"]))
        return [
            CommentRecord(
                id=c["id"], post_id=c["post_id"], user_id=c["user_id"],
                content=c["content"], created_at=_ts(c["created_at"]),
                user_name=self._user_name(c["user_id"]),
            )
            for c in rows
        ]

    # ───────────────────────────────  LIKES  ──────────────────────────────────
    async def toggle_like(self, post_id: int, user_id: int) -> bool:
        likes = self._state["likes"]
        idx = next((i for i, l in enumerate(likes)
                    if l["post_id"] == post_id and l["user_id"] == user_id), None)
        post = next((p for p in self._state["posts"] if p["id"] == post_id), None)

        if idx is not None:
            del likes[idx]
            if post is not None:
                post["likes_count"] = max(0, post.get("likes_count", 0) - 1)
            return False

        likes.append({
            "id": self._next_id(),
            "post_id": post_id,
            "user_id": user_id,
            "created_at": utcnow().isoformat(),
        })
        if post is not None:
            post["likes_count"] = post.get("likes_count", 0) + 1
        return True

    async def is_post_liked_by_user(self, post_id: int, user_id: int) -> bool:
        return any(l["post_id"] == post_id and l["user_id"] == user_id for l in self._state["likes"])

    # ──────────────────────────────  CONTRÔLE  ────────────────────────────────
    async def counter_mismatches(self) -> dict[int, tuple[int, int]]:
        actual: dict[int, int] = {}
        for l in self._state["likes"]:
            actual[l["post_id"]] = actual.get(l["post_id"], 0) + 1
        out = {}
        for p in self._state["posts"]:
            stored, real = p.get("likes_count", 0), actual.get(p["id"], 0)
            if stored != real:
                out[p["id"]] = (stored, real)
        return out
