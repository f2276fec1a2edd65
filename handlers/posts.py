# handlers/posts.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from config import StoreSettings
from database.facade import PersistenceFacade
from database.records import CommentRecord, OpResult, PostRecord
from database.utils import join_tags, split_tags
from handlers.auth import AccountService

logger = logging.getLogger(__name__)

MEDIA_KINDS = ("image", "audio", "video")


@dataclass(frozen=True)
class FeedItem:
    post: PostRecord
    liked: bool = False


@dataclass(frozen=True)
class PostDetail:
    post: PostRecord
    liked: bool = False
    comments: list[CommentRecord] = field(default_factory=list)


def media_size(payload: str) -> int:
    """Taille décodée approximative d'une data-URL base64."""
    _, _, b64 = payload.partition(",")
    b64 = b64.strip()
    return len(b64) * 3 // 4 - b64[-2:].count("=")


class FeedService:
    """Publication, fil d'actualité, likes et commentaires pour l'utilisateur courant."""

    def __init__(self, db: PersistenceFacade, accounts: AccountService,
                 settings: Optional[StoreSettings] = None):
        self.db = db
        self.accounts = accounts
        self.settings = settings or db.settings

    def _check_media(self, kind: str, payload: Optional[str]) -> Optional[str]:
        if not payload:
            return None
        if not payload.startswith(f"data:{kind}/") or ";base64," not in payload:
            return f"Unsupported {kind} payload"
        if media_size(payload) > self.settings.max_media_bytes:
            return f"{kind.capitalize()} is too large"
        return None

    # ───── Publication
    async def publish(self, title: str, description: str, tags_input: str = "",
                      image: Optional[str] = None, audio: Optional[str] = None,
                      video: Optional[str] = None) -> OpResult:
        if not self.accounts.is_logged_in:
            return OpResult.fail("Please login to create a post")
        title, description = (title or "").strip(), (description or "").strip()
        if not title or not description:
            return OpResult.fail("Please fill in all required fields")

        for kind, payload in zip(MEDIA_KINDS, (image, audio, video)):
            problem = self._check_media(kind, payload)
            if problem:
                return OpResult.fail(problem)

        tags = join_tags(split_tags(tags_input))
        result = await self.db.create_post(
            title, description, tags or None,
            image or None, audio or None, video or None,
            self.accounts.current_user.id,
        )
        if not result.success:
            logger.warning("post creation failed: %s", result.error)
        return result

    # ───── Lecture
    async def _liked(self, post_id: int) -> bool:
        user = self.accounts.current_user
        return bool(user) and await self.db.is_post_liked_by_user(post_id, user.id)

    async def feed(self) -> list[FeedItem]:
        posts = await self.db.get_all_posts()
        return [FeedItem(post=p, liked=await self._liked(p.id)) for p in posts]

    async def detail(self, post_id: int) -> Optional[PostDetail]:
        post = await self.db.get_post_by_id(post_id)
        if not post:
            return None
        return PostDetail(
            post=post,
            liked=await self._liked(post_id),
            comments=await self.db.get_comments_by_post_id(post_id),
        )

    # ───── Interactions
    async def like(self, post_id: int) -> OpResult:
        if not self.accounts.is_logged_in:
            return OpResult.fail("Please login to like posts")
        return await self.db.toggle_like(post_id, self.accounts.current_user.id)

    async def comment(self, post_id: int, content: str) -> OpResult:
        if not self.accounts.is_logged_in:
            return OpResult.fail("Please login to comment")
        content = (content or "").strip()
        if not content:
            return OpResult.fail("Please enter a comment")
        return await self.db.add_comment(post_id, self.accounts.current_user.id, content)
