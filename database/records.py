from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any

from database.utils import split_tags


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str
    email: str
    created_at: datetime
    password: str | None = None     # vide dès que le record quitte le backend

    def without_credential(self) -> "UserRecord":
        return replace(self, password=None)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserRecord":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            email=data["email"],
            created_at=datetime.fromisoformat(data["created_at"]),
            password=data.get("password"),
        )


@dataclass(frozen=True)
class PostRecord:
    id: int
    title: str
    description: str
    tags: str | None
    image_data: str | None
    audio_data: str | None
    video_data: str | None
    author_id: int
    created_at: datetime
    likes_count: int
    author_name: str

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)


@dataclass(frozen=True)
class CommentRecord:
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime
    user_name: str


@dataclass(frozen=True)
class OpResult:
    """Outcome of a mutating call: ``success`` plus error text, toggle state or new id."""

    success: bool
    error: str | None = None
    liked: bool | None = None
    id: int | None = None

    @classmethod
    def ok(cls, **kwargs: Any) -> "OpResult":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str) -> "OpResult":
        return cls(success=False, error=error)
