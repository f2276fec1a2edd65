from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database.database import Base
from database.utils import utcnow


class User(Base):
    """Comptes inscrits."""

    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id:         Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:       Mapped[str] = mapped_column(Text, nullable=False)
    # unique, sensible à la casse (tel que saisi)
    email:      Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    # hash opaque, jamais le mot de passe en clair
    password:   Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
