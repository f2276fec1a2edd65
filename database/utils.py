from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ───────────────────────────────  TEMPS  ──────────────────────────────────
def utcnow() -> datetime:
    """UTC naïf, à la microseconde (SQLite ne garde pas le fuseau)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ────────────────────────────  IDENTIFIANTS  ──────────────────────────────
def legacy_hash(password: str) -> str:
    """
    Hash historique des mots de passe : h = h*31 + code, tronqué en int32 signé.
    Calculé sur les unités UTF-16 (paires de substitution comprises hors BMP).
    Placeholder, PAS une protection cryptographique.
    """
    units = password.encode("utf-16-le")
    h = 0
    for i in range(0, len(units), 2):
        h = (h * 31 + int.from_bytes(units[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return str(h)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


# ────────────────────────────────  TAGS  ──────────────────────────────────
def split_tags(raw: str | None) -> list[str]:
    """'python, sql,,web ' -> ['python', 'sql', 'web']"""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def join_tags(tags: Iterable[str]) -> str:
    return ",".join(t.strip() for t in tags if t and t.strip())
