"""Snapshot codec: whole store <-> opaque bytes.

Two formats, told apart by a short magic header:

* ``RKSQL1`` - SQL text dump of the relational engine (``iterdump`` output),
  replayed verbatim to rebuild the database.
* ``RKDOC1`` - JSON document holding the four fallback collections and the
  id counter.

Every decoding problem surfaces as :class:`CorruptSnapshot`.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from database.errors import CorruptSnapshot

SQL_MAGIC = b"RKSQL1\n"
DOC_MAGIC = b"RKDOC1\n"

COLLECTIONS = ("users", "posts", "comments", "likes")


def _strip(blob: bytes, magic: bytes) -> str:
    if not isinstance(blob, (bytes, bytearray)):
        raise CorruptSnapshot(f"snapshot must be bytes, got {type(blob).__name__}")
    if not blob.startswith(magic):
        raise CorruptSnapshot(f"unknown snapshot header {bytes(blob[:len(magic)])!r}")
    try:
        return bytes(blob[len(magic):]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptSnapshot(f"snapshot is not valid UTF-8: {e}") from e


def snapshot_kind(blob: bytes) -> str | None:
    """'sql', 'doc' or None when the header is not recognised."""
    if blob.startswith(SQL_MAGIC):
        return "sql"
    if blob.startswith(DOC_MAGIC):
        return "doc"
    return None


# ─────────────────────────────  SQL dump  ─────────────────────────────────
def encode_sql(script: str) -> bytes:
    return SQL_MAGIC + script.encode("utf-8")


def decode_sql(blob: bytes) -> str:
    script = _strip(blob, SQL_MAGIC)
    if script.strip() and not script.rstrip().endswith(";"):
        raise CorruptSnapshot("SQL dump is truncated")
    return script


# ─────────────────────────────  Documents  ────────────────────────────────
# champs obligatoires par collection : (nom, type attendu)
REQUIRED_FIELDS: dict[str, tuple[tuple[str, type], ...]] = {
    "users": (("id", int), ("name", str), ("email", str), ("password", str), ("created_at", str)),
    "posts": (("id", int), ("title", str), ("description", str), ("author_id", int), ("created_at", str)),
    "comments": (("id", int), ("post_id", int), ("user_id", int), ("content", str), ("created_at", str)),
    "likes": (("id", int), ("post_id", int), ("user_id", int)),
}
OPTIONAL_FIELDS: dict[str, tuple[tuple[str, type], ...]] = {
    "posts": (("tags", str), ("image_data", str), ("audio_data", str), ("video_data", str),
              ("likes_count", int)),
    "likes": (("created_at", str),),
}


def empty_documents() -> dict[str, Any]:
    return {"users": [], "posts": [], "comments": [], "likes": [], "next_id": 1}


def encode_documents(state: dict[str, Any]) -> bytes:
    payload = {name: state.get(name, []) for name in COLLECTIONS}
    payload["next_id"] = int(state.get("next_id", 1))
    return DOC_MAGIC + json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def _is(value: Any, kind: type) -> bool:
    # bool est un int pour Python, pas pour nous
    return isinstance(value, kind) and not isinstance(value, bool)


def _check_row(name: str, row: Any) -> None:
    if not isinstance(row, dict):
        raise CorruptSnapshot(f"collection {name!r} holds a non-object row")
    for field, kind in REQUIRED_FIELDS[name]:
        if not _is(row.get(field), kind):
            raise CorruptSnapshot(f"{name} row {row.get('id')!r}: bad or missing {field!r}")
    for field, kind in OPTIONAL_FIELDS.get(name, ()):
        value = row.get(field)
        if value is not None and not _is(value, kind):
            raise CorruptSnapshot(f"{name} row {row['id']}: bad {field!r}")
    if "created_at" in row:
        try:
            datetime.fromisoformat(row["created_at"])
        except ValueError as e:
            raise CorruptSnapshot(f"{name} row {row['id']}: bad timestamp") from e


def decode_documents(blob: bytes) -> dict[str, Any]:
    text = _strip(blob, DOC_MAGIC)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptSnapshot(f"document snapshot is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise CorruptSnapshot("document snapshot must be an object")

    state: dict[str, Any] = {}
    for name in COLLECTIONS:
        rows = payload.get(name, [])
        if not isinstance(rows, list):
            raise CorruptSnapshot(f"collection {name!r} is malformed")
        for row in rows:
            _check_row(name, row)
        state[name] = rows
    next_id = payload.get("next_id", 1)
    if not _is(next_id, int) or next_id < 1:
        raise CorruptSnapshot(f"bad id counter {next_id!r}")
    state["next_id"] = next_id
    return state
