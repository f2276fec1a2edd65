"""Snapshot codec: exact round trips and corrupt-blob detection."""
import pytest

from database.codec import (
    DOC_MAGIC, SQL_MAGIC, decode_documents, decode_sql, empty_documents,
    encode_documents, encode_sql, snapshot_kind,
)
from database.errors import CorruptSnapshot


def test_empty_store_round_trip():
    state = empty_documents()
    assert decode_documents(encode_documents(state)) == state


@pytest.mark.asyncio
async def test_single_entity_store_round_trip(fallback):
    uid = await fallback.create_user("Alice", "alice@x.com", "h")
    pid = await fallback.create_post("Intro", "Hello", "a,b", None, None, None, uid)
    await fallback.add_comment(pid, uid, "first")
    await fallback.toggle_like(pid, uid)

    state = fallback.snapshot()
    assert decode_documents(encode_documents(state)) == state


@pytest.mark.asyncio
async def test_multi_post_overlapping_likes_round_trip(fallback):
    alice = await fallback.create_user("Alice", "alice@x.com", "h")
    bob = await fallback.create_user("Bob", "bob@x.com", "h")
    p1 = await fallback.create_post("One", "d", None, "data:image/png;base64,AAAA", None, None, alice)
    p2 = await fallback.create_post("Deux", "é ü 中", "x", None, None, None, bob)
    for post in (p1, p2):
        for user in (alice, bob):
            await fallback.toggle_like(post, user)
    await fallback.toggle_like(p2, alice)

    state = fallback.snapshot()
    assert decode_documents(encode_documents(state)) == state


def test_sql_round_trip():
    script = 'BEGIN TRANSACTION;\nCREATE TABLE t (x TEXT);\nINSERT INTO "t" VALUES(\'a\nb\');\nCOMMIT;'
    assert decode_sql(encode_sql(script)) == script


def test_snapshot_kind():
    assert snapshot_kind(encode_sql("COMMIT;")) == "sql"
    assert snapshot_kind(encode_documents(empty_documents())) == "doc"
    assert snapshot_kind(b"SQLite format 3\x00") is None


@pytest.mark.parametrize("blob", [
    b"",
    b"garbage",
    DOC_MAGIC + b"{not json",
    DOC_MAGIC + b"[]",
    DOC_MAGIC + b'{"users": {"id": 1}}',
    DOC_MAGIC + b'{"users": [{"name": "no id"}]}',
    DOC_MAGIC + b'{"next_id": 0}',
    DOC_MAGIC + b"\xff\xfe",
])
def test_corrupt_documents(blob):
    with pytest.raises(CorruptSnapshot):
        decode_documents(blob)


def test_sql_blob_is_not_a_document():
    with pytest.raises(CorruptSnapshot):
        decode_documents(encode_sql("COMMIT;"))


def test_truncated_sql_dump():
    with pytest.raises(CorruptSnapshot):
        decode_sql(SQL_MAGIC + b"BEGIN TRANSACTION;\nCREATE TABLE t (x")


def test_non_bytes_rejected():
    with pytest.raises(CorruptSnapshot):
        decode_sql("COMMIT;")  # type: ignore[arg-type]


@pytest.mark.parametrize("blob", [
    DOC_MAGIC + b'{"users": [{"id": "x"}]}',
    DOC_MAGIC + b'{"posts": [{"id": 1}]}',
    DOC_MAGIC + b'{"users": [{"id": true, "name": "A", "email": "a@x.com", "password": "h", "created_at": "2024-01-01T00:00:00"}]}',
    DOC_MAGIC + b'{"users": [{"id": 1, "name": "A", "email": "a@x.com", "password": "h", "created_at": "yesterday"}]}',
    DOC_MAGIC + b'{"comments": [{"id": 1, "post_id": "1", "user_id": 1, "content": "c", "created_at": "2024-01-01T00:00:00"}]}',
    DOC_MAGIC + b'{"posts": [{"id": 1, "title": "t", "description": "d", "author_id": 1, "created_at": "2024-01-01T00:00:00", "likes_count": "3"}]}',
    DOC_MAGIC + b'{"likes": [{"id": 1, "post_id": 1}]}',
])
def test_rows_with_bad_fields(blob):
    with pytest.raises(CorruptSnapshot):
        decode_documents(blob)
