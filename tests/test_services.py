"""AccountService / FeedService on top of the facade."""
from __future__ import annotations

import pytest
import pytest_asyncio

from config import CURRENT_USER_KEY
from database.utils import legacy_hash
from handlers import AccountService, FeedService

PNG = "data:image/png;base64,"


@pytest_asyncio.fixture()
async def accounts(db) -> AccountService:
    return AccountService(db)


@pytest_asyncio.fixture()
async def feed(db, accounts) -> FeedService:
    return FeedService(db, accounts)


async def _login(accounts, name="Alice", email="alice@x.com", password="secret1"):
    await accounts.register(name, email, password, password)
    res = await accounts.login(email, password)
    assert res.success, res.error
    return res.id


# ──────────────────────────────  Comptes  ────────────────────────────────
@pytest.mark.asyncio
@pytest.mark.parametrize("args, error", [
    (("", "a@x.com", "secret1", "secret1"), "Please fill in all fields"),
    (("A", "a@x.com", "secret1", "secret2"), "Passwords do not match"),
    (("A", "a@x.com", "abc", "abc"), "Password must be at least 6 characters long"),
    (("A", "not-an-email", "secret1", "secret1"), "Please enter a valid email address"),
])
async def test_register_validation(accounts, args, error):
    res = await accounts.register(*args)
    assert res.success is False and res.error == error


@pytest.mark.asyncio
async def test_register_stores_hashed_password(db, accounts):
    res = await accounts.register("Alice", "alice@x.com", "secret1", "secret1")
    assert res.success
    assert await db.authenticate_user("alice@x.com", "secret1") is None
    assert (await db.authenticate_user("alice@x.com", legacy_hash("secret1"))).id == res.id

    again = await accounts.register("Other", "alice@x.com", "secret1", "secret1")
    assert again.error == "Email already exists"


@pytest.mark.asyncio
async def test_login_logout_restore(db, accounts):
    uid = await _login(accounts)
    assert accounts.is_logged_in and accounts.current_user.id == uid

    later = AccountService(db)
    restored = await later.restore()
    assert restored.id == uid and restored.name == "Alice"

    await accounts.logout()
    assert not accounts.is_logged_in
    assert await db.store.load(CURRENT_USER_KEY) is None
    assert await AccountService(db).restore() is None


@pytest.mark.asyncio
async def test_bad_credentials(accounts):
    await accounts.register("Alice", "alice@x.com", "secret1", "secret1")
    res = await accounts.login("alice@x.com", "wrong-pass")
    assert res.error == "Invalid email or password"
    assert (await accounts.login("", "x")).error == "Please fill in all fields"
    assert not accounts.is_logged_in


@pytest.mark.asyncio
async def test_unreadable_session_is_forgotten(db, accounts):
    await db.store.save(CURRENT_USER_KEY, b"{not json")
    assert await accounts.restore() is None
    assert await db.store.load(CURRENT_USER_KEY) is None


# ───────────────────────────────  Posts  ─────────────────────────────────
@pytest.mark.asyncio
async def test_actions_need_login(feed):
    assert (await feed.publish("t", "d")).error == "Please login to create a post"
    assert (await feed.like(1)).error == "Please login to like posts"
    assert (await feed.comment(1, "hi")).error == "Please login to comment"


@pytest.mark.asyncio
async def test_publish_normalizes_input(feed, accounts):
    await _login(accounts)
    assert (await feed.publish("  ", "d")).error == "Please fill in all required fields"

    res = await feed.publish("  Intro ", " Hello ", " python, sql,, web ")
    assert res.success
    post = (await feed.detail(res.id)).post
    assert (post.title, post.description) == ("Intro", "Hello")
    assert post.tags == "python,sql,web"

    bare = await feed.publish("No tags", "d", "  ,  ")
    assert (await feed.detail(bare.id)).post.tags is None


@pytest.mark.asyncio
async def test_publish_checks_media(feed, accounts):
    await _login(accounts)
    assert (await feed.publish("t", "d", image="http://x/y.png")).error == "Unsupported image payload"
    assert (await feed.publish("t", "d", audio=PNG + "AAAA")).error == "Unsupported audio payload"
    assert (await feed.publish("t", "d", image=PNG + "A" * 2000)).error == "Image is too large"

    res = await feed.publish("t", "d", image=PNG + "iVBORw0KGgo=")
    assert res.success
    assert (await feed.detail(res.id)).post.image_data == PNG + "iVBORw0KGgo="


@pytest.mark.asyncio
async def test_feed_marks_liked_posts(feed, accounts):
    await _login(accounts)
    first = (await feed.publish("one", "d")).id
    second = (await feed.publish("two", "d")).id

    assert (await feed.like(first)).liked is True
    items = await feed.feed()
    assert [(i.post.id, i.liked) for i in items] == [(second, False), (first, True)]

    await accounts.logout()
    assert not any(i.liked for i in await feed.feed())


@pytest.mark.asyncio
async def test_comment_and_detail(feed, accounts):
    await _login(accounts)
    pid = (await feed.publish("t", "d")).id
    assert (await feed.comment(pid, "   ")).error == "Please enter a comment"
    assert (await feed.comment(pid, "  nice  ")).success

    detail = await feed.detail(pid)
    assert [c.content for c in detail.comments] == ["nice"]
    assert detail.comments[0].user_name == "Alice"
    assert detail.liked is False
    assert await feed.detail(pid + 100) is None
