import pytest

from chatbridge.core.errors import StoreError
from chatbridge.core.types import SenderType
from chatbridge.storage.database import Database
from chatbridge.storage.message_repo import MessageStore


@pytest.mark.asyncio
async def test_append_returns_unread_record(store):
    record = await store.append("u1", "bot-1", SenderType.BOT, "hi")

    assert record.id is not None
    assert record.chat_id == "u1"
    assert record.sender_type is SenderType.BOT
    assert record.is_read is False
    assert record.timestamp.tzinfo is not None


@pytest.mark.asyncio
async def test_unread_is_scoped_to_chat_and_oldest_first(store):
    await store.append("u1", "bot-1", SenderType.BOT, "first")
    await store.append("other", "bot-1", SenderType.BOT, "elsewhere")
    await store.append("u1", "u1", SenderType.USER, "second")

    unread = await store.unread("u1")

    assert [m.content for m in unread] == ["first", "second"]


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(store):
    await store.append("u1", "bot-1", SenderType.BOT, "a")
    await store.append("u1", "bot-1", SenderType.BOT, "b")

    assert await store.mark_read("u1") == 2
    assert await store.mark_read("u1") == 0
    assert await store.unread("u1") == []

    history = await store.history("u1")
    assert all(m.is_read for m in history)


@pytest.mark.asyncio
async def test_mark_read_leaves_later_messages_unread(store):
    await store.append("u1", "bot-1", SenderType.BOT, "old")
    await store.mark_read("u1")
    await store.append("u1", "bot-1", SenderType.BOT, "new")

    assert [m.content for m in await store.unread("u1")] == ["new"]


@pytest.mark.asyncio
async def test_history_is_newest_first_and_bounded(store):
    for i in range(5):
        sender = SenderType.USER if i % 2 else SenderType.BOT
        await store.append("chat", "someone", sender, f"m{i}")

    history = await store.history("chat", limit=3)

    assert [m.content for m in history] == ["m4", "m3", "m2"]
    assert [m.sender_type for m in history] == [SenderType.BOT, SenderType.USER, SenderType.BOT]


@pytest.mark.asyncio
async def test_operations_on_closed_database_raise_store_error(tmp_path):
    db = Database(str(tmp_path / "closed.db"))
    store = MessageStore(db)

    with pytest.raises(StoreError):
        await store.append("u1", "u1", SenderType.USER, "hello")
    with pytest.raises(StoreError):
        await store.history("u1")
