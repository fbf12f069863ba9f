from datetime import datetime, timezone

import pytest

from chatbridge.core.errors import NotFound
from chatbridge.core.types import Platform
from chatbridge.storage.models import ChannelRecord


def _record(user_id="u1", channel_id="100", **kwargs) -> ChannelRecord:
    return ChannelRecord(user_id=user_id, channel_id=channel_id, credential="tok", **kwargs)


@pytest.mark.asyncio
async def test_add_and_get_channel(channels):
    synced = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    await channels.add_channel(_record(username="helper_bot", last_sync=synced))

    stored = await channels.get_channel("u1", Platform.TELEGRAM, "100")

    assert stored is not None
    assert stored.username == "helper_bot"
    assert stored.is_active is True
    assert stored.last_sync == synced
    assert await channels.get_channel("u2", Platform.TELEGRAM, "100") is None


@pytest.mark.asyncio
async def test_add_channel_overwrites_same_key(channels):
    await channels.add_channel(_record(username="old"))
    await channels.add_channel(_record(username="new", is_active=False))

    stored = await channels.list_channels("u1")
    assert len(stored) == 1
    assert stored[0].username == "new"
    assert stored[0].is_active is False


@pytest.mark.asyncio
async def test_update_channel_partial(channels):
    await channels.add_channel(_record())

    await channels.update_channel("u1", Platform.TELEGRAM, "100", is_active=False)

    stored = await channels.get_channel("u1", Platform.TELEGRAM, "100")
    assert stored.is_active is False
    assert stored.credential == "tok"


@pytest.mark.asyncio
async def test_update_missing_channel_raises_not_found(channels):
    with pytest.raises(NotFound):
        await channels.update_channel("u1", Platform.TELEGRAM, "missing", is_active=True)


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["colour", "settings"])
async def test_update_rejects_unknown_fields(channels, field):
    await channels.add_channel(_record())
    with pytest.raises(ValueError):
        await channels.update_channel("u1", Platform.TELEGRAM, "100", **{field: "x"})


@pytest.mark.asyncio
async def test_list_user_ids_and_remove(channels):
    await channels.add_channel(_record("u2", "200"))
    await channels.add_channel(_record("u1", "100"))
    await channels.add_channel(_record("u1", "101"))

    assert await channels.list_user_ids() == ["u1", "u2"]

    assert await channels.remove_channel("u1", Platform.TELEGRAM, "100") == 1
    assert [c.channel_id for c in await channels.list_channels("u1")] == ["101"]
