import pytest

from chatbridge.messenger.models import BotIdentity
from chatbridge.messenger.telegram import TelegramSession


@pytest.mark.asyncio
async def test_start_without_open_application_raises(monkeypatch):
    session = TelegramSession("123456:not-a-real-token")

    async def identify():
        return BotIdentity(id="123456")

    monkeypatch.setattr(session, "identify", identify)

    with pytest.raises(RuntimeError, match="not open"):
        await session.start()


@pytest.mark.asyncio
async def test_send_before_open_raises():
    session = TelegramSession("123456:not-a-real-token")
    with pytest.raises(RuntimeError, match="not open"):
        await session.send_text("555", "hi")


@pytest.mark.asyncio
async def test_stop_before_open_is_a_no_op():
    session = TelegramSession("123456:not-a-real-token")
    await session.stop()
    await session.stop()
