import pytest
from sqlalchemy import select

from mediahub.modules.assets.service import MediaAssetService
from mediahub.modules.events.outbox import TOPIC, EventOutbox, relay_once
from mediahub.platform.adapters.bus_noop import NoopEventBus


class _DownBus:
    async def publish(self, topic, key, value, headers=None):
        raise ConnectionError("broker unreachable")


@pytest.mark.anyio
async def test_relay_publishes_pending_events(session, make_payload):
    obj = await MediaAssetService(session).create(make_payload())
    bus = NoopEventBus()

    assert await relay_once(session, bus) == 1
    (msg,) = bus.published
    assert msg["topic"] == TOPIC
    assert msg["key"] == str(obj.id)
    assert msg["value"]["event_type"] == "media_asset.created"
    assert msg["value"]["subject"] == {"type": "media_asset", "id": str(obj.id)}

    (ev,) = (await session.execute(select(EventOutbox))).scalars().all()
    assert ev.status == "sent"
    assert await relay_once(session, bus) == 0


@pytest.mark.anyio
async def test_failed_publish_backs_off(session, make_payload):
    await MediaAssetService(session).create(make_payload())

    assert await relay_once(session, _DownBus()) == 0
    (ev,) = (await session.execute(select(EventOutbox))).scalars().all()
    assert ev.status == "pending"
    assert ev.attempts == 1
    assert "broker unreachable" in ev.last_error

    # not due again until the backoff passes
    bus = NoopEventBus()
    assert await relay_once(session, bus) == 0
    assert bus.published == []
