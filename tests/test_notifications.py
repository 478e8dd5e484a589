import logging

import pytest

from wishquest.domain.exceptions import QuotaExceeded
from wishquest.domain.notifications import NotificationBus, NotificationType, Outbox


@pytest.mark.asyncio()
async def test_bus_routes_by_type_and_wildcard():
    bus = NotificationBus()
    typed, everything = [], []

    async def on_gift(notification):
        typed.append(notification.recipient_id)

    async def on_any(notification):
        everything.append(notification.type)

    bus.subscribe(on_gift, NotificationType.GIFT_RECEIVED)
    bus.subscribe(on_any)

    await bus.notify(NotificationType.GIFT_RECEIVED, "bob", {"amount": 1})
    await bus.notify(NotificationType.QUEST_ASSIGNED, "alice")

    assert typed == ["bob"]
    assert everything == ["gift_received", "quest_assigned"]


@pytest.mark.asyncio()
async def test_failing_listener_is_logged_not_raised(caplog):
    bus = NotificationBus()
    delivered = []

    async def broken(notification):
        raise RuntimeError("chat unavailable")

    async def healthy(notification):
        delivered.append(notification)

    bus.subscribe(broken)
    bus.subscribe(healthy)
    with caplog.at_level(logging.WARNING, logger="wishquest.domain.notifications"):
        await bus.notify(NotificationType.EVENT_EXPIRED, "alice")

    assert len(delivered) == 1
    assert "event_expired" in caplog.text


@pytest.mark.asyncio()
async def test_outbox_delivers_once():
    bus = NotificationBus()
    seen = []

    async def listener(notification):
        seen.append(notification.payload["n"])

    bus.subscribe(listener)
    outbox = Outbox()
    outbox.add(NotificationType.QUEST_COMPLETED, "bob", {"n": 1})
    outbox.add(NotificationType.RANK_PROMOTED, "bob", {"n": 2})
    assert len(outbox) == 2

    await outbox.deliver(bus)
    await outbox.deliver(bus)
    assert seen == [1, 2]
    assert len(outbox) == 0

    outbox.add(NotificationType.QUEST_COMPLETED, "bob", {"n": 3})
    await outbox.deliver(None)
    assert len(outbox) == 0


@pytest.mark.asyncio()
async def test_failed_transition_sends_nothing(app, client):
    seen = []

    async def listener(notification):
        seen.append(notification)

    await client.register()
    app.notifications.subscribe(listener)
    await client.seed("alice", daily_quota_used=5, weekly_quota_used=5, monthly_quota_used=5)
    with pytest.raises(QuotaExceeded):
        await client.gift("alice", "bob")
    assert seen == []
