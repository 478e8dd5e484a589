from datetime import timedelta
from random import Random

import pytest

from wishquest import EngineApp, WishQuestConfig
from wishquest.domain.exceptions import (
    AlreadyActive,
    EventExpired,
    InvalidState,
    NotFound,
    PermissionDenied,
    SelfCompletion,
)
from wishquest.domain.random_events import NEXT_EVENT_SCHEDULE, EventStatus, EventTemplate
from wishquest.testing import CoupleClient

TEA = EventTemplate("Tea ceremony", "Brew tea for your partner", "romance", 10, 10)


@pytest.fixture()
def tea_app(clock) -> EngineApp:
    return EngineApp(WishQuestConfig(), event_pool=[TEA], rng=Random(3), clock=clock)


@pytest.mark.asyncio()
async def test_generated_reward_stays_within_variance(tea_app, clock):
    await CoupleClient(tea_app).register()
    event = await tea_app.events.generate("alice")

    assert event.title == TEA.title
    assert 8 <= event.mana_reward <= 12
    assert 8 <= event.experience_reward <= 12
    assert event.expires_at == clock() + timedelta(hours=24)
    assert event.status == EventStatus.ACTIVE.value


@pytest.mark.asyncio()
async def test_one_active_event_per_user(app, client):
    await client.register()
    first = await app.events.generate("alice")
    with pytest.raises(AlreadyActive):
        await app.events.generate("alice")

    second = await app.events.force_generate("alice")
    assert second.event_id != first.event_id
    history = await app.events.event_history("alice")
    statuses = {event.event_id: event.status for event in history}
    assert statuses[first.event_id] == EventStatus.EXPIRED.value
    assert (await app.events.current_event("alice")).event_id == second.event_id


@pytest.mark.asyncio()
async def test_partner_completion_pays_owner_and_schedules_next(app, client, clock):
    await client.register()
    event = await app.events.generate("alice")

    completion = await app.events.complete(event.event_id, "bob")

    assert completion.rewards_granted
    assert completion.event.status == EventStatus.COMPLETED.value
    assert completion.event.completed_by == "bob"
    alice = await app.users.fetch("alice")
    assert alice.mana == event.mana_reward
    assert (await app.users.fetch("bob")).mana == 0

    assert clock() + timedelta(hours=2) <= completion.next_event_at <= clock() + timedelta(hours=8)
    async with app.storage.unit_of_work() as uow:
        schedules = await uow.schedules.due(clock() + timedelta(days=1))
    assert [(s.owner_id, s.kind) for s in schedules] == [("alice", NEXT_EVENT_SCHEDULE)]

    with pytest.raises(InvalidState):
        await app.events.complete(event.event_id, "bob")


@pytest.mark.asyncio()
async def test_only_partner_may_complete(app, client):
    await client.register()
    await app.users.register("carol", "Carol")
    event = await app.events.generate("alice")

    with pytest.raises(SelfCompletion):
        await app.events.complete(event.event_id, "alice")
    with pytest.raises(PermissionDenied):
        await app.events.complete(event.event_id, "carol")
    with pytest.raises(NotFound):
        await app.events.complete("missing", "bob")
    assert (await app.users.fetch("alice")).mana == 0


@pytest.mark.asyncio()
async def test_expired_event_cannot_be_completed(app, client, clock):
    await client.register()
    event = await app.events.generate("alice")
    clock.advance(hours=25)
    with pytest.raises(EventExpired):
        await app.events.complete(event.event_id, "bob")


@pytest.mark.asyncio()
async def test_sweep_expires_and_regenerates(app, client, clock):
    await client.register()
    event = await app.events.generate("alice")
    clock.advance(hours=25)

    sweep = await app.events.expire_overdue()
    assert sweep.expired == 1
    assert sweep.regenerated == 1

    current = await app.events.current_event("alice")
    assert current is not None
    assert current.event_id != event.event_id
    assert (await app.events.expire_overdue()).expired == 0


@pytest.mark.asyncio()
async def test_due_schedule_generates_next_event(app, client, clock):
    await client.register()
    event = await app.events.generate("alice")
    await app.events.complete(event.event_id, "bob")
    assert await app.events.current_event("alice") is None

    assert await app.events.process_due_schedules() == 0
    clock.advance(hours=9)
    assert await app.events.process_due_schedules() == 1
    assert await app.events.current_event("alice") is not None
    assert await app.events.process_due_schedules() == 0


def test_event_categories(app):
    categories = {category.category: category for category in app.events.event_categories()}
    assert categories["romance"].count == 3
    assert categories["romance"].description == "Romantic gestures"
    assert sum(category.count for category in categories.values()) == len(app.events.pool)
