import pytest

from wishquest.domain.economy import EnchantRequest, GiftRequest
from wishquest.domain.exceptions import (
    InsufficientMana,
    InvalidAmount,
    InvalidLevel,
    InvalidState,
    NotFound,
    PermissionDenied,
    QuotaExceeded,
    RecipientNotFound,
    SelfGift,
)
from wishquest.domain.notifications import NotificationType
from wishquest.domain.wishes import WishDraft


@pytest.mark.asyncio()
async def test_gift_consumes_quota_not_mana(app, client):
    await client.register()
    await client.seed("alice", mana=40)

    outcome = await app.economy.gift_wish("alice", GiftRequest("bob", amount=2, message="Movie night"))

    alice = await app.users.fetch("alice")
    bob = await app.users.fetch("bob")
    assert alice.mana == 40
    assert bob.mana == 0
    assert alice.daily_quota_used == 2
    assert alice.weekly_quota_used == 2
    assert outcome.remaining_quota == 3
    assert outcome.wish.is_gift
    assert outcome.wish.assignee_id == "bob"
    assert outcome.wish.description == "Movie night"
    assert outcome.experience_gained == 2
    assert alice.experience_points == 2

    categories = sorted(entry.transaction_category for entry in app.storage.ledger_dump())
    assert categories == ["gift_received", "gift_sent"]
    assert all(entry.mana_amount == 0 for entry in app.storage.ledger_dump())
    assert outcome.transaction.metadata["quota_cost"] == 2


@pytest.mark.asyncio()
async def test_gift_over_quota_is_rejected_without_changes(app, client):
    await client.register()
    await client.seed("alice", daily_quota_used=4, weekly_quota_used=4, monthly_quota_used=4)

    with pytest.raises(QuotaExceeded) as exc_info:
        await app.economy.gift_wish("alice", GiftRequest("bob", amount=2))

    assert "daily" in exc_info.value.windows
    alice = await app.users.fetch("alice")
    assert alice.daily_quota_used == 4
    assert app.storage.ledger_dump() == []


@pytest.mark.asyncio()
async def test_gift_precondition_order(app, client):
    await client.register()
    with pytest.raises(SelfGift):
        await app.economy.gift_wish("alice", GiftRequest("alice", amount=0))
    with pytest.raises(InvalidAmount):
        await app.economy.gift_wish("alice", GiftRequest("ghost", amount=0))
    with pytest.raises(RecipientNotFound):
        await app.economy.gift_wish("alice", GiftRequest("ghost"))


@pytest.mark.asyncio()
async def test_gift_notifies_recipient(app, client):
    received = []

    async def listener(notification):
        received.append(notification)

    app.notifications.subscribe(listener, NotificationType.GIFT_RECEIVED)
    await client.register()
    await client.gift("alice", "bob")

    assert len(received) == 1
    assert received[0].recipient_id == "bob"
    assert received[0].payload["sender_id"] == "alice"


@pytest.mark.asyncio()
async def test_enchant_priority_debits_mana(app, client):
    await client.register()
    await client.seed("alice", mana=100)
    wish = await app.wishes.create_wish("alice", WishDraft("Breakfast in bed", assignee_id="bob"))

    outcome = await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "priority", level=2))

    assert outcome.cost == 5
    assert outcome.balance == 95
    assert outcome.enchantments.priority == 2
    alice = await app.users.fetch("alice")
    assert alice.mana == 95
    assert alice.mana_spent == 5
    debits = [e for e in app.storage.ledger_dump() if e.transaction_category == "enchantment"]
    assert len(debits) == 1
    assert debits[0].type == "debit"
    assert debits[0].mana_amount == 5
    async with app.storage.unit_of_work() as uow:
        stored = await uow.wishes.get(wish.wish_id)
    assert stored.enchantments["priority"] == 2


@pytest.mark.asyncio()
async def test_priority_can_only_be_raised(app, client):
    await client.register()
    await client.seed("alice", mana=100)
    wish = await app.wishes.create_wish("alice", WishDraft("Weekend away", assignee_id="bob"))

    outcome = await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "priority", level=3))
    assert outcome.cost == 10

    for level in (3, 1):
        with pytest.raises(InvalidLevel):
            await app.economy.enchant_wish(
                "alice", EnchantRequest(wish.wish_id, "priority", level=level)
            )

    outcome = await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "priority", level=5))
    assert outcome.cost == 40
    assert outcome.balance == 50

    with pytest.raises(InvalidState):
        await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "priority", level=5))

    assert (await app.users.fetch("alice")).mana == 50
    async with app.storage.unit_of_work() as uow:
        stored = await uow.wishes.get(wish.wish_id)
    assert stored.enchantments["priority"] == 5
    debits = [e for e in app.storage.ledger_dump() if e.transaction_category == "enchantment"]
    assert [e.mana_amount for e in debits] == [10, 40]


@pytest.mark.asyncio()
async def test_enchant_rules(app, client):
    await client.register()
    await client.seed("alice", mana=3)
    wish = await app.wishes.create_wish("alice", WishDraft("Long walk", assignee_id="bob"))

    with pytest.raises(PermissionDenied):
        await app.economy.enchant_wish("bob", EnchantRequest(wish.wish_id, "aura", value="playful"))
    with pytest.raises(NotFound):
        await app.economy.enchant_wish("alice", EnchantRequest("missing", "aura", value="playful"))
    with pytest.raises(NotFound):
        await app.economy.enchant_wish(
            "alice", EnchantRequest(wish.wish_id, "linked_wish", value="missing")
        )
    with pytest.raises(InsufficientMana):
        await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "recurring"))

    outcome = await app.economy.enchant_wish(
        "alice", EnchantRequest(wish.wish_id, "aura", value="playful")
    )
    assert outcome.balance == 1

    await app.wishes.complete_wish(wish.wish_id, "bob")
    with pytest.raises(InvalidState):
        await app.economy.enchant_wish("alice", EnchantRequest(wish.wish_id, "priority", level=1))


@pytest.mark.asyncio()
async def test_grant_mana_keeps_ledger_reconciled(app, client):
    await client.register()
    await app.economy.grant_mana("alice", 25, "Welcome bonus")
    async with app.storage.unit_of_work() as uow:
        alice = await uow.users.get("alice")
        assert alice.mana == 25
        assert await app.ledger.reconcile(uow, alice)
    with pytest.raises(InvalidAmount):
        await app.economy.grant_mana("alice", -5, "Oops")


@pytest.mark.asyncio()
async def test_check_quotas_does_not_persist(app, client, clock):
    await client.register()
    await client.gift("alice", "bob")
    clock.advance(days=1)

    status = await app.economy.check_quotas("alice")
    assert status.daily.used == 0
    assert status.weekly.used == 1
    assert (await app.users.fetch("alice")).daily_quota_used == 1

    assert await app.economy.check_and_reset_quotas("alice")
    assert (await app.users.fetch("alice")).daily_quota_used == 0
    assert not await app.economy.check_and_reset_quotas("alice")


@pytest.mark.asyncio()
async def test_economy_metrics(app, client):
    await client.register()
    await client.seed("alice", mana=100)
    await client.gift("alice", "bob")
    await client.gift("bob", "alice")
    wish = await app.wishes.create_wish("alice", WishDraft("Dinner date", assignee_id="bob"))
    await client.enchant("alice", wish.wish_id, "aura", value="romantic")
    await client.enchant("alice", wish.wish_id, "aura", value="urgent")
    await client.enchant("alice", wish.wish_id, "priority", level=2)

    metrics = await app.economy.calculate_economy_metrics("alice")
    assert metrics.total_gifts_given == 1
    assert metrics.total_gifts_received == 1
    assert metrics.total_mana_spent == 9
    assert metrics.most_used_enchantment == "aura"
    assert metrics.gift_frequency == 1
    assert metrics.quota_utilization["daily"] == 20.0
