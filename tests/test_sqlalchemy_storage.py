from datetime import timedelta
from random import Random

import pytest

from wishquest import EngineApp, StorageConfig, WishQuestConfig
from wishquest.domain.economy import EnchantRequest, GiftRequest
from wishquest.domain.quests import QuestDraft, QuestStatus
from wishquest.domain.wishes import WishDraft
from wishquest.storage import UserRecord


def _sql_app(tmp_path, clock, **kwargs) -> EngineApp:
    dsn = f"sqlite+aiosqlite:///{tmp_path}/wishquest.db"
    config = WishQuestConfig(
        storage=StorageConfig(backend="sqlalchemy", dsn=dsn),
        **kwargs,
    )
    return EngineApp(config, rng=Random(7), clock=clock)


@pytest.mark.asyncio()
async def test_full_flow_on_sqlite(tmp_path, clock):
    app = _sql_app(tmp_path, clock)
    await app.init_backend()
    try:
        await app.users.register("alice", "Alice", telegram_id=111)
        await app.users.register("bob", "Bob")
        await app.users.link_partners("alice", "bob")
        await app.economy.grant_mana("alice", 50, "Welcome bonus")

        gift = await app.economy.gift_wish("alice", GiftRequest("bob", amount=2))
        assert gift.transaction.metadata["quota_cost"] == 2

        wish = await app.wishes.create_wish("alice", WishDraft("Sunday pancakes", assignee_id="bob"))
        enchant = await app.economy.enchant_wish(
            "alice", EnchantRequest(wish.wish_id, "priority", level=3)
        )
        assert enchant.balance == 40

        quest = (
            await app.quests.create_quest(
                "alice",
                QuestDraft(
                    title="Plan the trip",
                    description="Pick dates and book the tickets",
                    assignee_id="bob",
                    due_date=clock() + timedelta(days=5),
                ),
            )
        ).quest
        completion = await app.quests.complete_quest(quest.quest_id, "alice")
        assert completion.rewards_granted

        event = await app.events.generate("alice")
        await app.events.complete(event.event_id, "bob")
        clock.advance(hours=9)
        assert await app.events.process_due_schedules() == 1

        alice = await app.users.fetch("alice")
        bob = await app.users.fetch("bob")
        assert alice.mana == 40 + event.mana_reward
        assert alice.mana_spent == 10
        assert alice.daily_quota_used == 2
        assert bob.mana == 10

        async with app.storage.unit_of_work() as uow:
            for user_id in ("alice", "bob"):
                assert await app.ledger.reconcile(uow, await uow.users.get(user_id))
            stored_wish = await uow.wishes.get(wish.wish_id)
            entries = await uow.transactions.recent_for_user("alice")
        assert stored_wish.enchantments["priority"] == 3
        assert entries[0].transaction_category == "event_reward"
        assert (await app.quests.get_quest(quest.quest_id)).status == QuestStatus.COMPLETED.value
    finally:
        await app.shutdown()


@pytest.mark.asyncio()
async def test_failed_unit_rolls_back(tmp_path, clock):
    app = _sql_app(tmp_path, clock)
    await app.init_backend()
    try:
        await app.users.register("alice", "Alice")
        with pytest.raises(RuntimeError):
            async with app.storage.unit_of_work() as uow:
                user = await uow.users.get("alice")
                user.mana = 999
                await uow.users.save(user)
                await uow.users.add(UserRecord(user_id="ghost"))
                raise RuntimeError("abort")

        async with app.storage.unit_of_work() as uow:
            assert (await uow.users.get("alice")).mana == 0
            assert await uow.users.get("ghost") is None
            assert await uow.users.list_ids() == ["alice"]
    finally:
        await app.shutdown()


@pytest.mark.asyncio()
async def test_settings_persist_and_seed(tmp_path, clock):
    app = _sql_app(tmp_path, clock, economy_overrides={"daily_gift_base_limit": 3})
    await app.init_backend()
    try:
        assert (await app.settings.current()).daily_gift_base_limit == 3
        await app.settings.update("event_reward_variance", [0.9, 1.1], "calmer rewards")
        await app.settings.update("daily_gift_base_limit", 4)
    finally:
        await app.shutdown()

    reopened = _sql_app(tmp_path, clock, economy_overrides={"daily_gift_base_limit": 3})
    await reopened.init_backend()
    try:
        settings = await reopened.settings.current()
        assert settings.event_reward_variance == (0.9, 1.1)
        assert settings.daily_gift_base_limit == 4
    finally:
        await reopened.shutdown()
