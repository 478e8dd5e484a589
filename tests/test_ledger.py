import pytest

from wishquest.domain.exceptions import InsufficientMana, InvalidAmount
from wishquest.domain.ledger import Direction, Ledger, TransactionCategory
from wishquest.storage import InMemoryStorage, UserRecord


async def _user(storage: InMemoryStorage, mana: int = 0) -> None:
    async with storage.unit_of_work() as uow:
        await uow.users.add(UserRecord(user_id="alice", mana=mana))


@pytest.mark.asyncio()
async def test_record_pairs_balance_change_with_entry():
    storage = InMemoryStorage()
    ledger = Ledger()
    await _user(storage)
    async with storage.unit_of_work() as uow:
        user = await uow.users.get("alice")
        entry = await ledger.record(
            uow,
            user,
            direction=Direction.CREDIT,
            amount=30,
            description="Bonus",
            category=TransactionCategory.ADMIN_ADJUSTMENT,
        )
        await uow.users.save(user)
        assert await ledger.reconcile(uow, user)

    assert entry.signed_amount == 30
    assert entry.transaction_category == "admin_adjustment"
    async with storage.unit_of_work() as uow:
        assert (await uow.users.get("alice")).mana == 30
        assert await uow.transactions.balance_for_user("alice") == 30


@pytest.mark.asyncio()
async def test_debit_beyond_balance_is_rejected():
    storage = InMemoryStorage()
    await _user(storage, mana=0)
    async with storage.unit_of_work() as uow:
        user = await uow.users.get("alice")
        await Ledger().record(
            uow, user, direction=Direction.CREDIT, amount=4, description="seed",
            category=TransactionCategory.MIGRATION,
        )
        with pytest.raises(InsufficientMana) as exc_info:
            await Ledger().record(
                uow, user, direction=Direction.DEBIT, amount=5, description="spend",
                category=TransactionCategory.ENCHANTMENT,
            )
    assert exc_info.value.required == 5
    assert exc_info.value.available == 4
    assert user.mana == 4


@pytest.mark.asyncio()
@pytest.mark.parametrize("amount", [-1, 1.5, True])
async def test_invalid_amounts(amount):
    storage = InMemoryStorage()
    await _user(storage)
    async with storage.unit_of_work() as uow:
        user = await uow.users.get("alice")
        with pytest.raises(InvalidAmount):
            await Ledger().record(
                uow, user, direction=Direction.CREDIT, amount=amount, description="bad",
                category=TransactionCategory.ADMIN_ADJUSTMENT,
            )


@pytest.mark.asyncio()
async def test_failed_unit_discards_staged_entries():
    storage = InMemoryStorage()
    await _user(storage)
    with pytest.raises(RuntimeError):
        async with storage.unit_of_work() as uow:
            user = await uow.users.get("alice")
            await Ledger().record(
                uow, user, direction=Direction.CREDIT, amount=10, description="lost",
                category=TransactionCategory.ADMIN_ADJUSTMENT,
            )
            await uow.users.save(user)
            raise RuntimeError("boom")

    assert storage.ledger_dump() == []
    async with storage.unit_of_work() as uow:
        assert (await uow.users.get("alice")).mana == 0
