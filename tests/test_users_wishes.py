import sys

import pytest

from wishquest.cli import run_ranks
from wishquest.domain.exceptions import (
    InvalidState,
    NotFound,
    PermissionDenied,
    StorageError,
    ValidationError,
)
from wishquest.domain.notifications import NotificationType
from wishquest.domain.wishes import WishDraft
from wishquest.testing import UserFactory, WishDraftFactory


@pytest.mark.asyncio()
async def test_register_and_link(app):
    profile = await app.users.register("alice", "Alice")
    assert profile.rank == "Private"
    assert profile.progress.next_rank.name == "Corporal"
    with pytest.raises(StorageError):
        await app.users.register("alice")

    await app.users.register("bob", "Bob")
    await app.users.register("carol", "Carol")
    with pytest.raises(ValidationError):
        await app.users.link_partners("alice", "alice")
    first, second = await app.users.link_partners("alice", "bob")
    assert (first.partner_id, second.partner_id) == ("bob", "alice")
    with pytest.raises(PermissionDenied):
        await app.users.link_partners("carol", "bob")
    with pytest.raises(NotFound):
        await app.users.fetch("dave")


@pytest.mark.asyncio()
async def test_wish_lifecycle(app, client):
    fulfilled = []

    async def listener(notification):
        fulfilled.append(notification.recipient_id)

    app.notifications.subscribe(listener, NotificationType.WISH_COMPLETED)
    await client.register()
    wish = await app.wishes.create_wish("alice", WishDraftFactory().build(assignee_id="bob"))
    assert wish.enchantments["priority"] == 1

    with pytest.raises(PermissionDenied):
        await app.wishes.complete_wish(wish.wish_id, "alice")
    done = await app.wishes.complete_wish(wish.wish_id, "bob")
    assert done.status == "completed"
    assert fulfilled == ["alice"]
    assert (await app.users.fetch("bob")).experience_points == 25

    with pytest.raises(InvalidState):
        await app.wishes.cancel_wish(wish.wish_id, "alice")


@pytest.mark.asyncio()
async def test_wish_validation(app, client):
    await client.register()
    with pytest.raises(ValidationError) as exc_info:
        await app.wishes.create_wish("alice", WishDraft("ok", assignee_id="alice"))
    assert len(exc_info.value.errors) == 2

    wish = await app.wishes.create_wish("alice", WishDraft("Picnic in the park"))
    with pytest.raises(PermissionDenied):
        await app.wishes.cancel_wish(wish.wish_id, "bob")
    assert (await app.wishes.cancel_wish(wish.wish_id, "alice")).status == "cancelled"


def test_user_factory_builds_couple():
    first, second = UserFactory().couple()
    assert first.partner_id == second.user_id
    assert second.partner_id == first.user_id


def test_ranks_command_prints_table(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["wishquest-ranks"])
    run_ranks()
    output = capsys.readouterr().out
    assert "Private" in output
    assert "Marshal" in output
