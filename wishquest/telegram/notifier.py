"""Deliver engine notifications to Telegram chats."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from aiogram import Bot

from ..domain.notifications import Notification, NotificationBus, NotificationType
from ..storage.base import Storage, UserRecord
from .api_utils import safe_send_message

logger = logging.getLogger(__name__)


def _gift(payload: Mapping[str, Any]) -> str:
    sender = payload.get("sender_name") or "Your partner"
    text = f"🎁 {sender} sent you a wish!"
    if payload.get("message"):
        text += f"\n💬 {payload['message']}"
    return text


def _quest_assigned(payload: Mapping[str, Any]) -> str:
    return (
        f"📜 New quest: <b>{payload.get('title', '')}</b>\n"
        f"Difficulty: {payload.get('difficulty', 'easy')} · reward {payload.get('mana_reward', 0)} ✨"
    )


def _quest_completed(payload: Mapping[str, Any]) -> str:
    text = f"✅ Quest <b>{payload.get('title', '')}</b> accepted."
    if payload.get("rewards_granted"):
        text += f"\n+{payload.get('mana_reward', 0)} ✨"
    else:
        text += "\nRewards will arrive shortly."
    return text


def _event_completed(payload: Mapping[str, Any]) -> str:
    text = f"🎉 Event <b>{payload.get('title', '')}</b> confirmed!"
    if payload.get("rewards_granted"):
        text += (
            f"\n+{payload.get('mana_reward', 0)} ✨ · +{payload.get('experience_reward', 0)} XP"
        )
    return text


_RENDERERS: Mapping[str, Callable[[Mapping[str, Any]], str]] = {
    NotificationType.GIFT_RECEIVED.value: _gift,
    NotificationType.WISH_COMPLETED.value: lambda p: (
        f"💖 Your wish was fulfilled: {p.get('description', '')}"
    ),
    NotificationType.QUEST_ASSIGNED.value: _quest_assigned,
    NotificationType.QUEST_COMPLETED.value: _quest_completed,
    NotificationType.QUEST_CANCELLED.value: lambda p: (
        f"🚫 Quest <b>{p.get('title', '')}</b> was cancelled."
    ),
    NotificationType.QUEST_EXPIRED.value: lambda p: (
        f"⌛ Quest <b>{p.get('title', '')}</b> expired."
    ),
    NotificationType.EVENT_GENERATED.value: lambda p: (
        f"🎲 Random event: <b>{p.get('title', '')}</b>\nReward {p.get('mana_reward', 0)} ✨"
    ),
    NotificationType.EVENT_COMPLETED.value: _event_completed,
    NotificationType.EVENT_EXPIRED.value: lambda p: (
        f"⌛ Event <b>{p.get('title', '')}</b> expired."
    ),
    NotificationType.RANK_PROMOTED.value: lambda p: (
        f"{p.get('emoji', '🎖️')} Promoted to <b>{p.get('new_rank', '')}</b>!"
    ),
}


def render_notification(notification: Notification) -> str | None:
    """Return chat text for a notification, or None for unknown types."""
    renderer = _RENDERERS.get(notification.type)
    if renderer is None:
        return None
    return renderer(notification.payload)


class TelegramNotifier:
    """Notification listener that resolves recipients to Telegram chats."""

    def __init__(self, bot: Bot, storage: Storage) -> None:
        self._bot = bot
        self._storage = storage

    def attach(self, bus: NotificationBus) -> None:
        bus.subscribe(self)

    async def _recipient(self, user_id: str) -> UserRecord | None:
        async with self._storage.unit_of_work() as uow:
            return await uow.users.get(user_id)

    async def __call__(self, notification: Notification) -> None:
        text = render_notification(notification)
        if text is None:
            logger.debug("No renderer for notification %s", notification.type)
            return
        user = await self._recipient(notification.recipient_id)
        if user is None or user.telegram_id is None:
            logger.debug("User %s has no Telegram chat", notification.recipient_id)
            return
        await safe_send_message(self._bot, user.telegram_id, text, parse_mode="HTML")
