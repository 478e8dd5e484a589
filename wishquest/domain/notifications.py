"""Fire-and-forget notification dispatch."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

logger = logging.getLogger(__name__)

ALL_NOTIFICATIONS = "*"


class NotificationType(str, Enum):
    GIFT_RECEIVED = "gift_received"
    WISH_COMPLETED = "wish_completed"
    QUEST_ASSIGNED = "quest_assigned"
    QUEST_COMPLETED = "quest_completed"
    QUEST_CANCELLED = "quest_cancelled"
    QUEST_EXPIRED = "quest_expired"
    EVENT_GENERATED = "event_generated"
    EVENT_COMPLETED = "event_completed"
    EVENT_EXPIRED = "event_expired"
    RANK_PROMOTED = "rank_promoted"


@dataclass(slots=True)
class Notification:
    type: str
    recipient_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)


NotificationListener = Callable[[Notification], Awaitable[None]]


class NotificationBus:
    """Async pub-sub whose listener failures never reach the publisher."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[NotificationListener]] = defaultdict(list)

    def subscribe(
        self, listener: NotificationListener, notification_type: str = ALL_NOTIFICATIONS
    ) -> None:
        key = str(getattr(notification_type, "value", notification_type))
        self._listeners[key].append(listener)

    async def notify(
        self,
        notification_type: NotificationType | str,
        recipient_id: str,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        key = str(getattr(notification_type, "value", notification_type))
        notification = Notification(key, recipient_id, dict(payload or {}))
        for listener in self.listeners(key):
            try:
                await listener(notification)
            except Exception:  # noqa: BLE001 - delivery is best-effort
                logger.warning(
                    "Notification %s for %s failed", key, recipient_id, exc_info=True
                )

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, notification_type: str) -> Iterable[NotificationListener]:
        return tuple(self._listeners.get(notification_type, ())) + tuple(
            self._listeners.get(ALL_NOTIFICATIONS, ())
        )


class Outbox:
    """Notifications collected inside a unit of work and sent after it commits."""

    def __init__(self) -> None:
        self._pending: list[Notification] = []

    def add(
        self,
        notification_type: NotificationType | str,
        recipient_id: str,
        payload: Mapping[str, Any] | None = None,
    ) -> None:
        key = str(getattr(notification_type, "value", notification_type))
        self._pending.append(Notification(key, recipient_id, dict(payload or {})))

    def __len__(self) -> int:
        return len(self._pending)

    async def deliver(self, bus: NotificationBus | None) -> None:
        pending, self._pending = self._pending, []
        if bus is None:
            return
        for notification in pending:
            await bus.notify(notification.type, notification.recipient_id, notification.payload)
