"""Exceptions raised by wishquest domain services."""

from __future__ import annotations

from typing import Any, Iterable, Sequence


class WishQuestError(RuntimeError):
    """Base class for domain exceptions."""

    kind = "error"

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Structured form suitable for direct display."""
        return {"kind": self.kind, "message": str(self), **self.details()}


class ValidationError(WishQuestError):
    """Raised when caller input breaks one or more rules."""

    kind = "validation_error"

    def __init__(self, errors: str | Iterable[str]) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors: list[str] = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")

    def details(self) -> dict[str, Any]:
        return {"errors": list(self.errors)}


class InvalidAmount(ValidationError):
    kind = "invalid_amount"


class InvalidLevel(ValidationError):
    kind = "invalid_level"


class InvalidValue(ValidationError):
    kind = "invalid_value"


class UnknownEnchantmentType(ValidationError):
    kind = "unknown_enchantment_type"


class PermissionDenied(WishQuestError):
    """Raised when the actor lacks rights over the entity."""

    kind = "permission_denied"


class InvalidState(WishQuestError):
    """Raised when an operation is not legal in the entity's lifecycle state."""

    kind = "invalid_state"

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status

    def details(self) -> dict[str, Any]:
        return {"status": self.status}


class QuotaExceeded(WishQuestError):
    """Raised when a gift would breach one or more quota windows."""

    kind = "quota_exceeded"

    def __init__(self, windows: Sequence[str], remaining: int) -> None:
        super().__init__(
            f"{', '.join(w.title() for w in windows)} quota exceeded "
            f"({remaining} remaining)"
        )
        self.windows = tuple(windows)
        self.remaining = remaining

    def details(self) -> dict[str, Any]:
        return {"windows": list(self.windows), "remaining": self.remaining}


class InsufficientMana(WishQuestError):
    """Raised when a balance cannot cover a spend."""

    kind = "insufficient_mana"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient mana. Required: {required}, Available: {available}")
        self.required = required
        self.available = available

    def details(self) -> dict[str, Any]:
        return {"required": self.required, "available": self.available}


class NotFound(WishQuestError):
    """Raised when a referenced entity does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.title()} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "entity_id": self.entity_id}


class RecipientNotFound(NotFound):
    kind = "recipient_not_found"

    def __init__(self, entity_id: str) -> None:
        super().__init__("recipient", entity_id)


class AlreadyActive(WishQuestError):
    """Raised when a user already holds the maximum number of active events."""

    kind = "already_active"


class SelfCompletion(WishQuestError):
    """Raised when an event owner tries to validate their own event."""

    kind = "self_completion"


class SelfGift(WishQuestError):
    """Raised when a user tries to gift to themselves."""

    kind = "self_gift"


class EventExpired(WishQuestError):
    """Raised when completing an event past its deadline."""

    kind = "expired"


class StorageError(WishQuestError):
    """Raised when the persistence layer fails."""

    kind = "storage_error"
