"""Bot API calls for notification delivery.

Delivery is best-effort: rate limits are retried after the delay Telegram
asks for, everything else is logged and reported as ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramRetryAfter,
)
from aiogram.types import Message

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 1.0


def _retry_delay(exc: TelegramRetryAfter) -> float:
    return float(getattr(exc, "retry_after", 0) or DEFAULT_RETRY_DELAY)


async def safe_api_call(
    label: str,
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    retries: int = 3,
    **kwargs: P.kwargs,
) -> T | None:
    """Await ``func`` up to ``retries`` times; return None if nothing was delivered."""
    for attempt in range(1, retries + 1):
        try:
            return await func(*args, **kwargs)
        except TelegramRetryAfter as exc:
            if attempt == retries:
                logger.warning("Dropping %s after %s rate-limited attempts", label, attempt)
                break
            delay = _retry_delay(exc)
            logger.info("%s rate limited, retrying in %.1fs (%s/%s)", label, delay, attempt, retries)
            await asyncio.sleep(delay)
        except TelegramForbiddenError:
            logger.info("%s refused: the bot is blocked by this chat", label)
            break
        except TelegramBadRequest as exc:
            logger.warning("%s rejected by Telegram: %s", label, exc)
            break
        except TelegramAPIError as exc:
            logger.error("%s failed: %s", label, exc, exc_info=True)
            break
    return None


async def safe_send_message(
    bot: Bot | None,
    chat_id: int | None,
    text: str,
    **kwargs,
) -> Message | None:
    """Send ``text`` to ``chat_id``; return None when nothing was delivered."""
    if bot is None or chat_id is None:
        return None
    return await safe_api_call(
        f"notification to chat {chat_id}", bot.send_message, chat_id, text, **kwargs
    )
