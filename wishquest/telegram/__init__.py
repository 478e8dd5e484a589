"""Telegram delivery for engine notifications."""

from .api_utils import safe_api_call, safe_send_message
from .notifier import TelegramNotifier, render_notification

__all__ = ["TelegramNotifier", "render_notification", "safe_api_call", "safe_send_message"]
