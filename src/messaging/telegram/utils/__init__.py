"""Telegram utilities: formatting, splitting, markup repair and sanitising."""

from src.messaging.base import MessageFormatter
from src.messaging.telegram.utils.formatting import (
    TelegramFormatter,
    format_message,
    get_formatter,
    markdown_to_telegram_html,
)
from src.messaging.telegram.utils.markup import close_open_tags, is_balanced, strip_tags
from src.messaging.telegram.utils.sanitize import clean_model_prefix, ensure_utf8
from src.messaging.telegram.utils.splitting import MAX_MESSAGE_LENGTH, MessagePart, split_message

__all__ = [
    "MAX_MESSAGE_LENGTH",
    "MessageFormatter",
    "MessagePart",
    "TelegramFormatter",
    "clean_model_prefix",
    "close_open_tags",
    "ensure_utf8",
    "format_message",
    "get_formatter",
    "is_balanced",
    "markdown_to_telegram_html",
    "split_message",
    "strip_tags",
]
