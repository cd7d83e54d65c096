"""Telegram integration for the OpenRouter chat bot.

Run the polling bot with: python -m src.messaging.telegram
"""

from src.messaging.telegram.client import (
    ErrorKind,
    TelegramClient,
    TelegramClientError,
    classify_error,
)
from src.messaging.telegram.dispatch import (
    DeliveryOutcome,
    DeliveryState,
    MessageDispatcher,
)
from src.messaging.telegram.handler import (
    BotReply,
    MessageHandler,
    ParsedCommand,
    parse_command,
)
from src.messaging.telegram.models import (
    ParseMode,
    SendMessageResult,
    TelegramChat,
    TelegramMessageInfo,
    TelegramUpdate,
    TelegramUser,
)
from src.messaging.telegram.polling import PollingRunner
from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings

__all__ = [
    "BotReply",
    "DeliveryOutcome",
    "DeliveryState",
    "ErrorKind",
    "MessageDispatcher",
    "MessageHandler",
    "ParseMode",
    "ParsedCommand",
    "PollingRunner",
    "SendMessageResult",
    "TelegramChat",
    "TelegramClient",
    "TelegramClientError",
    "TelegramConfig",
    "TelegramMessageInfo",
    "TelegramUpdate",
    "TelegramUser",
    "classify_error",
    "get_telegram_settings",
    "parse_command",
]
