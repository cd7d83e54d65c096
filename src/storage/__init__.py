"""Persistence of per-user settings in a JSON file."""

from src.storage.models import DEFAULT_MODEL, DEFAULT_MODELS, BotState, LogLevel, UserProfile
from src.storage.store import SettingsStore

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_MODELS",
    "BotState",
    "LogLevel",
    "SettingsStore",
    "UserProfile",
]
