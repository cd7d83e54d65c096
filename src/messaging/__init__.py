"""Messaging module providing platform-agnostic abstractions."""

from src.messaging.base import MessageFormatter

__all__ = [
    "MessageFormatter",
]
