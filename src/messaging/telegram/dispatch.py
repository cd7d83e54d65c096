"""Delivery of bot replies with retries and plain-text fallback.

Each part of a reply goes through a small state machine::

    PENDING -> SENDING -> DELIVERED
                       -> RETRYING  (transient error, linear backoff)
                       -> DEGRADED  (markup rejected, resent once as plain text)
                       -> FAILED

The transition is chosen from the ``ErrorKind`` attached to the
``TelegramClientError`` by the client, never from the error text.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from src.messaging.telegram.client import ErrorKind, TelegramClientError
from src.messaging.telegram.models import ParseMode
from src.messaging.telegram.utils.formatting import get_formatter
from src.messaging.telegram.utils.markup import strip_tags
from src.messaging.telegram.utils.sanitize import ensure_utf8, sanitize_response
from src.messaging.telegram.utils.splitting import MAX_MESSAGE_LENGTH, MessagePart, split_message

if TYPE_CHECKING:
    from src.messaging.base import MessageFormatter
    from src.messaging.telegram.client import TelegramClient

logger = logging.getLogger(__name__)

# Total attempts per part for transient errors
MAX_SEND_ATTEMPTS = 3

# Backoff grows linearly: 1s after the first failure, 2s after the second
RETRY_BACKOFF_SECONDS = 1.0

# Pause between parts so they arrive in order
PART_DELAY_SECONDS = 0.5

FALLBACK_NOTICE = "I received a response but couldn't display it properly. Please try again."


def _is_cancelled(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class DeliveryState(StrEnum):
    """Delivery state of a single message part."""

    PENDING = "pending"
    SENDING = "sending"
    RETRYING = "retrying"
    DEGRADED = "degraded"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class DeliveryOutcome:
    """Final state of one message part.

    :param index: 1-based part index.
    :param state: Terminal state, DELIVERED or FAILED.
    :param attempts: Number of send calls made for the part.
    :param degraded: Whether the part was resent as plain text.
    """

    index: int
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = 0
    degraded: bool = False

    @property
    def delivered(self) -> bool:
        """Whether the part reached the chat."""
        return self.state is DeliveryState.DELIVERED


class MessageDispatcher:
    """Sends replies to Telegram, splitting, retrying and degrading as needed."""

    def __init__(
        self,
        client: TelegramClient,
        *,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        max_attempts: int = MAX_SEND_ATTEMPTS,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
        part_delay: float = PART_DELAY_SECONDS,
        formatter: MessageFormatter | None = None,
    ) -> None:
        """Initialise the dispatcher.

        :param client: Telegram client used for sending.
        :param max_message_length: Maximum length of each part body.
        :param max_attempts: Attempts per part for transient errors.
        :param retry_backoff: Base delay in seconds, multiplied by the attempt number.
        :param part_delay: Delay in seconds between parts.
        :param formatter: Markdown formatter. Defaults to the Telegram HTML formatter.
        """
        self._client = client
        self._max_message_length = max_message_length
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._part_delay = part_delay
        self._formatter = formatter or get_formatter()

    def send_formatted(
        self,
        chat_id: int | str,
        text: str,
        request_id: str = "-",
        cancel_event: threading.Event | None = None,
    ) -> list[DeliveryOutcome]:
        """Format model output as Telegram HTML and send it.

        :param chat_id: Target chat ID.
        :param text: Raw model output (Markdown-ish).
        :param request_id: Request ID used in log lines.
        :param cancel_event: When set, no further parts or retries are sent.
        :returns: Outcome of every part that was attempted.
        """
        formatted, parse_mode = self._formatter.format(sanitize_response(text, request_id))
        mode = ParseMode(parse_mode)
        parts = split_message(formatted, self._max_message_length, html=mode is ParseMode.HTML)

        if len(parts) > 1:
            logger.info(
                f"[{request_id}] Message too long ({len(formatted)} chars), "
                f"splitting into {len(parts)} parts"
            )

        return self._deliver(chat_id, parts, mode, request_id, cancel_event)

    def send_plain(
        self,
        chat_id: int | str,
        text: str,
        request_id: str = "-",
        cancel_event: threading.Event | None = None,
    ) -> list[DeliveryOutcome]:
        """Send text without any parse mode.

        :param chat_id: Target chat ID.
        :param text: Text to send.
        :param request_id: Request ID used in log lines.
        :param cancel_event: When set, no further parts or retries are sent.
        :returns: Outcome of every part that was attempted.
        """
        parts = split_message(ensure_utf8(text), self._max_message_length, html=False)
        return self._deliver(chat_id, parts, ParseMode.PLAIN, request_id, cancel_event)

    def _deliver(
        self,
        chat_id: int | str,
        parts: list[MessagePart],
        parse_mode: ParseMode,
        request_id: str,
        cancel_event: threading.Event | None = None,
    ) -> list[DeliveryOutcome]:
        """Send parts in order.

        If the first part cannot be delivered, the user gets a generic notice
        and the remaining parts are skipped. Failures of later parts are logged
        and the remaining parts are still sent. Once ``cancel_event`` is set,
        delivery stops before the next part or retry.
        """
        outcomes: list[DeliveryOutcome] = []

        for part in parts:
            if _is_cancelled(cancel_event):
                logger.warning(
                    f"[{request_id}] Deadline passed, not sending parts {part.index}-{part.total}"
                )
                break

            outcome = self._deliver_part(chat_id, part, parse_mode, request_id, cancel_event)
            outcomes.append(outcome)

            if not outcome.delivered:
                if _is_cancelled(cancel_event):
                    break
                logger.error(
                    f"[{request_id}] Failed to send part {part.index}/{part.total} "
                    f"after {outcome.attempts} attempts"
                )
                if part.index == 1:
                    self._send_fallback_notice(chat_id, request_id)
                    break
                continue

            if part.index < part.total:
                time.sleep(self._part_delay)

        return outcomes

    def _deliver_part(
        self,
        chat_id: int | str,
        part: MessagePart,
        parse_mode: ParseMode,
        request_id: str,
        cancel_event: threading.Event | None = None,
    ) -> DeliveryOutcome:
        """Run the delivery state machine for one part."""
        outcome = DeliveryOutcome(index=part.index, state=DeliveryState.SENDING)
        mode = parse_mode
        text = part.render(html=mode is ParseMode.HTML)

        while True:
            outcome.attempts += 1
            try:
                self._client.send_message(text, chat_id=chat_id, parse_mode=mode)
            except TelegramClientError as e:
                logger.warning(
                    f"[{request_id}] Failed to send part {part.index}/{part.total} "
                    f"(attempt {outcome.attempts}, state={outcome.state}, kind={e.kind}): {e}"
                )
                if self._can_degrade(outcome, e, mode):
                    logger.info(f"[{request_id}] Markup rejected, resending as plain text")
                    outcome.state = DeliveryState.DEGRADED
                    outcome.degraded = True
                    text = strip_tags(text)
                    mode = ParseMode.PLAIN
                    continue

                if self._can_retry(outcome, e):
                    delay = outcome.attempts * self._retry_backoff
                    outcome.state = DeliveryState.RETRYING
                    time.sleep(delay)
                    if _is_cancelled(cancel_event):
                        logger.warning(f"[{request_id}] Deadline passed, giving up on retries")
                        outcome.state = DeliveryState.FAILED
                        return outcome
                    continue

                outcome.state = DeliveryState.FAILED
                return outcome

            outcome.state = DeliveryState.DELIVERED
            logger.debug(
                f"[{request_id}] Part {part.index}/{part.total} sent "
                f"(attempts={outcome.attempts}, degraded={outcome.degraded})"
            )
            return outcome

    def _can_degrade(
        self,
        outcome: DeliveryOutcome,
        error: TelegramClientError,
        mode: ParseMode,
    ) -> bool:
        return (
            error.kind is ErrorKind.MARKUP_REJECTED
            and mode is not ParseMode.PLAIN
            and not outcome.degraded
        )

    def _can_retry(self, outcome: DeliveryOutcome, error: TelegramClientError) -> bool:
        # The plain-text resend after a markup rejection gets a single attempt
        return (
            error.kind is ErrorKind.TRANSIENT
            and not outcome.degraded
            and outcome.attempts < self._max_attempts
        )

    def _send_fallback_notice(self, chat_id: int | str, request_id: str) -> None:
        notice = MessagePart(index=1, total=1, content=FALLBACK_NOTICE)
        outcome = self._deliver_part(chat_id, notice, ParseMode.PLAIN, request_id)
        if not outcome.delivered:
            logger.error(f"[{request_id}] Failed to send fallback notice to chat_id={chat_id}")
