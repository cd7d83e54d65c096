"""Telegram Bot API client for sending and receiving messages."""

import logging
from enum import StrEnum
from typing import Any

import requests

from src.messaging.telegram.models import (
    ParseMode,
    SendMessageResult,
    TelegramUpdate,
    TelegramUser,
)

logger = logging.getLogger(__name__)

# Default API timeout in seconds
DEFAULT_REQUEST_TIMEOUT = 30

# Substring of the Bot API description when HTML/Markdown cannot be parsed
MARKUP_ERROR_MARKER = "can't parse entities"

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class ErrorKind(StrEnum):
    """How a failed Telegram request should be handled by the caller."""

    TRANSIENT = "transient"
    MARKUP_REJECTED = "markup_rejected"
    PERMANENT = "permanent"


class TelegramClientError(Exception):
    """Raised when Telegram API request fails."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.PERMANENT,
        status_code: int | None = None,
    ) -> None:
        """Initialise the error.

        :param message: Error message.
        :param kind: Classification used to decide between retry and fallback.
        :param status_code: HTTP status code if a response was received.
        """
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


def classify_error(status_code: int, description: str) -> ErrorKind:
    """Classify an error response from the Bot API.

    :param status_code: HTTP status code of the response.
    :param description: Error description returned by Telegram.
    :returns: The error kind.
    """
    if MARKUP_ERROR_MARKER in description.lower():
        return ErrorKind.MARKUP_REJECTED
    if status_code == HTTP_TOO_MANY_REQUESTS or status_code >= HTTP_SERVER_ERROR:
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


class TelegramClient:
    """Client for interacting with the Telegram Bot API.

    Supports both sending messages and receiving updates via long polling.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        poll_timeout: int = 30,
    ) -> None:
        """Initialise the Telegram client.

        :param bot_token: Telegram bot token from @BotFather.
        :param poll_timeout: Timeout in seconds for long polling.
        """
        self._bot_token = bot_token
        self._poll_timeout = poll_timeout
        self._base_url = f"https://api.telegram.org/bot{self._bot_token}"
        logger.debug(f"TelegramClient initialised with poll_timeout={poll_timeout}s")

    def send_message(
        self,
        text: str,
        chat_id: int | str,
        parse_mode: ParseMode | str = ParseMode.HTML,
    ) -> SendMessageResult:
        """Send a text message to a chat.

        :param text: The message text to send.
        :param chat_id: Target chat ID.
        :param parse_mode: Message parse mode. ``ParseMode.PLAIN`` sends the
            text as-is.
        :returns: Result containing message_id and chat_id.
        :raises TelegramClientError: If the API request fails.
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = str(parse_mode)

        logger.debug(
            f"Sending message to chat_id={chat_id}, length={len(text)}, "
            f"parse_mode={parse_mode or 'plain'}"
        )
        message_data = self._post("sendMessage", payload)

        message_id = message_data.get("message_id")
        response_chat_id = message_data.get("chat", {}).get("id")
        logger.debug(f"Message sent successfully: message_id={message_id}, chat_id={chat_id}")
        return SendMessageResult(message_id=message_id, chat_id=response_chat_id)

    def send_chat_action(self, chat_id: int | str, action: str = "typing") -> None:
        """Show a chat action such as the typing indicator.

        :param chat_id: Target chat ID.
        :param action: Chat action name.
        :raises TelegramClientError: If the API request fails.
        """
        self._post("sendChatAction", {"chat_id": chat_id, "action": action})

    def get_me(self) -> TelegramUser:
        """Get the bot's own user account.

        :returns: The bot user.
        :raises TelegramClientError: If the API request fails.
        """
        return TelegramUser.model_validate(self._post("getMe", {}))

    def get_updates(
        self,
        offset: int | None = None,
        timeout: int | None = None,
    ) -> list[TelegramUpdate]:
        """Get updates from Telegram using long polling.

        :param offset: Identifier of the first update to be returned.
            Should be one greater than the highest update_id received.
        :param timeout: Timeout in seconds for long polling. If not provided,
            uses the configured poll_timeout.
        :returns: List of updates from Telegram.
        :raises TelegramClientError: If the API request fails.
        """
        url = f"{self._base_url}/getUpdates"
        poll_timeout = timeout if timeout is not None else self._poll_timeout

        params: dict[str, int] = {"timeout": poll_timeout}
        if offset is not None:
            params["offset"] = offset

        # Request timeout should be slightly longer than poll timeout
        # to avoid premature connection termination
        request_timeout = poll_timeout + 10

        logger.debug(f"Polling for updates: offset={offset}, timeout={poll_timeout}s")

        try:
            response = requests.get(url, params=params, timeout=request_timeout)
        except requests.exceptions.Timeout as e:
            raise TelegramClientError(
                f"Telegram API request timed out after {request_timeout}s",
                kind=ErrorKind.TRANSIENT,
            ) from e
        except requests.exceptions.RequestException as e:
            raise TelegramClientError(
                f"Telegram API request failed: {e}", kind=ErrorKind.TRANSIENT
            ) from e

        updates_data = self._parse_response(response) or []
        updates = [TelegramUpdate.model_validate(u) for u in updates_data]

        if updates:
            logger.debug(f"Received {len(updates)} updates")

        return updates

    def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to a Bot API method and return its result object.

        :param endpoint: Bot API method name, e.g. ``sendMessage``.
        :param payload: JSON payload.
        :returns: The ``result`` field of the response.
        :raises TelegramClientError: If the request fails or Telegram reports an error.
        """
        url = f"{self._base_url}/{endpoint}"

        try:
            response = requests.post(url, json=payload, timeout=DEFAULT_REQUEST_TIMEOUT)
        except requests.exceptions.Timeout as e:
            raise TelegramClientError(
                f"Telegram API request timed out after {DEFAULT_REQUEST_TIMEOUT}s",
                kind=ErrorKind.TRANSIENT,
            ) from e
        except requests.exceptions.RequestException as e:
            raise TelegramClientError(
                f"Telegram API request failed: {e}", kind=ErrorKind.TRANSIENT
            ) from e

        result = self._parse_response(response)
        return result if isinstance(result, dict) else {}

    @staticmethod
    def _parse_response(response: requests.Response) -> Any:
        """Unwrap a Bot API response, classifying failures.

        Telegram answers errors with a JSON body even on 4xx/5xx statuses, so
        the body is read before looking at the status code.

        :param response: HTTP response.
        :returns: The ``result`` field.
        :raises TelegramClientError: If the response is not a successful API result.
        """
        try:
            body = response.json()
        except ValueError as e:
            raise TelegramClientError(
                f"Telegram API returned invalid JSON with status {response.status_code}",
                kind=classify_error(response.status_code, ""),
                status_code=response.status_code,
            ) from e

        if not isinstance(body, dict) or not body.get("ok"):
            description = (
                body.get("description", "Unknown error") if isinstance(body, dict) else str(body)
            )
            raise TelegramClientError(
                f"Telegram API returned error: {description}",
                kind=classify_error(response.status_code, description),
                status_code=response.status_code,
            )

        return body.get("result")
