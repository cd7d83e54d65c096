"""HTTP client for the OpenRouter chat completion API."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests
from pydantic import ValidationError
from requests.exceptions import RequestException, Timeout

from src.messaging.telegram.utils.sanitize import sanitize_response
from src.openrouter.config import OpenRouterConfig, get_openrouter_settings
from src.openrouter.models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    CreditsInfo,
)

logger = logging.getLogger(__name__)

HTTP_OK = 200

# Truncation length for response bodies in log lines
LOG_BODY_LENGTH = 500

ACCOUNT_URL = "https://openrouter.ai/account"


class OpenRouterClientError(Exception):
    """Raised when an OpenRouter request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialise the error.

        :param message: Error message, shown to the user as-is.
        :param status_code: HTTP status code if available.
        """
        super().__init__(message)
        self.status_code = status_code


class OpenRouterClient:
    """Client for OpenRouter, authenticated with one user's API token."""

    def __init__(
        self,
        api_token: str,
        settings: OpenRouterConfig | None = None,
    ) -> None:
        """Initialise the client.

        :param api_token: The user's OpenRouter API token.
        :param settings: OpenRouter settings. If not provided, loads from env.
        :raises OpenRouterClientError: If the token is empty.
        """
        if not api_token:
            raise OpenRouterClientError("OpenRouter API token is not set")

        self._settings = settings or get_openrouter_settings()
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_token}",
                "HTTP-Referer": self._settings.referer,
                "X-Title": self._settings.app_title,
            }
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    def __enter__(self) -> OpenRouterClient:
        """Enter context manager."""
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing the session."""
        self.close()

    def complete(
        self,
        model_id: str,
        prompt: str,
        request_id: str = "-",
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Send a single user message and return the model's reply.

        :param model_id: OpenRouter model ID, e.g. ``openai/gpt-4``.
        :param prompt: The user's message.
        :param request_id: Request ID sent as X-Request-ID and used in logs.
        :param cancel_event: Set by the caller when the request is no longer wanted.
        :returns: The reply text, sanitised to valid UTF-8.
        :raises OpenRouterClientError: If the request fails or the reply is empty.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise OpenRouterClientError("operation cancelled or timed out before API request")

        request = ChatCompletionRequest(
            model=model_id,
            messages=[ChatMessage(role="user", content=prompt)],
        )
        logger.debug(f"[{request_id}] Sending request to OpenRouter API, model: {model_id}")

        data = self._request(
            "POST",
            "/chat/completions",
            request_id,
            timeout=self._settings.request_timeout,
            json=request.model_dump(),
        )

        if cancel_event is not None and cancel_event.is_set():
            raise OpenRouterClientError("timeout while reading response from AI service")

        try:
            response = ChatCompletionResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"[{request_id}] Failed to parse API response: {e}")
            raise OpenRouterClientError(f"failed to parse response: {e}") from e

        if response.error is not None:
            logger.error(f"[{request_id}] API returned error message: {response.error.message}")
            raise OpenRouterClientError(f"API error: {response.error.message}")

        if not response.choices:
            logger.error(f"[{request_id}] API returned empty choices array")
            raise OpenRouterClientError("no response received from the model")

        content = response.choices[0].message.content or ""
        if not content.strip():
            logger.error(f"[{request_id}] API returned an empty message")
            raise OpenRouterClientError("no response received from the model")

        logger.debug(
            f"[{request_id}] Received valid response from model, length: {len(content)} chars"
        )
        return sanitize_response(content, request_id)

    def get_credits(self, request_id: str = "-") -> CreditsInfo:
        """Get the credit balance for the token's account.

        :param request_id: Request ID sent as X-Request-ID and used in logs.
        :returns: Credit information.
        :raises OpenRouterClientError: If the request fails.
        """
        data = self._request(
            "GET",
            "/credits",
            request_id,
            timeout=self._settings.credits_timeout,
        )

        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message", "Unknown error")
            logger.error(f"[{request_id}] Credits API returned error message: {message}")
            raise OpenRouterClientError(f"API error: {message}")

        payload = data.get("data", data)
        try:
            return CreditsInfo.model_validate(payload)
        except ValidationError as e:
            raise OpenRouterClientError(f"failed to parse response: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        request_id: str,
        timeout: int,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an HTTP request to OpenRouter.

        :param method: HTTP method.
        :param path: API path relative to the base URL.
        :param request_id: Request ID sent as X-Request-ID and used in logs.
        :param timeout: Request timeout in seconds.
        :param json: JSON request body.
        :returns: JSON response data.
        :raises OpenRouterClientError: If the request fails.
        """
        url = f"{self._settings.base_url}{path}"
        start = time.monotonic()

        try:
            response = self._session.request(
                method,
                url,
                json=json,
                headers={"X-Request-ID": request_id},
                timeout=timeout,
            )
        except Timeout as e:
            elapsed = time.monotonic() - start
            logger.error(f"[{request_id}] OpenRouter request timed out after {elapsed:.1f}s")
            raise OpenRouterClientError(
                f"request to AI service timed out (after {elapsed:.0f}s). Please try again"
            ) from e
        except RequestException as e:
            logger.error(f"[{request_id}] OpenRouter request failed: {e}")
            raise OpenRouterClientError(f"request to AI service failed: {e}") from e

        elapsed = time.monotonic() - start
        logger.info(
            f"[{request_id}] OpenRouter {path} responded with status "
            f"{response.status_code} in {elapsed:.2f}s"
        )

        if response.status_code != HTTP_OK:
            detail = self._extract_error_detail(response)
            logger.error(
                f"[{request_id}] OpenRouter returned non-OK status: {response.status_code}, "
                f"body: {response.text[:LOG_BODY_LENGTH]}"
            )
            raise OpenRouterClientError(
                f"API returned error status {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                f"[{request_id}] Failed to decode response body: "
                f"{response.text[:LOG_BODY_LENGTH]}"
            )
            raise OpenRouterClientError(f"failed to parse response: {e}") from e

        if not isinstance(data, dict):
            raise OpenRouterClientError("failed to parse response: unexpected JSON shape")
        return data

    @staticmethod
    def _extract_error_detail(response: requests.Response) -> str:
        """Extract error detail from response.

        :param response: HTTP response.
        :returns: Error message string.
        """
        try:
            body = response.json()
        except ValueError:
            return response.reason or "Unknown error"

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return response.reason or "Unknown error"


def format_credits_info(credits: CreditsInfo) -> str:
    """Format credit information for display in chat.

    :param credits: Credit information from OpenRouter.
    :returns: Multi-line plain-text summary.
    """
    lines = [
        "🪙 OpenRouter Credits Information:",
        "",
        f"• Total credits: {credits.credits:.2f}",
        f"• Usage: {credits.usage:.2f}",
        f"• Remaining credits: {credits.remaining:.2f}",
    ]
    if credits.expires_at:
        lines.append(f"• Expires at: {credits.expires_at}")

    lines.extend(["", f"View more details at: {ACCOUNT_URL}"])
    return "\n".join(lines)
