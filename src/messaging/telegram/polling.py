"""Long polling runner for Telegram bot."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
import uuid
from collections.abc import Coroutine
from typing import Any

from dotenv import load_dotenv

from src.messaging.telegram.client import TelegramClient, TelegramClientError
from src.messaging.telegram.dispatch import MessageDispatcher
from src.messaging.telegram.handler import MessageHandler
from src.messaging.telegram.models import TelegramUpdate
from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings
from src.observability.sentry import init_sentry
from src.paths import PROJECT_ROOT
from src.storage.store import SettingsStore
from src.utils.logging import configure_logging, set_log_level

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Sorry, the operation timed out. Please try again."
ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."


class PollingRunner:
    """Async long polling runner for receiving Telegram updates.

    Runs a continuous async loop that:
    1. Polls Telegram for updates using long polling
    2. Handles each message in its own task, under a deadline
    3. Persists the polling offset
    4. Handles graceful shutdown on SIGINT/SIGTERM
    """

    def __init__(
        self,
        client: TelegramClient | None = None,
        settings: TelegramConfig | None = None,
        store: SettingsStore | None = None,
        handler: MessageHandler | None = None,
        dispatcher: MessageDispatcher | None = None,
    ) -> None:
        """Initialise the polling runner.

        :param client: Telegram client. If not provided, creates one from env.
        :param settings: Telegram settings. If not provided, loads from env.
        :param store: Settings store. If not provided, opens the configured state file.
        :param handler: Message handler. If not provided, creates default one.
        :param dispatcher: Reply dispatcher. If not provided, creates default one.
        """
        self._settings = settings or get_telegram_settings()
        self._client = client or TelegramClient(
            bot_token=self._settings.bot_token,
            poll_timeout=self._settings.poll_timeout,
        )
        self._store = store or SettingsStore(self._settings.state_file)
        self._handler = handler or MessageHandler(
            settings=self._settings,
            store=self._store,
            telegram_client=self._client,
        )
        self._dispatcher = dispatcher or MessageDispatcher(
            self._client,
            max_message_length=self._settings.max_message_length,
        )
        self._running = False
        self._consecutive_errors = 0
        self._tasks: set[asyncio.Task[None]] = set()

    async def run(self) -> None:
        """Start the async polling loop.

        Runs until shutdown signal is received or stop() is called. Messages
        still being handled at shutdown are awaited before returning.
        """
        set_log_level(self._store.log_level.value)

        bot_user = await asyncio.to_thread(self._client.get_me)
        logger.info(f"Authorised on account @{bot_user.username or bot_user.first_name}")

        self._running = True
        self._setup_signal_handlers()

        logger.info(
            f"Starting Telegram polling runner: poll_timeout={self._settings.poll_timeout}s, "
            f"handler_timeout={self._settings.handler_timeout}s"
        )

        try:
            await self._polling_loop()
        except asyncio.CancelledError:
            logger.info("Polling loop cancelled")
        finally:
            if self._tasks:
                logger.info(f"Waiting for {len(self._tasks)} in-flight messages")
                await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.info("Polling runner stopped")

    def stop(self) -> None:
        """Signal the polling loop to stop."""
        logger.info("Stopping polling runner...")
        self._running = False

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown.

        Uses asyncio-compatible signal handling on Unix systems.
        Falls back to no-op on Windows.
        """
        if sys.platform == "win32":
            # Windows doesn't support add_signal_handler
            logger.warning("Signal handlers not supported on Windows, use Ctrl+C")
            return

        try:
            loop = asyncio.get_running_loop()

            def signal_handler() -> None:
                logger.info("Received shutdown signal")
                self.stop()

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)
        except RuntimeError:
            logger.warning("Could not set up signal handlers (no running event loop)")

    async def _polling_loop(self) -> None:
        """Execute the main async polling loop."""
        last_update_id = self._store.last_update_id
        offset = last_update_id + 1 if last_update_id > 0 else None

        logger.info(f"Starting polling from offset={offset}")

        while self._running:
            try:
                updates = await asyncio.to_thread(self._client.get_updates, offset)
                self._consecutive_errors = 0  # Reset on success
            except TelegramClientError as e:
                await self._handle_polling_error(e)
                continue

            if not updates:
                continue

            for update in updates:
                if update.message is not None:
                    self._spawn(self._process_update(update))

            max_update_id = max(u.update_id for u in updates)
            offset = max_update_id + 1
            await asyncio.to_thread(self._store.update_polling_cursor, max_update_id)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a message handler as a tracked background task."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_update(self, update: TelegramUpdate) -> None:
        """Process a single update under the handler deadline.

        :param update: The Telegram update to process.
        """
        if update.message is None:
            return

        request_id = uuid.uuid4().hex[:8]
        chat_id = update.message.chat.id
        cancel_event = threading.Event()
        logger.info(f"[{request_id}] Received update {update.update_id} from chat_id={chat_id}")

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._handle_and_reply, update, request_id, cancel_event),
                timeout=self._settings.handler_timeout,
            )
        except TimeoutError:
            cancel_event.set()
            logger.error(
                f"[{request_id}] Message handling timed out after "
                f"{self._settings.handler_timeout}s"
            )
            await self._send_notice(chat_id, TIMEOUT_MESSAGE, request_id)
        except Exception:
            logger.exception(f"[{request_id}] Error processing update: {update.update_id}")
            await self._send_notice(chat_id, ERROR_MESSAGE, request_id)

    def _handle_and_reply(
        self,
        update: TelegramUpdate,
        request_id: str,
        cancel_event: threading.Event,
    ) -> None:
        """Handle an update and send the reply.

        Sync method called via asyncio.to_thread(). A reply produced after
        the deadline has passed is dropped, and a reply still being sent when
        the deadline passes stops before its next part.

        :param update: The Telegram update to process.
        :param request_id: Request ID used in log lines.
        :param cancel_event: Set when the deadline has passed.
        """
        reply = self._handler.handle_update(update, request_id, cancel_event)
        if reply is None or update.message is None:
            return

        if cancel_event.is_set():
            logger.warning(f"[{request_id}] Discarding reply produced after the deadline")
            return

        chat_id = update.message.chat.id
        if reply.formatted:
            self._dispatcher.send_formatted(
                chat_id, reply.text, request_id, cancel_event=cancel_event
            )
        else:
            self._dispatcher.send_plain(chat_id, reply.text, request_id, cancel_event=cancel_event)

    async def _send_notice(self, chat_id: int, text: str, request_id: str) -> None:
        """Send a plain notice to a chat.

        :param chat_id: Target chat ID.
        :param text: Notice text.
        :param request_id: Request ID used in log lines.
        """
        outcomes = await asyncio.to_thread(self._dispatcher.send_plain, chat_id, text, request_id)
        if not all(outcome.delivered for outcome in outcomes):
            logger.error(f"[{request_id}] Failed to send notice to chat_id={chat_id}")

    async def _handle_polling_error(self, error: TelegramClientError) -> None:
        """Handle an error during polling.

        Backs off for longer after too many consecutive errors.

        :param error: The error that occurred.
        """
        self._consecutive_errors += 1
        logger.warning(f"Polling error (consecutive: {self._consecutive_errors}): {error}")

        if self._consecutive_errors >= self._settings.max_consecutive_errors:
            logger.error(
                f"Max consecutive errors reached ({self._settings.max_consecutive_errors}), "
                f"backing off for {self._settings.backoff_delay}s"
            )
            await asyncio.sleep(self._settings.backoff_delay)
            self._consecutive_errors = 0
        else:
            await asyncio.sleep(self._settings.error_retry_delay)


def main() -> None:
    """Entry point for running the Telegram polling bot."""
    load_dotenv(PROJECT_ROOT / ".env")
    configure_logging()
    if init_sentry():
        logger.info("Sentry error reporting enabled")
    runner = PollingRunner()
    asyncio.run(runner.run())


if __name__ == "__main__":
    main()
