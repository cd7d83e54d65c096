"""Tests for Telegram polling runner module."""

import asyncio
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from src.messaging.telegram.client import TelegramClientError
from src.messaging.telegram.handler import BotReply
from src.messaging.telegram.models import (
    TelegramChat,
    TelegramMessageInfo,
    TelegramUpdate,
    TelegramUser,
)
from src.messaging.telegram.polling import ERROR_MESSAGE, TIMEOUT_MESSAGE, PollingRunner
from src.messaging.telegram.utils.config import TelegramConfig
from src.storage.store import SettingsStore


def _create_update(
    update_id: int,
    chat_id: int = 12345,
    text: str | None = "hi",
) -> TelegramUpdate:
    """Create a test TelegramUpdate."""
    return TelegramUpdate(
        update_id=update_id,
        message=TelegramMessageInfo(
            message_id=update_id,
            date=1234567890,
            chat=TelegramChat(id=chat_id, type="private"),
            text=text,
        ),
    )


class TestPollingRunner(unittest.IsolatedAsyncioTestCase):
    """Tests for PollingRunner class."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_dir.cleanup)
        self.store = SettingsStore(Path(tmp_dir.name) / "state.json")
        self.settings = TelegramConfig(
            bot_token="test-token",
            bot_password="secret",
            _env_file=None,
        )
        self.mock_client = MagicMock()
        self.mock_handler = MagicMock()
        self.mock_dispatcher = MagicMock()
        self.mock_dispatcher.send_plain.return_value = []
        self.runner = self._create_runner(self.settings)

    def _create_runner(self, settings: TelegramConfig) -> PollingRunner:
        return PollingRunner(
            client=self.mock_client,
            settings=settings,
            store=self.store,
            handler=self.mock_handler,
            dispatcher=self.mock_dispatcher,
        )

    def _stop_after(self, *batches: list[TelegramUpdate]) -> MagicMock:
        """Make get_updates return the given batches, then stop the runner."""
        remaining = list(batches)

        def get_updates(offset: int | None = None) -> list[TelegramUpdate]:
            if not remaining:
                self.runner.stop()
                return []
            return remaining.pop(0)

        self.mock_client.get_updates.side_effect = get_updates
        return self.mock_client.get_updates

    async def test_polling_loop_handles_messages_and_persists_cursor(self) -> None:
        """Test that each message is handled and the cursor is stored."""
        self.mock_handler.handle_update.return_value = BotReply("pong")
        self._stop_after([_create_update(5), TelegramUpdate(update_id=6)])

        self.runner._running = True
        await self.runner._polling_loop()
        await asyncio.gather(*self.runner._tasks)

        self.assertEqual(self.mock_handler.handle_update.call_count, 1)
        self.mock_dispatcher.send_plain.assert_called_once()
        self.assertEqual(self.store.last_update_id, 6)
        self.assertEqual(self.mock_client.get_updates.call_args_list[-1].args, (7,))

    async def test_polling_resumes_from_stored_cursor(self) -> None:
        """Test that polling starts after the persisted update ID."""
        self.store.update_polling_cursor(10)
        get_updates = self._stop_after()

        self.runner._running = True
        await self.runner._polling_loop()

        self.assertEqual(get_updates.call_args.args, (11,))

    @patch("src.messaging.telegram.polling.set_log_level")
    async def test_run_applies_log_level_and_stops(self, mock_set_log_level: MagicMock) -> None:
        """Test the full run lifecycle."""
        self.mock_client.get_me.return_value = TelegramUser(
            id=1, is_bot=True, first_name="Bot", username="test_bot"
        )
        self._stop_after()

        with patch.object(PollingRunner, "_setup_signal_handlers"):
            await self.runner.run()

        mock_set_log_level.assert_called_once_with("info")
        self.mock_client.get_me.assert_called_once()

    async def test_process_update_formatted_reply(self) -> None:
        """Test that model replies go through the formatter."""
        self.mock_handler.handle_update.return_value = BotReply("**hi**", formatted=True)

        await self.runner._process_update(_create_update(1))

        chat_id, text, _request_id = self.mock_dispatcher.send_formatted.call_args.args
        self.assertEqual((chat_id, text), (12345, "**hi**"))
        cancel_event = self.mock_dispatcher.send_formatted.call_args.kwargs["cancel_event"]
        self.assertIsInstance(cancel_event, threading.Event)
        self.assertFalse(cancel_event.is_set())
        self.mock_dispatcher.send_plain.assert_not_called()

    async def test_process_update_no_reply(self) -> None:
        """Test that nothing is sent when the handler has no reply."""
        self.mock_handler.handle_update.return_value = None

        await self.runner._process_update(_create_update(1))

        self.mock_dispatcher.send_formatted.assert_not_called()
        self.mock_dispatcher.send_plain.assert_not_called()

    async def test_process_update_error_sends_notice(self) -> None:
        """Test that unexpected errors are reported to the user."""
        self.mock_handler.handle_update.side_effect = RuntimeError("boom")

        await self.runner._process_update(_create_update(1))

        self.assertEqual(self.mock_dispatcher.send_plain.call_args.args[1], ERROR_MESSAGE)

    async def test_process_update_timeout_discards_late_reply(self) -> None:
        """Test that a slow handler is cancelled and its reply dropped."""
        settings = self.settings.model_copy(update={"handler_timeout": 0.05})
        runner = self._create_runner(settings)
        handler_finished = threading.Event()
        seen_events: list[threading.Event] = []

        def slow_handle(
            update: TelegramUpdate, request_id: str, cancel_event: threading.Event
        ) -> BotReply:
            seen_events.append(cancel_event)
            cancel_event.wait(5)
            handler_finished.set()
            return BotReply("too late", formatted=True)

        self.mock_handler.handle_update.side_effect = slow_handle

        await runner._process_update(_create_update(1))
        await asyncio.to_thread(handler_finished.wait, 5)

        self.assertTrue(seen_events[0].is_set())
        self.assertEqual(self.mock_dispatcher.send_plain.call_args.args[1], TIMEOUT_MESSAGE)
        self.mock_dispatcher.send_formatted.assert_not_called()

    def test_handle_and_reply_drops_reply_after_deadline(self) -> None:
        """Test the late reply check."""
        self.mock_handler.handle_update.return_value = BotReply("late")
        cancel_event = threading.Event()
        cancel_event.set()

        self.runner._handle_and_reply(_create_update(1), "req", cancel_event)

        self.mock_dispatcher.send_plain.assert_not_called()

    @patch("src.messaging.telegram.polling.asyncio.sleep", new_callable=AsyncMock)
    async def test_polling_error_backoff(self, mock_sleep: AsyncMock) -> None:
        """Test the delay after consecutive polling errors."""
        error = TelegramClientError("down")

        for _ in range(self.settings.max_consecutive_errors - 1):
            await self.runner._handle_polling_error(error)
        mock_sleep.assert_awaited_with(self.settings.error_retry_delay)

        await self.runner._handle_polling_error(error)
        mock_sleep.assert_awaited_with(self.settings.backoff_delay)
        self.assertEqual(self.runner._consecutive_errors, 0)


if __name__ == "__main__":
    unittest.main()
