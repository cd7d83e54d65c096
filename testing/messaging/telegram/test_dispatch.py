"""Tests for the reply dispatcher."""

import threading
import unittest
from unittest.mock import MagicMock, call, patch

from src.messaging.telegram.client import ErrorKind, TelegramClientError
from src.messaging.telegram.dispatch import (
    FALLBACK_NOTICE,
    DeliveryState,
    MessageDispatcher,
)
from src.messaging.telegram.models import ParseMode


def _error(kind: ErrorKind) -> TelegramClientError:
    return TelegramClientError(f"Telegram API returned error: {kind}", kind=kind)


@patch("src.messaging.telegram.dispatch.time.sleep")
class TestMessageDispatcher(unittest.TestCase):
    """Tests for MessageDispatcher class."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.mock_client = MagicMock()
        self.dispatcher = MessageDispatcher(self.mock_client, max_message_length=100)

    def test_short_message_sent_once_as_html(self, mock_sleep: MagicMock) -> None:
        """Test that a short reply is formatted and sent in one call."""
        outcomes = self.dispatcher.send_formatted(1, "**hi**")

        self.mock_client.send_message.assert_called_once_with(
            "<b>hi</b>", chat_id=1, parse_mode=ParseMode.HTML
        )
        self.assertEqual(outcomes[0].state, DeliveryState.DELIVERED)
        self.assertEqual(outcomes[0].attempts, 1)
        mock_sleep.assert_not_called()

    def test_markup_rejected_resent_as_plain_text(self, mock_sleep: MagicMock) -> None:
        """Test the degraded path uses exactly two transport calls."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.MARKUP_REJECTED),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "**hi** & bye")

        self.assertEqual(self.mock_client.send_message.call_count, 2)
        self.assertEqual(
            self.mock_client.send_message.call_args,
            call("hi & bye", chat_id=1, parse_mode=ParseMode.PLAIN),
        )
        self.assertEqual(outcomes[0].state, DeliveryState.DELIVERED)
        self.assertTrue(outcomes[0].degraded)
        mock_sleep.assert_not_called()

    def test_transient_errors_retried_with_backoff(self, mock_sleep: MagicMock) -> None:
        """Test linear backoff between transient retries."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.TRANSIENT),
            _error(ErrorKind.TRANSIENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "hello")

        self.assertEqual(self.mock_client.send_message.call_count, 3)
        self.assertEqual(mock_sleep.call_args_list, [call(1.0), call(2.0)])
        self.assertEqual(outcomes[0].state, DeliveryState.DELIVERED)
        self.assertEqual(outcomes[0].attempts, 3)

    def test_retries_exhausted_sends_fallback_notice(self, mock_sleep: MagicMock) -> None:
        """Test that a failed single part is followed by the fallback notice."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.TRANSIENT),
            _error(ErrorKind.TRANSIENT),
            _error(ErrorKind.TRANSIENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "hello")

        self.assertEqual(outcomes[0].state, DeliveryState.FAILED)
        self.assertEqual(self.mock_client.send_message.call_count, 4)
        self.assertEqual(
            self.mock_client.send_message.call_args,
            call(FALLBACK_NOTICE, chat_id=1, parse_mode=ParseMode.PLAIN),
        )

    def test_failed_degraded_attempt(self, mock_sleep: MagicMock) -> None:
        """Test that the plain-text resend gets a single attempt."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.MARKUP_REJECTED),
            _error(ErrorKind.TRANSIENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "**hi**")

        self.assertEqual(outcomes[0].state, DeliveryState.FAILED)
        self.assertEqual(outcomes[0].attempts, 2)
        self.assertEqual(self.mock_client.send_message.call_count, 3)
        mock_sleep.assert_not_called()

    def test_permanent_error_not_retried(self, mock_sleep: MagicMock) -> None:
        """Test that permanent errors fail immediately."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.PERMANENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "hello")

        self.assertEqual(outcomes[0].attempts, 1)
        self.assertEqual(outcomes[0].state, DeliveryState.FAILED)

    def test_first_part_failure_skips_remaining_parts(self, mock_sleep: MagicMock) -> None:
        """Test that later parts are not sent when the first part fails."""
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.PERMANENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "word " * 50)

        self.assertEqual(len(outcomes), 1)
        self.assertEqual(self.mock_client.send_message.call_count, 2)
        self.assertEqual(self.mock_client.send_message.call_args.args[0], FALLBACK_NOTICE)

    def test_later_part_failure_continues(self, mock_sleep: MagicMock) -> None:
        """Test that a failed middle part does not stop the remaining parts."""
        self.mock_client.send_message.side_effect = [
            MagicMock(),
            _error(ErrorKind.PERMANENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "word " * 50)

        self.assertEqual(
            [outcome.state for outcome in outcomes],
            [DeliveryState.DELIVERED, DeliveryState.FAILED, DeliveryState.DELIVERED],
        )
        self.assertEqual(self.mock_client.send_message.call_count, 3)
        texts = [c.args[0] for c in self.mock_client.send_message.call_args_list]
        self.assertNotIn(FALLBACK_NOTICE, texts)
        mock_sleep.assert_called_once_with(0.5)

    def test_multi_part_headers(self, mock_sleep: MagicMock) -> None:
        """Test that each part is announced with its position."""
        self.dispatcher.send_formatted(1, "word " * 50)

        texts = [c.args[0] for c in self.mock_client.send_message.call_args_list]
        self.assertEqual(len(texts), 3)
        self.assertTrue(texts[0].startswith("<b>Part 1/3:</b>\n\n"))
        self.assertTrue(texts[2].startswith("<b>Part 3/3:</b>\n\n"))

    def test_cancel_stops_remaining_parts(self, mock_sleep: MagicMock) -> None:
        """Test that no further parts are sent once the deadline has passed."""
        cancel_event = threading.Event()

        def send_and_expire(*args: object, **kwargs: object) -> MagicMock:
            cancel_event.set()
            return MagicMock()

        self.mock_client.send_message.side_effect = send_and_expire

        outcomes = self.dispatcher.send_formatted(1, "word " * 50, cancel_event=cancel_event)

        self.assertEqual(len(outcomes), 1)
        self.assertEqual(self.mock_client.send_message.call_count, 1)

    def test_cancel_during_backoff_stops_retries(self, mock_sleep: MagicMock) -> None:
        """Test that retries stop, without a fallback notice, after the deadline."""
        cancel_event = threading.Event()
        mock_sleep.side_effect = lambda _delay: cancel_event.set()
        self.mock_client.send_message.side_effect = [
            _error(ErrorKind.TRANSIENT),
            MagicMock(),
        ]

        outcomes = self.dispatcher.send_formatted(1, "hello", cancel_event=cancel_event)

        self.assertEqual(outcomes[0].state, DeliveryState.FAILED)
        self.assertEqual(self.mock_client.send_message.call_count, 1)

    def test_already_cancelled_sends_nothing(self, mock_sleep: MagicMock) -> None:
        """Test that a reply is not sent at all when the deadline already passed."""
        cancel_event = threading.Event()
        cancel_event.set()

        outcomes = self.dispatcher.send_plain(1, "late", cancel_event=cancel_event)

        self.assertEqual(outcomes, [])
        self.mock_client.send_message.assert_not_called()

    def test_send_plain(self, mock_sleep: MagicMock) -> None:
        """Test sending text without a parse mode."""
        self.dispatcher.send_plain(1, "a < b")

        self.mock_client.send_message.assert_called_once_with(
            "a < b", chat_id=1, parse_mode=ParseMode.PLAIN
        )


if __name__ == "__main__":
    unittest.main()
