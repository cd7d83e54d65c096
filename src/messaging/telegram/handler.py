"""Message handler for Telegram conversations."""

from __future__ import annotations

import logging
import re
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.messaging.telegram.client import TelegramClientError
from src.messaging.telegram.utils.sanitize import clean_model_prefix
from src.openrouter.client import OpenRouterClient, OpenRouterClientError, format_credits_info
from src.storage.models import LogLevel
from src.utils.logging import set_log_level

if TYPE_CHECKING:
    from src.messaging.telegram.client import TelegramClient
    from src.messaging.telegram.models import TelegramMessageInfo, TelegramUpdate
    from src.messaging.telegram.utils.config import TelegramConfig
    from src.storage.models import UserProfile
    from src.storage.store import SettingsStore

logger = logging.getLogger(__name__)

# Pattern to match Telegram commands (e.g., /help, /setmodel@my_bot gpt-4)
# Captures: group 1 = command name, group 2 = optional args (may be None)
COMMAND_PATTERN = re.compile(r"^/([a-zA-Z_]+)(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)

MODELS_URL = "https://openrouter.ai/models?order=top-weekly"

HELP_TEXT = (
    "Available commands:\n"
    "/help - Show this help message\n"
    "/settoken <token> - Set your OpenRouter API token\n"
    "/model - Show current AI model\n"
    "/models - List available AI models\n"
    "/setmodel <name> - Set current AI model by name\n"
    "/addmodel <your_name> <openrouter_id> - Add a new model to your list\n"
    "/removemodel <name> - Remove a model from your list\n"
    "/getcredits - Check your OpenRouter credits balance\n"
    "Just send a message to chat with the current AI model!"
)

PASSWORD_PROMPT = "⚠️ This bot is password protected. Please enter the password to continue."
AUTHORISED_MESSAGE = "✅ Authorization successful! You can now use the bot."
TOKEN_REQUIRED_MESSAGE = "Please set your OpenRouter API token first with /settoken <your_token>"
MODEL_REQUIRED_MESSAGE = "Please select a model first with /setmodel <model_name>"
TEXT_REQUIRED_MESSAGE = "Please send a text message."
UNKNOWN_COMMAND_MESSAGE = "Unknown command. Use /help to see available commands."
EMPTY_RESPONSE_MESSAGE = "Error: no response received from the model"

CompletionClientFactory = Callable[[str], OpenRouterClient]


@dataclass
class ParsedCommand:
    """Parsed Telegram command."""

    name: str
    args: str | None


@dataclass
class BotReply:
    """A reply produced by the handler.

    :param text: Reply text.
    :param formatted: True if the text is model output that should go through
        the Markdown formatter; False for plain bot messages.
    """

    text: str
    formatted: bool = False


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a Telegram command from message text.

    :param text: The message text to parse.
    :returns: ParsedCommand if text starts with a command, None otherwise.
    """
    match = COMMAND_PATTERN.match(text.strip())
    if match:
        return ParsedCommand(
            name=match.group(1).lower(),
            args=match.group(2).strip() if match.group(2) else None,
        )
    return None


class MessageHandler:
    """Handles incoming Telegram messages and routes them to OpenRouter.

    Responsibilities:
    - Password gate for unknown users
    - Per-user settings commands
    - Invoke the selected model with a typing indicator
    - Return a reply for the runner to dispatch
    """

    def __init__(
        self,
        settings: TelegramConfig,
        store: SettingsStore,
        telegram_client: TelegramClient | None = None,
        completion_client_factory: CompletionClientFactory = OpenRouterClient,
    ) -> None:
        """Initialise the message handler.

        :param settings: Telegram settings.
        :param store: Settings store for per-user profiles.
        :param telegram_client: Optional Telegram client for sending typing indicators.
        :param completion_client_factory: Builds a completion client from a user's token.
        """
        self._settings = settings
        self._store = store
        self._telegram_client = telegram_client
        self._completion_client_factory = completion_client_factory

        # Command dispatch table - add new commands here
        self._commands: dict[str, Callable[[int, UserProfile, str | None, str], str]] = {
            "start": self._cmd_help,
            "help": self._cmd_help,
            "settoken": self._cmd_settoken,
            "model": self._cmd_model,
            "models": self._cmd_models,
            "setmodel": self._cmd_setmodel,
            "addmodel": self._cmd_addmodel,
            "removemodel": self._cmd_removemodel,
            "debug": self._cmd_debug,
            "getcredits": self._cmd_getcredits,
        }

    def handle_update(
        self,
        update: TelegramUpdate,
        request_id: str = "-",
        cancel_event: threading.Event | None = None,
    ) -> BotReply | None:
        """Handle a Telegram update and return the reply.

        :param update: The Telegram update to process.
        :param request_id: Request ID used in log lines.
        :param cancel_event: Set by the runner when the reply is no longer wanted.
        :returns: Reply to send, or None if no response is needed.
        """
        if update.message is None:
            logger.debug(f"[{request_id}] Ignoring update without message: {update.update_id}")
            return None

        if cancel_event is not None and cancel_event.is_set():
            logger.error(f"[{request_id}] Deadline passed before message handling")
            return None

        message = update.message
        user_id = self._user_id(message)
        text = message.text or ""

        if not self._store.is_authorised(user_id):
            return self._handle_password(user_id, text, request_id)
        logger.debug(f"[{request_id}] User {user_id} is already authorised")

        command = parse_command(text)
        if command is not None:
            return BotReply(self._handle_command(user_id, command, request_id))

        if not text:
            return BotReply(TEXT_REQUIRED_MESSAGE)

        return self._handle_chat(message, user_id, text, request_id, cancel_event)

    @staticmethod
    def _user_id(message: TelegramMessageInfo) -> int:
        """Get the sender's user ID, falling back to the chat ID.

        :param message: Incoming message.
        :returns: User ID.
        """
        if message.from_user is not None:
            return message.from_user.id
        return message.chat.id

    def _handle_password(self, user_id: int, text: str, request_id: str) -> BotReply:
        """Authorise the user if the message is the bot password.

        :param user_id: Telegram user ID.
        :param text: Message text.
        :param request_id: Request ID used in log lines.
        :returns: Success message or password prompt.
        """
        password = self._settings.bot_password.get_secret_value()
        if text and secrets.compare_digest(text.encode(), password.encode()):
            self._store.authorise(user_id)
            logger.info(f"[{request_id}] User {user_id} successfully authorised with password")
            return BotReply(AUTHORISED_MESSAGE)

        logger.info(f"[{request_id}] Unauthorised access attempt by user {user_id}")
        return BotReply(PASSWORD_PROMPT)

    def _handle_command(self, user_id: int, command: ParsedCommand, request_id: str) -> str:
        """Route a command to the appropriate handler.

        :param user_id: Telegram user ID.
        :param command: Parsed command.
        :param request_id: Request ID used in log lines.
        :returns: Response text.
        """
        logger.info(f"[{request_id}] Received command /{command.name} from user {user_id}")

        handler = self._commands.get(command.name)
        if handler is None:
            logger.debug(f"[{request_id}] Unknown command: /{command.name}")
            return UNKNOWN_COMMAND_MESSAGE

        profile = self._store.get_user(user_id, request_id)
        return handler(user_id, profile, command.args, request_id)

    def _cmd_help(
        self, _user_id: int, _profile: UserProfile, _args: str | None, _request_id: str
    ) -> str:
        return HELP_TEXT

    def _cmd_settoken(
        self, user_id: int, _profile: UserProfile, args: str | None, request_id: str
    ) -> str:
        """Handle /settoken <token>."""
        if not args:
            return "Please provide your OpenRouter API token. Usage: /settoken <your_token>"

        token = args.strip()

        def set_token(profile: UserProfile) -> None:
            profile.openrouter_token = token

        self._store.modify_user(user_id, set_token, request_id)
        return "OpenRouter API token has been set! You can now chat with AI models."

    def _cmd_model(
        self, _user_id: int, profile: UserProfile, _args: str | None, _request_id: str
    ) -> str:
        """Handle /model."""
        if not profile.current_model:
            return "No model selected. Use /setmodel <name> to select a model."
        model_id = profile.models.get(profile.current_model, "")
        return f"Current model: {profile.current_model} ({model_id})"

    def _cmd_models(
        self, _user_id: int, profile: UserProfile, _args: str | None, _request_id: str
    ) -> str:
        """Handle /models. Aliases are listed alphabetically."""
        if not profile.models:
            return "No models available. Use /addmodel to add some."

        models_list = "".join(
            f"• {name} ({profile.models[name]})\n" for name in sorted(profile.models)
        )
        return (
            f"Available models:\n{models_list}\n"
            "Use /setmodel <name> to select a model.\n"
            f" Full models list (for getting ids) can be saw in: {MODELS_URL}"
        )

    def _cmd_setmodel(
        self, user_id: int, _profile: UserProfile, args: str | None, request_id: str
    ) -> str:
        """Handle /setmodel <name>."""
        if not args:
            return "Please provide a model name. Usage: /setmodel <model_name>"

        name = args.strip()

        def select_model(profile: UserProfile) -> str:
            if name not in profile.models:
                return f"Model '{name}' not found. Use /models to see available models."
            profile.current_model = name
            return f"Model set to: {name} ({profile.models[name]})"

        return self._store.modify_user(user_id, select_model, request_id)

    def _cmd_addmodel(
        self, user_id: int, _profile: UserProfile, args: str | None, request_id: str
    ) -> str:
        """Handle /addmodel <name> <openrouter_id>."""
        parts = (args or "").split(None, 1)
        if len(parts) < 2:
            return (
                "Please provide model name and ID. "
                "Usage: /addmodel <your_name> <openrouter_id>"
            )

        name, model_id = parts[0].strip(), parts[1].strip()
        if not name or not model_id:
            return "Model name and ID cannot be empty."

        def add_model(profile: UserProfile) -> None:
            profile.models[name] = model_id

        self._store.modify_user(user_id, add_model, request_id)
        return f"Model added: {name} ({model_id})"

    def _cmd_removemodel(
        self, user_id: int, _profile: UserProfile, args: str | None, request_id: str
    ) -> str:
        """Handle /removemodel <name>. Removing the selected model clears the selection."""
        if not args:
            return "Please provide a model name. Usage: /removemodel <name>"

        name = args.strip()

        def remove_model(profile: UserProfile) -> str:
            if name not in profile.models:
                return f"Model '{name}' not found."
            if profile.current_model == name:
                profile.current_model = ""
            del profile.models[name]
            return f"Model '{name}' removed."

        return self._store.modify_user(user_id, remove_model, request_id)

    def _cmd_debug(
        self, user_id: int, _profile: UserProfile, _args: str | None, request_id: str
    ) -> str:
        """Handle /debug by toggling the persisted log level."""
        level = self._store.toggle_debug()
        set_log_level(level.value)
        logger.info(f"[{request_id}] User {user_id} switched log level to {level}")

        if level is LogLevel.DEBUG:
            return "Debug mode enabled. Check logs for detailed information."
        return "Debug mode disabled."

    def _cmd_getcredits(
        self, _user_id: int, profile: UserProfile, _args: str | None, request_id: str
    ) -> str:
        """Handle /getcredits."""
        if not profile.openrouter_token:
            return TOKEN_REQUIRED_MESSAGE

        try:
            with self._completion_client_factory(profile.openrouter_token) as client:
                credits = client.get_credits(request_id)
        except OpenRouterClientError as e:
            logger.error(f"[{request_id}] Failed to get credits: {e}")
            return f"Error getting credits: {e}"

        return format_credits_info(credits)

    def _handle_chat(
        self,
        message: TelegramMessageInfo,
        user_id: int,
        text: str,
        request_id: str,
        cancel_event: threading.Event | None,
    ) -> BotReply:
        """Handle a regular message by invoking the selected model.

        :param message: Incoming message.
        :param user_id: Telegram user ID.
        :param text: Message text.
        :param request_id: Request ID used in log lines.
        :param cancel_event: Set by the runner when the reply is no longer wanted.
        :returns: The model's reply, or an error message.
        """
        profile = self._store.get_user(user_id, request_id)
        if not profile.openrouter_token:
            return BotReply(TOKEN_REQUIRED_MESSAGE)

        model_id = profile.current_model_id
        if model_id is None:
            return BotReply(MODEL_REQUIRED_MESSAGE)

        logger.info(
            f"[{request_id}] Processing message from user {user_id} with model "
            f"{profile.current_model} ({model_id}), length={len(text)}"
        )
        self._send_typing(message.chat.id, request_id)

        try:
            with self._completion_client_factory(profile.openrouter_token) as client:
                response = client.complete(model_id, text, request_id, cancel_event)
        except OpenRouterClientError as e:
            logger.error(f"[{request_id}] Error from OpenRouter API: {e}")
            return BotReply(f"Error: {e}")

        logger.info(f"[{request_id}] Received response from AI model, length={len(response)}")
        reply = clean_model_prefix(response)
        if not reply:
            logger.warning(f"[{request_id}] Response was empty after removing the model prefix")
            return BotReply(EMPTY_RESPONSE_MESSAGE)
        return BotReply(reply, formatted=True)

    def _send_typing(self, chat_id: int, request_id: str) -> None:
        """Show the typing indicator, ignoring failures.

        :param chat_id: Target chat ID.
        :param request_id: Request ID used in log lines.
        """
        if self._telegram_client is None:
            return
        try:
            self._telegram_client.send_chat_action(chat_id, action="typing")
        except TelegramClientError as e:
            logger.warning(f"[{request_id}] Failed to send typing indicator: {e}")
