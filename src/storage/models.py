"""Pydantic models for the bot's persisted state."""

from enum import StrEnum

from pydantic import BaseModel, Field

DEFAULT_MODEL = "gpt-3.5-turbo"

# Model aliases every new user starts with (alias -> OpenRouter model ID)
DEFAULT_MODELS: dict[str, str] = {
    "gpt-3.5-turbo": "openai/gpt-3.5-turbo",
    "gpt-4": "openai/gpt-4",
    "claude-instant": "anthropic/claude-instant-v1",
    "claude-2": "anthropic/claude-2",
    "llama-2-70b": "meta-llama/llama-2-70b-chat",
    "mistral-7b-instruct": "mistralai/mistral-7b-instruct-v0.1",
}


class LogLevel(StrEnum):
    """Log levels selectable at runtime."""

    DEBUG = "debug"
    INFO = "info"
    ERROR = "error"


class UserProfile(BaseModel):
    """Per-user settings.

    :param openrouter_token: The user's OpenRouter API key.
    :param current_model: Alias of the selected model, empty if none.
    :param models: Model aliases mapped to OpenRouter model IDs.
    """

    openrouter_token: str = ""
    current_model: str = DEFAULT_MODEL
    models: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODELS))

    @property
    def current_model_id(self) -> str | None:
        """OpenRouter ID of the selected model, if it is still in the list."""
        if not self.current_model:
            return None
        return self.models.get(self.current_model) or None


class BotState(BaseModel):
    """Everything persisted in the JSON state file."""

    users: dict[int, UserProfile] = Field(default_factory=dict)
    authorized_ids: dict[int, bool] = Field(default_factory=dict)
    log_level: LogLevel = LogLevel.INFO
    last_update_id: int = 0

    model_config = {"extra": "ignore"}
