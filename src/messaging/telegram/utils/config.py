"""Configuration for Telegram integration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.paths import DEFAULT_STATE_FILE, PROJECT_ROOT

_ENV_FILE = PROJECT_ROOT / ".env"


class TelegramConfig(BaseSettings):
    """Configuration for the Telegram bot.

    Settings are loaded from environment variables with the TELEGRAM_ prefix,
    except the password which is read from BOT_PASSWORD.

    :param bot_token: Telegram bot token from @BotFather.
    :param bot_password: Password users must send before using the bot.
    :param state_file: JSON file holding per-user settings and authorisations.
    :param poll_timeout: Timeout in seconds for long polling.
    :param handler_timeout: Seconds a single message may take before the user
        is told it timed out.
    :param error_retry_delay: Delay in seconds between retries after an error.
    :param max_consecutive_errors: Maximum consecutive errors before backing off.
    :param backoff_delay: Delay in seconds after max consecutive errors.
    :param max_message_length: Maximum characters per outgoing message part.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    bot_token: str = Field(
        ...,
        validation_alias=AliasChoices("bot_token", "TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN"),
        description="Bot token from @BotFather",
    )
    bot_password: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("bot_password", "BOT_PASSWORD"),
        description="Password required to use the bot",
    )
    state_file: Path = Field(
        default=DEFAULT_STATE_FILE,
        description="Path to the JSON settings store",
    )
    poll_timeout: int = Field(
        default=30,
        ge=1,
        le=60,
        description="Long polling timeout in seconds",
    )
    handler_timeout: int = Field(
        default=180,
        ge=10,
        le=600,
        description="Deadline in seconds for handling one message",
    )
    error_retry_delay: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Delay in seconds between retries after an error",
    )
    max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum consecutive errors before backing off",
    )
    backoff_delay: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Delay in seconds after max consecutive errors",
    )
    max_message_length: int = Field(
        default=4000,
        ge=100,
        le=4096,
        description="Maximum characters per outgoing message part",
    )

    @field_validator("bot_password")
    @classmethod
    def validate_bot_password(cls, v: SecretStr) -> SecretStr:
        """Validate that a non-empty password is configured.

        :param v: Password from environment.
        :returns: The validated password.
        :raises ValueError: If the password is empty.
        """
        if not v.get_secret_value().strip():
            raise ValueError(
                "A bot password must be configured. Set BOT_PASSWORD environment variable."
            )
        return v


@lru_cache
def get_telegram_settings() -> TelegramConfig:
    """Get cached Telegram settings.

    Settings are loaded once and cached for the lifetime of the process.

    :returns: Configured TelegramConfig instance.
    """
    return TelegramConfig()  # type: ignore[call-arg]
