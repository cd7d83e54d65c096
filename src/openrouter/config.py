"""Configuration for the OpenRouter client using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.paths import PROJECT_ROOT

_ENV_FILE = PROJECT_ROOT / ".env"


class OpenRouterConfig(BaseSettings):
    """Configuration for OpenRouter API access.

    All settings are loaded from environment variables with the OPENROUTER_
    prefix. API tokens are per user and live in the settings store.

    :param base_url: OpenRouter API base URL.
    :param request_timeout: Timeout in seconds for chat completion requests.
    :param credits_timeout: Timeout in seconds for credits requests.
    :param referer: Value of the HTTP-Referer header used for attribution.
    :param app_title: Value of the X-Title header used for attribution.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPENROUTER_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API base URL",
    )
    request_timeout: int = Field(
        default=120,
        ge=5,
        le=600,
        description="Chat completion request timeout in seconds",
    )
    credits_timeout: int = Field(
        default=30,
        ge=1,
        le=120,
        description="Credits request timeout in seconds",
    )
    referer: str = Field(
        default="https://t.me/openrouter_bot",
        description="HTTP-Referer header sent to OpenRouter",
    )
    app_title: str = Field(
        default="Telegram OpenRouter Bot",
        description="X-Title header sent to OpenRouter",
    )


@lru_cache
def get_openrouter_settings() -> OpenRouterConfig:
    """Get cached OpenRouter settings.

    :returns: Configured OpenRouterConfig instance.
    """
    return OpenRouterConfig()
