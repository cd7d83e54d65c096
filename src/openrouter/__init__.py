"""OpenRouter chat completion client."""

from src.openrouter.client import OpenRouterClient, OpenRouterClientError, format_credits_info
from src.openrouter.config import OpenRouterConfig, get_openrouter_settings
from src.openrouter.models import ChatCompletionResponse, CreditsInfo

__all__ = [
    "ChatCompletionResponse",
    "CreditsInfo",
    "OpenRouterClient",
    "OpenRouterClientError",
    "OpenRouterConfig",
    "format_credits_info",
    "get_openrouter_settings",
]
