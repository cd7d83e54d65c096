"""Pydantic models for the OpenRouter API."""

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class ChatMessage(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request body for the chat completions endpoint."""

    model: str
    messages: list[ChatMessage]


class APIErrorDetail(BaseModel):
    """Error object returned in an OpenRouter response body."""

    message: str = "Unknown error"
    code: int | str | None = None


class ResponseMessage(BaseModel):
    """Assistant message inside a completion choice."""

    role: str = "assistant"
    content: str | None = None


class Choice(BaseModel):
    """One completion choice."""

    message: ResponseMessage


class ChatCompletionResponse(BaseModel):
    """Response body of the chat completions endpoint."""

    id: str | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    error: APIErrorDetail | None = None


class CreditsInfo(BaseModel):
    """Credit balance of an OpenRouter account.

    Accepts both the flat ``{credits, usage}`` shape and the fields inside the
    ``data`` object of the current API (``total_credits``, ``total_usage``).
    """

    credits: float = Field(default=0.0, validation_alias=AliasChoices("credits", "total_credits"))
    usage: float = Field(default=0.0, validation_alias=AliasChoices("usage", "total_usage"))
    expires_at: str | None = None

    @property
    def remaining(self) -> float:
        """Credits left after usage."""
        return self.credits - self.usage
