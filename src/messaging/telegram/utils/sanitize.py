"""Text clean-up applied to model output before formatting."""

import logging

logger = logging.getLogger(__name__)

REPLACEMENT_CHARACTER = "\ufffd"

# Speaker labels some models prepend to their answers
MODEL_PREFIXES = (
    "assistant",
    "ai",
    "bot",
    "chatgpt",
    "gpt",
    "claude",
    "qwen",
    "mistral",
    "llama",
)


def _is_surrogate(char: str) -> bool:
    return 0xD800 <= ord(char) <= 0xDFFF


def ensure_utf8(text: str | bytes) -> str:
    """Normalise text so that it is valid UTF-8.

    Byte input is decoded with invalid sequences replaced. String input is
    mapped character by character, replacing lone surrogates (which cannot be
    encoded as UTF-8) with the replacement character.

    :param text: Raw text or bytes.
    :returns: Text that encodes cleanly as UTF-8.
    """
    if isinstance(text, bytes):
        return text.decode("utf-8", errors="replace")

    if not any(_is_surrogate(char) for char in text):
        return text

    return "".join(REPLACEMENT_CHARACTER if _is_surrogate(char) else char for char in text)


def sanitize_response(text: str | bytes, request_id: str = "-") -> str:
    """Prepare a completion response for formatting.

    :param text: Response content from the completion backend.
    :param request_id: Request ID used in log lines.
    :returns: Valid UTF-8 text with Unix line endings.
    """
    cleaned = ensure_utf8(text)
    if cleaned != text and not isinstance(text, bytes):
        logger.warning(f"[{request_id}] Response contains invalid UTF-8 sequences, sanitised")

    return cleaned.replace("\r\n", "\n")


def clean_model_prefix(text: str) -> str:
    """Remove a leading speaker label such as ``Assistant:`` from a response.

    A bare label (without colon) is only removed when followed by whitespace,
    so that words like "AIs" or "Botanical" survive.

    :param text: Response text.
    :returns: Text without the label, stripped of surrounding whitespace.
    """
    trimmed = text.strip()
    lowered = trimmed.lower()

    for prefix in MODEL_PREFIXES:
        if lowered.startswith(f"{prefix}:"):
            return trimmed[len(prefix) + 1 :].strip()
        if lowered.startswith(prefix):
            remainder = trimmed[len(prefix) :]
            if remainder[:1] in (" ", "\n"):
                return remainder.strip()

    return trimmed
