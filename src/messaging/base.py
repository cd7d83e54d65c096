"""Base classes for messaging platforms.

Provides the formatter interface the reply dispatcher depends on, so the
Markdown dialect produced by models can be rendered for any chat platform.
"""

from abc import ABC, abstractmethod


class MessageFormatter(ABC):
    """Abstract base class for message formatters.

    Implementations convert model-produced Markdown to a platform-specific format.
    """

    @abstractmethod
    def format(self, markdown: str) -> tuple[str, str]:
        """Convert Markdown text to platform-specific format.

        :param markdown: Markdown text from model output.
        :returns: Tuple of (formatted_text, parse_mode). An empty parse mode
            means the text is sent without markup.
        """
        ...
