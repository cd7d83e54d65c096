"""Splitting of long messages into Telegram-sized parts.

Telegram rejects messages longer than 4096 characters. Parts are kept at or
below ``MAX_MESSAGE_LENGTH`` so the "Part i/N" header still fits.
"""

from dataclasses import dataclass

from src.messaging.telegram.utils.markup import (
    OpenTag,
    closing_markup,
    open_tags_after,
    opening_markup,
    unsafe_cut_adjustment,
)

MAX_MESSAGE_LENGTH = 4000

SENTENCE_ENDINGS = (". ", "? ", "! ")


@dataclass(frozen=True)
class MessagePart:
    """One independently sendable chunk of a message.

    :param index: 1-based position of the part.
    :param total: Number of parts the message was split into.
    :param content: Slice of the original text carried by this part.
    :param prefix: Opening tags re-created from the previous part.
    :param suffix: Closing tags for tags left open by the cut.
    """

    index: int
    total: int
    content: str
    prefix: str = ""
    suffix: str = ""

    @property
    def text(self) -> str:
        """Body of the part with repaired markup, without the header."""
        return f"{self.prefix}{self.content}{self.suffix}"

    def header(self, html: bool = True) -> str:
        """Header announcing the part number, empty for single-part messages."""
        if self.total <= 1:
            return ""
        label = f"Part {self.index}/{self.total}:"
        return f"<b>{label}</b>\n\n" if html else f"{label}\n\n"

    def render(self, html: bool = True) -> str:
        """Full text to send: header followed by the body."""
        return self.header(html) + self.text


def find_split_point(text: str, max_size: int) -> int:
    """Find a readable place to cut text that is longer than max_size.

    Only cut points between half the limit and the limit are considered, so
    that a boundary just past the midpoint does not produce a tiny part. In
    order of preference: paragraph break, line break, end of sentence, word
    boundary, and finally a hard cut at the limit.

    :param text: Text to split.
    :param max_size: Maximum length of the first part.
    :returns: Length of the first part, between 1 and max_size.
    """
    if len(text) <= max_size:
        return len(text)

    lower = (max_size + 1) // 2
    window = text[:max_size]

    paragraph = window.rfind("\n\n")
    if paragraph != -1 and paragraph + 2 >= lower:
        return paragraph + 2

    line = window.rfind("\n")
    if line != -1 and line + 1 >= lower:
        return line + 1

    sentence = max(window.rfind(ending) for ending in SENTENCE_ENDINGS)
    if sentence != -1 and sentence + 2 >= lower:
        return sentence + 2

    space = window.rfind(" ")
    if space != -1 and space + 1 >= lower:
        return space + 1

    return max_size


def _choose_cut(text: str, limit: int, html: bool) -> int:
    if len(text) <= limit:
        return len(text)

    cut = find_split_point(text, limit)
    if html:
        safe = unsafe_cut_adjustment(text, cut)
        # A tag or entity longer than the whole window cannot be kept intact
        if safe > 0:
            cut = safe

    return cut


def split_message(
    text: str,
    max_size: int = MAX_MESSAGE_LENGTH,
    html: bool = True,
) -> list[MessagePart]:
    """Split text into parts that each fit within max_size.

    In HTML mode tags left open by a cut are closed at the end of the part and
    re-opened at the start of the next one, and the repaired markup counts
    towards the limit. Concatenating the ``content`` of all parts gives back
    the original text.

    :param text: Text to split (HTML when html is True).
    :param max_size: Maximum length of each part body.
    :param html: Whether to treat the text as Telegram HTML.
    :returns: Ordered parts; a single part when the text already fits.
    :raises ValueError: If max_size is not positive.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be positive, got {max_size}")

    if len(text) <= max_size:
        return [MessagePart(index=1, total=1, content=text)]

    chunks: list[tuple[str, str, str]] = []
    carried: tuple[OpenTag, ...] = ()
    remaining = text

    while remaining:
        prefix = opening_markup(carried)
        limit = max_size - len(prefix)

        while True:
            limit = max(limit, 1)
            cut = _choose_cut(remaining, limit, html)
            content = remaining[:cut]
            still_open = open_tags_after(content, carried) if html else ()
            suffix = closing_markup(still_open)

            overflow = len(prefix) + len(content) + len(suffix) - max_size
            if overflow <= 0 or limit == 1:
                break
            limit -= overflow

        chunks.append((prefix, content, suffix))
        carried = still_open
        remaining = remaining[cut:]

    total = len(chunks)
    return [
        MessagePart(index=index, total=total, content=content, prefix=prefix, suffix=suffix)
        for index, (prefix, content, suffix) in enumerate(chunks, start=1)
    ]
