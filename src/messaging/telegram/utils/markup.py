"""Tag-level helpers for the Telegram HTML subset.

The translator only ever emits ``<b>``, ``<i>``, ``<code>``, ``<pre>`` and
``<a href>``. When a message is split, a part may end with some of these still
open. The repair strategy used throughout is close-and-carry: open tags are
closed at the end of the part in reverse order and re-opened, with their
original attributes, at the start of the next part.
"""

import html
import re
from dataclasses import dataclass

SUPPORTED_TAGS = frozenset({"b", "i", "code", "pre", "a"})

# Opening or closing tag for the supported subset, e.g. <b>, </i>, <a href="...">
TAG_PATTERN = re.compile(
    rf"<(/?)({'|'.join(sorted(SUPPORTED_TAGS))})(\s[^<>]*)?>",
    re.IGNORECASE,
)

# Any tag-like span, used for the plain-text projection
ANY_TAG_PATTERN = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class OpenTag:
    """An opening tag that has not been closed yet."""

    name: str
    markup: str

    @property
    def closing(self) -> str:
        """Closing markup for this tag."""
        return f"</{self.name}>"


def open_tags_after(fragment: str, carried: tuple[OpenTag, ...] = ()) -> tuple[OpenTag, ...]:
    """Return the tags still open at the end of a fragment.

    Closing tags without a matching opener are ignored. A closing tag that
    matches an opener deeper in the stack closes that opener only.

    :param fragment: HTML fragment to scan.
    :param carried: Tags already open before the fragment starts.
    :returns: Open tags in the order they were opened.
    """
    stack = list(carried)

    for match in TAG_PATTERN.finditer(fragment):
        is_closing, name = match.group(1) == "/", match.group(2).lower()
        if not is_closing:
            stack.append(OpenTag(name=name, markup=match.group(0)))
            continue

        for position in range(len(stack) - 1, -1, -1):
            if stack[position].name == name:
                del stack[position]
                break

    return tuple(stack)


def closing_markup(tags: tuple[OpenTag, ...]) -> str:
    """Closing markup for the given open tags, innermost first."""
    return "".join(tag.closing for tag in reversed(tags))


def opening_markup(tags: tuple[OpenTag, ...]) -> str:
    """Opening markup that re-creates the given open tags."""
    return "".join(tag.markup for tag in tags)


def close_open_tags(fragment: str) -> str:
    """Append closing tags for everything left open in a fragment.

    :param fragment: HTML fragment, possibly cut mid-span.
    :returns: The fragment with the missing closing tags appended.
    """
    return fragment + closing_markup(open_tags_after(fragment))


def is_balanced(fragment: str) -> bool:
    """Check that every supported tag is opened and closed in nesting order.

    :param fragment: HTML fragment to validate.
    :returns: True if a stack-based scan ends empty without mismatches.
    """
    stack: list[str] = []

    for match in TAG_PATTERN.finditer(fragment):
        name = match.group(2).lower()
        if match.group(1) != "/":
            stack.append(name)
        elif not stack or stack.pop() != name:
            return False

    return not stack


def strip_tags(text: str) -> str:
    """Project HTML onto plain text.

    Removes all tags and decodes entities so the text reads naturally when
    sent without a parse mode.

    :param text: HTML text.
    :returns: Plain text.
    """
    return html.unescape(ANY_TAG_PATTERN.sub("", text))


def unsafe_cut_adjustment(text: str, cut: int) -> int:
    """Move a cut point so it does not land inside a tag or an entity.

    :param text: HTML text being split.
    :param cut: Proposed cut index.
    :returns: The same index, or the start of the tag or entity it would break.
        Returns 0 if the only safe position is the start of the text.
    """
    if cut <= 0 or cut >= len(text):
        return cut

    head = text[:cut]

    tag_start = head.rfind("<")
    if tag_start != -1 and head.rfind(">") < tag_start:
        return tag_start

    entity = re.search(r"&#?[0-9A-Za-z]*$", head)
    if entity is not None and re.match(r"[0-9A-Za-z]*;", text[cut:]):
        return entity.start()

    return cut
