"""Telegram message formatting utilities.

Provides the Telegram implementation of the MessageFormatter abstraction,
converting the Markdown output of chat models to Telegram's HTML subset
(``<b>``, ``<i>``, ``<code>``, ``<pre>``, ``<a href>``).

Markdown is parsed once with markdown-it-py (CommonMark plus GFM tables, raw
HTML disabled) and the syntax tree is rendered straight into the subset. Every
node is rendered exactly once, so the output of one rule is never re-read by
another. Constructs Telegram has no markup for are degraded to text: list
items keep their marker, headings become bold lines and tables become rows of
``" | "`` separated cells.
"""

import html

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from src.messaging.base import MessageFormatter
from src.messaging.telegram.models import ParseMode
from src.messaging.telegram.utils.sanitize import ensure_utf8

TABLE_RULE = "-" * 30

_markdown = MarkdownIt("commonmark", {"html": False}).enable("table")


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def _render_link(href: str, label: str) -> str:
    return f'<a href="{html.escape(href, quote=True)}">{label}</a>'


def _render_inline(nodes: list[SyntaxTreeNode]) -> str:
    """Render inline nodes to Telegram HTML.

    Text content arrives with entities and backslash escapes already decoded,
    so escaping it once shows the literal characters.
    """
    rendered: list[str] = []

    for node in nodes:
        if node.type in ("softbreak", "hardbreak"):
            rendered.append("\n")
        elif node.type == "code_inline":
            rendered.append(f"<code>{_escape(node.content)}</code>")
        elif node.type == "strong":
            rendered.append(f"<b>{_render_inline(node.children)}</b>")
        elif node.type == "em":
            rendered.append(f"<i>{_render_inline(node.children)}</i>")
        elif node.type == "link":
            href = str(node.attrs.get("href", ""))
            rendered.append(_render_link(href, _render_inline(node.children)))
        elif node.type == "image":
            # No inline images in messages, link to the source instead
            src = str(node.attrs.get("src", ""))
            rendered.append(_render_link(src, _render_inline(node.children) or _escape(src)))
        elif node.children:
            rendered.append(_render_inline(node.children))
        else:
            # text, text_special and anything unknown
            rendered.append(_escape(node.content))

    return "".join(rendered)


def render_inline(text: str) -> str:
    """Convert a single line of Markdown prose to Telegram HTML.

    :param text: Inline Markdown without block structure.
    :returns: HTML with code spans, links, bold and italic converted.
    """
    root = SyntaxTreeNode(_markdown.parseInline(ensure_utf8(text)))
    return "".join(_render_inline(node.children) for node in root.children)


def _strip_final_newline(text: str) -> str:
    return text[:-1] if text.endswith("\n") else text


def _fence_is_closed(node: SyntaxTreeNode, lines: list[str]) -> bool:
    """Check whether a fence has a closing marker line in the source."""
    if node.map is None:
        return True

    start, end = node.map
    if end - start < 2:
        return False

    # Container prefixes (list indentation, blockquote markers) come first
    closing = lines[end - 1].lstrip(" \t>").rstrip()
    return closing.startswith(node.markup) and set(closing) == {node.markup[0]}


def _render_fence(node: SyntaxTreeNode, lines: list[str]) -> str:
    content = _strip_final_newline(node.content)

    if not _fence_is_closed(node, lines):
        # An unterminated fence is shown as the text that was written
        text = node.markup + node.info
        if content:
            text += "\n" + content
        return _escape(text)

    return f"<pre>{_escape(content)}</pre>"


def _render_children(node: SyntaxTreeNode) -> str:
    """Render the inline content of a paragraph, heading or table cell."""
    return "".join(_render_inline(child.children) for child in node.children)


def _render_table(node: SyntaxTreeNode) -> str:
    """Render a table as bold header cells, a rule and plain data rows."""
    rows: list[str] = []

    for section in node.children:
        for row in section.children:
            cells = [_render_children(cell) for cell in row.children]
            if section.type == "thead":
                cells = [f"<b>{cell}</b>" if cell else "" for cell in cells]
                rows.append(" | ".join(cells))
                rows.append(TABLE_RULE)
            else:
                rows.append(" | ".join(cells))

    return "\n".join(rows)


def _render_list(node: SyntaxTreeNode, lines: list[str]) -> str:
    number = int(node.attrs.get("start", 1))
    items: list[str] = []

    for item in node.children:
        if node.type == "ordered_list":
            marker = f"{number}{item.markup}"
            number += 1
        else:
            marker = item.markup

        body = _render_blocks(item.children, lines).split("\n")
        indent = " " * (len(marker) + 1)
        continuation = [f"{indent}{line}" if line else line for line in body[1:]]
        items.append("\n".join([f"{_escape(marker)} {body[0]}", *continuation]))

    return _join_blocks(node.children, items, lines)


def _render_blockquote(node: SyntaxTreeNode, lines: list[str]) -> str:
    body = _render_blocks(node.children, lines)
    return "\n".join(f"&gt; {line}" if line else "&gt;" for line in body.split("\n"))


def _render_block(node: SyntaxTreeNode, lines: list[str]) -> str:
    if node.type == "paragraph":
        return _render_children(node)
    if node.type == "heading":
        return f"<b>{_render_children(node)}</b>"
    if node.type == "fence":
        return _render_fence(node, lines)
    if node.type == "code_block":
        return f"<pre>{_escape(_strip_final_newline(node.content))}</pre>"
    if node.type in ("bullet_list", "ordered_list"):
        return _render_list(node, lines)
    if node.type == "blockquote":
        return _render_blockquote(node, lines)
    if node.type == "table":
        return _render_table(node)
    if node.type == "hr":
        return TABLE_RULE
    if node.children:
        return _render_blocks(node.children, lines)
    return _escape(node.content)


def _join_blocks(nodes: list[SyntaxTreeNode], rendered: list[str], lines: list[str]) -> str:
    """Join rendered sibling blocks, keeping blank lines where the source had them."""
    output = rendered[0] if rendered else ""

    for previous, node, text in zip(nodes, nodes[1:], rendered[1:], strict=False):
        separator = "\n"
        if previous.map is not None and node.map is not None:
            previous_start, previous_end = previous.map
            blank_line_between = node.map[0] > previous_end or (
                previous_end > previous_start and not lines[previous_end - 1].strip()
            )
            if blank_line_between:
                separator = "\n\n"
        output += separator + text

    return output


def _render_blocks(nodes: list[SyntaxTreeNode], lines: list[str]) -> str:
    return _join_blocks(nodes, [_render_block(node, lines) for node in nodes], lines)


def markdown_to_telegram_html(markdown: str | bytes) -> str:
    """Convert Markdown text to Telegram HTML.

    Malformed or unmatched markup never raises: anything the parser does not
    recognise as markup is kept as escaped plain text.

    :param markdown: Raw model output.
    :returns: HTML where every tag introduced by the conversion is closed.
    """
    text = ensure_utf8(markdown).replace("\r\n", "\n").replace("\r", "\n")
    root = SyntaxTreeNode(_markdown.parse(text))
    return _render_blocks(root.children, text.split("\n"))


class TelegramFormatter(MessageFormatter):
    """Formatter for Telegram messages using the HTML parse mode."""

    def format(self, markdown: str) -> tuple[str, str]:
        """Convert Markdown to Telegram HTML.

        :param markdown: Standard Markdown text.
        :returns: Tuple of (html_text, "HTML").
        """
        return markdown_to_telegram_html(markdown), ParseMode.HTML.value


# Default formatter instance for convenience
_default_formatter: MessageFormatter = TelegramFormatter()


def get_formatter() -> MessageFormatter:
    """Get the default message formatter.

    :returns: The configured MessageFormatter instance.
    """
    return _default_formatter


def format_message(markdown: str) -> tuple[str, str]:
    """Convert Markdown to platform-specific format using the default formatter.

    :param markdown: Standard Markdown text.
    :returns: Tuple of (formatted_text, parse_mode).
    """
    return _default_formatter.format(markdown)
