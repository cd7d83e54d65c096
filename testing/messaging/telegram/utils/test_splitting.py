"""Tests for message splitting utilities."""

import unittest

from src.messaging.telegram.utils.markup import is_balanced
from src.messaging.telegram.utils.splitting import (
    MAX_MESSAGE_LENGTH,
    MessagePart,
    find_split_point,
    split_message,
)


class TestFindSplitPoint(unittest.TestCase):
    """Tests for find_split_point function."""

    def test_text_that_fits_is_not_cut(self) -> None:
        """Test that short text is returned whole."""
        self.assertEqual(find_split_point("short", 10), 5)

    def test_prefers_paragraph_break(self) -> None:
        """Test that a paragraph break wins over later boundaries."""
        text = "aaaaaa\n\nbbbb bbbbbb"

        self.assertEqual(find_split_point(text, 12), 8)

    def test_prefers_sentence_end_over_space(self) -> None:
        """Test that a sentence end is preferred to a later word boundary."""
        text = "Alpha beta gamma. Delta epsilon"

        self.assertEqual(find_split_point(text, 24), 18)

    def test_word_boundary(self) -> None:
        """Test cutting after the last space in the window."""
        self.assertEqual(find_split_point("aaaa bbbb cccc", 12), 10)

    def test_hard_cut_without_boundary(self) -> None:
        """Test a hard cut at the limit when no boundary exists."""
        self.assertEqual(find_split_point("a" * 30, 10), 10)

    def test_ignores_boundary_before_midpoint(self) -> None:
        """Test that a boundary in the first half is not used."""
        self.assertEqual(find_split_point("a\n" + "b" * 30, 10), 10)


class TestSplitMessage(unittest.TestCase):
    """Tests for split_message function."""

    def test_single_part_has_no_header(self) -> None:
        """Test that text within the limit is a single part without header."""
        parts = split_message("short")

        self.assertEqual(len(parts), 1)
        self.assertEqual(parts[0].render(), "short")

    def test_long_paragraph_split_into_three_parts(self) -> None:
        """Test a 9000 character paragraph without newlines."""
        text = "word " * 1800
        self.assertEqual(len(text), 9000)

        parts = split_message(text, MAX_MESSAGE_LENGTH)

        self.assertEqual(len(parts), 3)
        for index, part in enumerate(parts, start=1):
            self.assertLessEqual(len(part.text), MAX_MESSAGE_LENGTH)
            self.assertTrue(part.render().startswith(f"<b>Part {index}/3:</b>\n\n"))
        self.assertEqual("".join(part.content for part in parts), text)

    def test_bold_span_cut_is_repaired(self) -> None:
        """Test that a bold span crossing a cut is closed and re-opened."""
        text = "<b>" + "x" * 20 + "</b>"

        parts = split_message(text, 15)

        self.assertGreater(len(parts), 1)
        self.assertTrue(parts[0].text.endswith("</b>"))
        self.assertTrue(parts[1].text.startswith("<b>"))
        for part in parts:
            self.assertTrue(is_balanced(part.text))
            self.assertLessEqual(len(part.text), 15)
        self.assertEqual("".join(part.content for part in parts), text)

    def test_link_attributes_carried(self) -> None:
        """Test that a re-opened link keeps its href."""
        text = '<a href="http://x.com">' + "word " * 20 + "</a>"

        parts = split_message(text, 60)

        self.assertGreater(len(parts), 1)
        self.assertTrue(parts[1].text.startswith('<a href="http://x.com">'))
        for part in parts:
            self.assertTrue(is_balanced(part.text))
            self.assertLessEqual(len(part.text), 60)

    def test_cut_does_not_split_tag(self) -> None:
        """Test that the cut moves to the start of a tag it would break."""
        parts = split_message("x" * 10 + "<b>bold</b>", 12)

        self.assertEqual(parts[0].content, "x" * 10)
        self.assertEqual(parts[1].content, "<b>bold</b>")

    def test_cut_does_not_split_entity(self) -> None:
        """Test that the cut moves to the start of an entity it would break."""
        parts = split_message("x" * 10 + "&amp;yyy", 12)

        self.assertEqual(parts[0].content, "x" * 10)
        self.assertEqual(parts[1].content, "&amp;yyy")

    def test_plain_mode_adds_no_markup(self) -> None:
        """Test that plain mode neither repairs tags nor uses an HTML header."""
        parts = split_message("<b>" + "x" * 20, 10, html=False)

        self.assertEqual(len(parts), 3)
        self.assertTrue(all(part.suffix == "" for part in parts))
        self.assertTrue(parts[0].render(html=False).startswith("Part 1/3:\n\n"))

    def test_invalid_max_size_raises(self) -> None:
        """Test that a non-positive limit is rejected."""
        with self.assertRaises(ValueError):
            split_message("text", 0)


class TestMessagePart(unittest.TestCase):
    """Tests for MessagePart class."""

    def test_text_includes_repair_markup(self) -> None:
        """Test that the body wraps content in prefix and suffix."""
        part = MessagePart(index=2, total=3, content="x", prefix="<b>", suffix="</b>")

        self.assertEqual(part.text, "<b>x</b>")
        self.assertEqual(part.render(), "<b>Part 2/3:</b>\n\n<b>x</b>")


if __name__ == "__main__":
    unittest.main()
