"""
Tests for sprint_text module - markdown-lite helpers and section parsing.
"""

from sprint_text import (
    format_inline_markdown,
    is_bullet_point,
    parse_summary_sections,
    remove_bullet_marker,
    remove_leading_emoji,
    strip_markdown,
)


class TestStripMarkdown:
    """Test removal of emphasis and code markers."""

    def test_strips_bold_italic_code(self):
        assert strip_markdown("**PAY-1**: *urgent* fix in `parser`") == "PAY-1: urgent fix in parser"

    def test_strips_stray_markers(self):
        assert strip_markdown("a_b * c") == "ab  c"

    def test_plain_text_unchanged(self):
        assert strip_markdown("Nothing to see here") == "Nothing to see here"

    def test_idempotent(self):
        once = strip_markdown("**bold** and *it*")
        assert strip_markdown(once) == once


class TestFormatInlineMarkdown:
    """Test conversion to HTML emphasis tags."""

    def test_bold(self):
        assert format_inline_markdown("**PAY-1**: late") == "<strong>PAY-1</strong>: late"

    def test_italic_and_code(self):
        assert format_inline_markdown("*note* `x`") == "<em>note</em> <code>x</code>"

    def test_plain_text_unchanged(self):
        assert format_inline_markdown("plain") == "plain"


class TestBullets:
    """Test bullet detection and marker removal."""

    def test_dash_and_star_bullets(self):
        assert is_bullet_point("- item")
        assert is_bullet_point("* item")

    def test_numbered_bullet(self):
        assert is_bullet_point("12. item")

    def test_not_bullets(self):
        assert not is_bullet_point("-item")
        assert not is_bullet_point("**bold** line")
        assert not is_bullet_point("1.5 hours")

    def test_remove_markers(self):
        assert remove_bullet_marker("- item") == "item"
        assert remove_bullet_marker("* item") == "item"
        assert remove_bullet_marker("3. item") == "item"

    def test_remove_marker_non_bullet_unchanged(self):
        assert remove_bullet_marker("just text") == "just text"


class TestRemoveLeadingEmoji:
    """Test emoji stripping from headings."""

    def test_strips_emoji_and_space(self):
        assert remove_leading_emoji("🎯 Sprint Summary") == "Sprint Summary"

    def test_strips_emoji_with_variation_selector(self):
        assert remove_leading_emoji("⚠️ Problem Areas") == "Problem Areas"

    def test_only_first_emoji(self):
        assert remove_leading_emoji("🐛 🐛 Bugs") == "🐛 Bugs"

    def test_no_emoji_unchanged(self):
        assert remove_leading_emoji("Key Insight") == "Key Insight"


class TestParseSummarySections:
    """Test splitting a narrative into titled sections."""

    def test_sections_and_content(self):
        text = (
            "Preamble is dropped\n"
            "## 🎯 Sprint Summary\n"
            "- Delivered **PAY-3**\n"
            "\n"
            "## **💡 Key Insight**\n"
            "QA returns dominated.\n"
        )
        sections = parse_summary_sections(text)

        assert [s.title for s in sections] == ["Sprint Summary", "Key Insight"]
        assert sections[0].content == ["- Delivered **PAY-3**"]
        assert sections[0].bullets == ["Delivered **PAY-3**"]
        assert sections[1].content == ["QA returns dominated."]
        assert sections[1].bullets == []

    def test_no_headings(self):
        assert parse_summary_sections("just a line") == []
