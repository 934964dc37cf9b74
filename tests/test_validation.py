"""Tests for validation.py.

Tests:
- Slug grammar and normalization
- Title rules
- URL allow-list and HTML script stripping
- Database file names
"""

from __future__ import annotations

import pytest

from quill.errors import PathValidationError, ValidationError
from quill.validation import (
    MAX_SLUG_LENGTH,
    is_safe_url,
    normalize_slug,
    require_valid_slug,
    require_valid_title,
    sanitize_html,
    sanitize_url,
    validate_database_name,
    validate_slug,
    validate_title,
)


class TestSlugs:
    """Slug grammar: lowercase ASCII words joined by single hyphens."""

    @pytest.mark.parametrize("slug", ["a", "hello", "hello-world", "v2-release-notes", "x" * MAX_SLUG_LENGTH])
    def test_valid_slugs(self, slug: str) -> None:
        assert validate_slug(slug) == []

    @pytest.mark.parametrize(
        "slug",
        ["", "Hello", "hello_world", "-hello", "hello-", "hello--world", "héllo", "has space", "x" * (MAX_SLUG_LENGTH + 1)],
    )
    def test_invalid_slugs(self, slug: str) -> None:
        assert validate_slug(slug) != []

    def test_reasons_are_reported_together(self) -> None:
        """Every broken rule shows up once."""
        reasons = validate_slug("-Bad--Slug")
        assert len(reasons) == 3

    def test_require_valid_slug_raises_with_reasons(self) -> None:
        with pytest.raises(ValidationError) as exc:
            require_valid_slug("Not Valid")
        assert exc.value.field == "slug"
        assert exc.value.reasons


class TestNormalizeSlug:
    """normalize_slug derives a valid slug from arbitrary text."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Hello, World!", "hello-world"),
            ("  --Foo__Bar--  ", "foo-bar"),
            ("Already-fine", "already-fine"),
            ("2024 Year in Review", "2024-year-in-review"),
            ("!!!", ""),
            ("", ""),
        ],
    )
    def test_examples(self, raw: str, expected: str) -> None:
        assert normalize_slug(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["Hello, World!", "Ünïcode Títle", "a-" * 70, "x" * 300, "  Mixed   CASE  ", "tabs\tand\nnewlines", "---"],
    )
    def test_idempotent_and_valid(self, raw: str) -> None:
        once = normalize_slug(raw)
        assert normalize_slug(once) == once
        if once:
            assert validate_slug(once) == []

    def test_truncates_to_max_length(self) -> None:
        slug = normalize_slug("a-" * 100)
        assert len(slug) <= MAX_SLUG_LENGTH
        assert not slug.endswith("-")


class TestTitles:
    def test_valid(self) -> None:
        assert validate_title("A title") is None

    @pytest.mark.parametrize("title", ["", "   ", "x" * 181])
    def test_invalid(self, title: str) -> None:
        assert validate_title(title) is not None

    def test_max_length_is_inclusive(self) -> None:
        assert validate_title("x" * 180) is None

    def test_require_valid_title(self) -> None:
        with pytest.raises(ValidationError) as exc:
            require_valid_title("")
        assert exc.value.field == "title"


class TestUrls:
    """Only http(s), mailto and tel URLs pass."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "http://example.com/path?q=1",
            "mailto:a@b.com",
            "tel:+15551234",
            "/about",
            "relative/page",
            "#section",
            "//cdn.example.com/image.png",
        ],
    )
    def test_safe(self, url: str) -> None:
        assert is_safe_url(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            "javascript:alert(1)",
            "JavaScript:alert(1)",
            "  javascript:alert(1)",
            "data:text/html,<script>alert(1)</script>",
            "vbscript:msgbox(1)",
            "file:///etc/passwd",
            "",
            "   ",
        ],
    )
    def test_unsafe(self, url: str) -> None:
        assert is_safe_url(url) is False

    def test_sanitize_url(self) -> None:
        assert sanitize_url("https://example.com") == "https://example.com"
        assert sanitize_url("javascript:alert(1)") == ""


class TestSanitizeHtml:
    def test_strips_script_keeps_markup(self) -> None:
        result = sanitize_html("<p>hi</p><script>evil()</script>")
        assert "<script" not in result.lower()
        assert "<p>hi</p>" in result

    def test_case_insensitive_with_attributes(self) -> None:
        result = sanitize_html('<div>a</div><SCRIPT type="text/javascript">x()</ScRiPt>')
        assert "script" not in result.lower()
        assert result == "<div>a</div>"

    def test_multiline_script(self) -> None:
        result = sanitize_html("<p>a</p>\n<script>\nvar x = 1;\n</script>\n<p>b</p>")
        assert "<script" not in result
        assert "<p>a</p>" in result and "<p>b</p>" in result

    def test_removal_cannot_splice_a_new_script(self) -> None:
        result = sanitize_html("<scr<script>x</script>ipt>alert(1)</script>")
        assert "<script" not in result.lower()

    def test_non_greedy(self) -> None:
        result = sanitize_html("<script>a</script><p>keep</p><script>b</script>")
        assert result == "<p>keep</p>"

    def test_empty(self) -> None:
        assert sanitize_html("") == ""


class TestDatabaseNames:
    def test_suffix_appended(self) -> None:
        assert validate_database_name("staging") == "staging.db"

    def test_existing_suffix_kept(self) -> None:
        assert validate_database_name("content.db") == "content.db"

    @pytest.mark.parametrize("name", ["", "../etc/passwd", "a/b.db", "a\\b.db", "..", "has space.db", "-lead.db", "dot.name.db"])
    def test_rejected(self, name: str) -> None:
        with pytest.raises(PathValidationError):
            validate_database_name(name)
