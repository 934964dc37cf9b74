"""Tests for the content mapper.

Tests:
- save_full_content / get_full_content round trip
- Validation errors carry every reason and write nothing
- Unsafe html and URLs are sanitized before storage
- Full markdown documents with frontmatter
- Document statistics
"""

from __future__ import annotations

import pytest

from quill.content.blocks_models import (
    HtmlBlock,
    ImageBlock,
    InlineLink,
    InlineText,
    ParagraphBlock,
    blocks_to_dicts,
    strip_ids,
)
from quill.content.mapper import (
    Content,
    ContentStatus,
    calculate_markdown_stats,
    content_to_markdown,
    get_full_content,
    markdown_to_content,
    save_full_content,
)
from quill.content.markdown_parser import convert_markdown_to_blocks
from quill.errors import AlreadyExistsError, NotFoundError, ValidationError

BODY = """# Welcome

Some **bold** and a [link](https://example.com).

- one
- two

> [!TIP]
> Keep it short.
"""


def _content(**overrides) -> Content:
    fields = dict(
        id="post-1",
        title="Hello World",
        slug="hello-world",
        status=ContentStatus.PUBLISHED,
        category="news",
        frontmatter={"tags": ["intro", "meta"], "featured": True},
        blocks=convert_markdown_to_blocks(BODY),
    )
    fields.update(overrides)
    return Content(**fields)


# =============================================================================
# Save / load
# =============================================================================


class TestSaveAndLoad:
    def test_round_trip(self, index) -> None:
        content = _content()
        save_full_content(content, index=index)

        loaded = get_full_content("post-1", index=index)

        assert loaded.title == "Hello World"
        assert loaded.slug == "hello-world"
        assert loaded.status == ContentStatus.PUBLISHED
        assert loaded.category == "news"
        assert loaded.frontmatter == {"tags": ["intro", "meta"], "featured": True}
        assert strip_ids(blocks_to_dicts(loaded.blocks)) == strip_ids(blocks_to_dicts(content.blocks))
        assert loaded.created_at and loaded.updated_at

    def test_update_in_place(self, index) -> None:
        save_full_content(_content(), index=index)
        save_full_content(_content(title="Updated"), index=index)

        assert get_full_content("post-1", index=index).title == "Updated"
        assert len(index.get_all_from_index()) == 1

    def test_missing(self, index) -> None:
        with pytest.raises(NotFoundError):
            get_full_content("missing", index=index)

    def test_duplicate_slug(self, index) -> None:
        save_full_content(_content(), index=index)
        with pytest.raises(AlreadyExistsError):
            save_full_content(_content(id="post-2"), index=index)

    def test_defaults_to_active_database(self, registry) -> None:
        save_full_content(_content())

        assert registry.get_index().get_from_index("post-1").content_id == "post-1"
        assert get_full_content("post-1").title == "Hello World"


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    """Invalid records raise and leave storage untouched."""

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"slug": "Not A Slug"}, "slug"),
            ({"slug": ""}, "slug"),
            ({"title": ""}, "title"),
            ({"title": "x" * 181}, "title"),
            ({"id": ""}, "id"),
            ({"status": "bogus"}, "status"),
            ({"frontmatter": {"nested": {"a": 1}}}, "frontmatter"),
            ({"frontmatter": {"tags": [{"a": 1}]}}, "frontmatter"),
            ({"frontmatter": {"title": "shadow"}}, "frontmatter"),
        ],
    )
    def test_rejected(self, index, overrides: dict, field: str) -> None:
        with pytest.raises(ValidationError) as exc:
            save_full_content(_content(**overrides), index=index)

        assert exc.value.field == field
        assert exc.value.reasons
        assert index.get_all_from_index() == []

    def test_all_slug_reasons_reported(self, index) -> None:
        with pytest.raises(ValidationError) as exc:
            save_full_content(_content(slug="-Bad--Slug"), index=index)
        assert len(exc.value.reasons) == 3

    def test_same_errors_as_validation_helpers(self) -> None:
        from quill.content.mapper import validate_content
        from quill.validation import require_valid_slug, require_valid_title

        for content, check, value in [
            (_content(slug="Not Valid"), require_valid_slug, "Not Valid"),
            (_content(title="x" * 500), require_valid_title, "x" * 500),
        ]:
            with pytest.raises(ValidationError) as from_mapper:
                validate_content(content)
            with pytest.raises(ValidationError) as from_helper:
                check(value)
            assert from_mapper.value.to_dict() == from_helper.value.to_dict()


# =============================================================================
# Sanitization
# =============================================================================


class TestSanitization:
    def _unsafe(self) -> Content:
        return _content(blocks=[
            HtmlBlock(html="<p>ok</p><script>bad()</script>"),
            ParagraphBlock(content=[
                InlineText("Go "),
                InlineLink(href="javascript:alert(1)", children=[InlineText("here")]),
            ]),
            ImageBlock(src="javascript:alert(2)", alt="pic"),
        ])

    def test_stored_body_is_clean(self, index) -> None:
        save_full_content(self._unsafe(), index=index)
        body = index.get_record("post-1").body

        assert "<script" not in body.lower()
        assert "javascript:" not in body
        assert "<p>ok</p>" in body

    def test_loaded_html_is_clean(self, index) -> None:
        save_full_content(self._unsafe(), index=index)
        loaded = get_full_content("post-1", index=index)

        assert loaded.blocks[0].html == "<p>ok</p>"

    def test_caller_blocks_untouched(self, index) -> None:
        content = self._unsafe()
        save_full_content(content, index=index)

        assert "<script>" in content.blocks[0].html
        assert content.blocks[1].content[1].href == "javascript:alert(1)"

    def test_safe_urls_kept(self, index) -> None:
        save_full_content(_content(), index=index)
        assert "https://example.com" in index.get_record("post-1").body


# =============================================================================
# Documents
# =============================================================================


class TestDocuments:
    def test_content_to_markdown(self) -> None:
        markdown = content_to_markdown(_content(blocks=[ParagraphBlock(content=[InlineText("Body")])]))

        assert markdown.startswith(
            "---\nid: post-1\ntitle: Hello World\nslug: hello-world\nstatus: published\ncategory: news\n"
        )
        assert "featured: true\n" in markdown
        assert markdown.endswith("---\n\nBody\n")

    def test_document_round_trip(self) -> None:
        original = _content()
        parsed = markdown_to_content(content_to_markdown(original))

        assert parsed.id == original.id
        assert parsed.title == original.title
        assert parsed.slug == original.slug
        assert parsed.status == original.status
        assert parsed.category == original.category
        assert parsed.frontmatter == original.frontmatter
        assert strip_ids(blocks_to_dicts(parsed.blocks)) == strip_ids(blocks_to_dicts(original.blocks))

    def test_missing_metadata_is_derived(self) -> None:
        content = markdown_to_content("---\ntitle: My First Post!\n---\n\nHi\n")

        assert content.slug == "my-first-post"
        assert content.id.startswith("content-")
        assert content.status == ContentStatus.DRAFT
        assert content.category is None

    def test_unknown_status_falls_back_to_draft(self) -> None:
        content = markdown_to_content("---\ntitle: X\nstatus: secret\n---\n\nHi\n")
        assert content.status == ContentStatus.DRAFT

    def test_explicit_id_wins(self) -> None:
        content = markdown_to_content("---\nid: from-file\ntitle: X\n---\n\nHi\n", content_id="from-arg")
        assert content.id == "from-arg"

    def test_no_frontmatter(self) -> None:
        content = markdown_to_content("Just text\n")
        assert content.title == ""
        assert content.frontmatter == {}
        assert len(content.blocks) == 1

    def test_to_dict_shape(self) -> None:
        data = _content().to_dict()

        assert set(data) == {"id", "title", "slug", "status", "category", "frontmatter", "blocks"}
        assert data["status"] == "published"

    def test_from_dict(self) -> None:
        original = _content()
        rebuilt = Content.from_dict(original.to_dict())

        assert rebuilt.to_dict() == original.to_dict()

    def test_from_dict_bad_status(self) -> None:
        with pytest.raises(ValidationError):
            Content.from_dict({"id": "x", "title": "X", "slug": "x", "status": "nope"})


# =============================================================================
# Statistics
# =============================================================================


class TestMarkdownStats:
    DOCUMENT = (
        "---\ntitle: Ignored words here\n---\n\n"
        "# Title\n\nSome **bold** text with a [link](https://x.com).\n\n![img](a.png)\n"
    )

    def test_counts(self) -> None:
        stats = calculate_markdown_stats(self.DOCUMENT)

        assert stats.word_count == 8
        assert stats.heading_count == 1
        assert stats.link_count == 1
        assert stats.image_count == 1
        assert stats.line_count == 5
        assert stats.reading_time == 1
        assert dict(stats.block_types) == {"heading": 1, "paragraph": 1, "image": 1}

    def test_characters_exclude_frontmatter(self) -> None:
        body = "# Title\n\nSome **bold** text with a [link](https://x.com).\n\n![img](a.png)\n"
        assert calculate_markdown_stats(self.DOCUMENT).character_count == len(body)

    def test_empty(self) -> None:
        stats = calculate_markdown_stats("")

        assert stats.word_count == 0
        assert stats.reading_time == 0
        assert stats.to_dict()["block_types"] == {}

    def test_reading_time_rounds_up(self) -> None:
        assert calculate_markdown_stats("word " * 401).reading_time == 3

    def test_nested_blocks_counted(self) -> None:
        stats = calculate_markdown_stats(
            "<details>\n<summary>More</summary>\n\n## Inner\n\nSee [a](https://a.example).\n\n</details>\n"
        )
        assert stats.heading_count == 1
        assert stats.link_count == 1
        assert stats.block_types["toggle"] == 1
