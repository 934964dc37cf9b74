"""Tests for markdown_renderer.py.

Tests:
- One canonical rendering per block type
- Inline mark nesting and escaping
- List marker alternation and nesting
- Code fence and code span sizing
"""

from __future__ import annotations

import pytest

from quill.content.blocks_models import (
    CalloutBlock,
    CodeBlock,
    DividerBlock,
    HeadingBlock,
    HtmlBlock,
    ImageBlock,
    InlineLink,
    InlineText,
    ListBlock,
    ListItem,
    Mark,
    MathBlock,
    ParagraphBlock,
    QuoteBlock,
    TableOfContentsBlock,
    ToggleBlock,
)
from quill.content.markdown_renderer import convert_blocks_to_markdown, render_inline

BOLD = frozenset({Mark.BOLD})
ITALIC = frozenset({Mark.ITALIC})
CODE = frozenset({Mark.CODE})


def _text(value: str, marks: frozenset = frozenset()) -> InlineText:
    return InlineText(value, marks)


# =============================================================================
# Blocks
# =============================================================================


class TestBlockRendering:
    def test_no_blocks(self) -> None:
        assert convert_blocks_to_markdown([]) == ""

    def test_blocks_separated_by_blank_line(self) -> None:
        markdown = convert_blocks_to_markdown([
            HeadingBlock(level=2, content=[_text("Section")]),
            ParagraphBlock(content=[_text("Body.")]),
        ])
        assert markdown == "## Section\n\nBody.\n"

    @pytest.mark.parametrize(
        "block, expected",
        [
            (ParagraphBlock(), "&nbsp;"),
            (HeadingBlock(level=3), "###"),
            (QuoteBlock(), ">"),
            (CalloutBlock(variant="tip"), "> [!TIP]"),
            (CodeBlock(), "```text\n```"),
            (MathBlock(expression="x^2"), "$$\nx^2\n$$"),
            (HtmlBlock(html="<div>x</div>"), "<!-- html -->\n<div>x</div>\n<!-- /html -->"),
            (TableOfContentsBlock(), "[TOC]"),
            (DividerBlock(), "---"),
            (ImageBlock(src="a.png", alt="An image"), "![An image](a.png)"),
            (ImageBlock(src="a.png", alt="", caption='Say "hi"'), '![](a.png "Say \\"hi\\"")'),
        ],
    )
    def test_single_block(self, block, expected: str) -> None:
        assert convert_blocks_to_markdown([block]) == expected + "\n"

    def test_callout_body(self) -> None:
        block = CalloutBlock(variant="warning", content=[_text("line one\nline two")])
        assert convert_blocks_to_markdown([block]) == "> [!WARNING]\n> line one\n> line two\n"

    def test_quote_paragraphs(self) -> None:
        block = QuoteBlock(content=[_text("first\n\nsecond")])
        assert convert_blocks_to_markdown([block]) == "> first\n>\n> second\n"

    def test_toggle(self) -> None:
        block = ToggleBlock(summary=[_text("More")], children=[ParagraphBlock(content=[_text("Hidden.")])])
        assert convert_blocks_to_markdown([block]) == (
            "<details>\n<summary>More</summary>\n\nHidden.\n\n</details>\n"
        )

    def test_image_destination_with_spaces(self) -> None:
        block = ImageBlock(src="my image.png", alt="x")
        assert convert_blocks_to_markdown([block]) == "![x](<my image.png>)\n"


# =============================================================================
# Lists
# =============================================================================


class TestListRendering:
    def test_unordered(self) -> None:
        block = ListBlock(items=[ListItem(content=[_text("a")]), ListItem(content=[_text("b")])])
        assert convert_blocks_to_markdown([block]) == "- a\n- b\n"

    def test_ordered_numbers_items(self) -> None:
        block = ListBlock(ordered=True, items=[ListItem(content=[_text(c)]) for c in "abc"])
        assert convert_blocks_to_markdown([block]) == "1. a\n2. b\n3. c\n"

    def test_sublist_indented_under_marker(self) -> None:
        block = ListBlock(
            ordered=True,
            items=[
                ListItem(
                    content=[_text("parent")],
                    sublist=ListBlock(items=[ListItem(content=[_text("child")])]),
                )
            ],
        )
        assert convert_blocks_to_markdown([block]) == "1. parent\n   - child\n"

    def test_empty_item(self) -> None:
        assert convert_blocks_to_markdown([ListBlock(items=[ListItem()])]) == "-\n"

    def test_adjacent_lists_alternate_markers(self) -> None:
        blocks = [
            ListBlock(items=[ListItem(content=[_text("a")])]),
            ListBlock(items=[ListItem(content=[_text("b")])]),
            ListBlock(items=[ListItem(content=[_text("c")])]),
        ]
        assert convert_blocks_to_markdown(blocks) == "- a\n\n* b\n\n- c\n"

    def test_adjacent_ordered_lists_alternate_delimiters(self) -> None:
        blocks = [
            ListBlock(ordered=True, items=[ListItem(content=[_text("a")])]),
            ListBlock(ordered=True, items=[ListItem(content=[_text("b")])]),
        ]
        assert convert_blocks_to_markdown(blocks) == "1. a\n\n1) b\n"

    def test_separated_lists_reset_style(self) -> None:
        blocks = [
            ListBlock(items=[ListItem(content=[_text("a")])]),
            ParagraphBlock(content=[_text("between")]),
            ListBlock(items=[ListItem(content=[_text("b")])]),
        ]
        assert convert_blocks_to_markdown(blocks) == "- a\n\nbetween\n\n- b\n"


# =============================================================================
# Code
# =============================================================================


class TestCodeRendering:
    def test_fence_outgrows_backticks(self) -> None:
        block = CodeBlock(language="md", code="````\nx\n````")
        assert convert_blocks_to_markdown([block]) == "`````md\n````\nx\n````\n`````\n"

    def test_tilde_fence_for_backtick_language(self) -> None:
        block = CodeBlock(language="a`b", code="x")
        assert convert_blocks_to_markdown([block]) == "~~~a`b\nx\n~~~\n"

    @pytest.mark.parametrize(
        "code, expected",
        [
            ("x", "`x`"),
            ("a`b", "``a`b``"),
            ("`tick", "`` `tick ``"),
            (" padded ", "`  padded  `"),
        ],
    )
    def test_code_span(self, code: str, expected: str) -> None:
        assert render_inline([_text(code, CODE)]) == expected


# =============================================================================
# Inline
# =============================================================================


class TestInlineRendering:
    def test_plain(self) -> None:
        assert render_inline([_text("hello")]) == "hello"

    def test_marks(self) -> None:
        nodes = [
            _text("a", BOLD),
            _text(" "),
            _text("b", ITALIC),
            _text(" "),
            _text("c", frozenset({Mark.STRIKE})),
            _text(" "),
            _text("d", frozenset({Mark.UNDERLINE})),
            _text(" "),
            _text("e", frozenset({Mark.HIGHLIGHT})),
        ]
        assert render_inline(nodes) == "**a** *b* ~~c~~ <u>d</u> <mark>e</mark>"

    def test_longest_run_opens_first(self) -> None:
        nodes = [_text("bold ", BOLD), _text("both", BOLD | ITALIC), _text(" bold", BOLD)]
        assert render_inline(nodes) == "**bold *both* bold**"

    def test_code_is_innermost(self) -> None:
        assert render_inline([_text("x", BOLD | CODE)]) == "**`x`**"

    def test_link(self) -> None:
        link = InlineLink(href="https://example.com", children=[_text("site")], title="Home")
        assert render_inline([_text("Visit "), link]) == 'Visit [site](https://example.com "Home")'

    def test_link_shared_marks_wrap_outside(self) -> None:
        link = InlineLink(href="https://example.com", children=[_text("all bold", BOLD)])
        assert render_inline([link]) == "**[all bold](https://example.com)**"

    def test_bang_before_link_is_escaped(self) -> None:
        link = InlineLink(href="https://example.com", children=[_text("x")])
        assert render_inline([_text("Wow!"), link]) == "Wow\\![x](https://example.com)"

    def test_escaping(self) -> None:
        assert render_inline([_text("a*b_c`d[e]f<g~h#i|j$k\\l")]) == "a\\*b\\_c\\`d\\[e\\]f\\<g\\~h\\#i\\|j\\$k\\\\l"

    def test_entity_like_ampersand(self) -> None:
        assert render_inline([_text("AT&T &amp; &#123;")]) == "AT&T \\&amp; &\\#123;"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("- dash", "\\- dash"),
            ("+ plus", "\\+ plus"),
            ("> angle", "\\> angle"),
            ("= equals", "\\= equals"),
            ("12. dotted", "12\\. dotted"),
            ("3) paren", "3\\) paren"),
            ("mid - dash", "mid - dash"),
        ],
    )
    def test_line_start_markers(self, text: str, expected: str) -> None:
        assert render_inline([_text(text)]) == expected

    def test_line_start_markers_after_newline(self) -> None:
        assert render_inline([_text("first\n- second")]) == "first\n\\- second"
