"""Tests for the block data models.

Tests:
- Canonical empty blocks for every type
- Dictionary form and structural comparison
- Inline node helpers (plain text, merging)
- Tree helpers (deep copy, iteration)
"""

from __future__ import annotations

import pytest

from quill.content.blocks_models import (
    BlockType,
    CalloutBlock,
    CodeBlock,
    HeadingBlock,
    InlineLink,
    InlineText,
    ListBlock,
    ListItem,
    Mark,
    ParagraphBlock,
    ToggleBlock,
    block_from_dict,
    blocks_from_dicts,
    blocks_to_dicts,
    create_empty_block,
    deep_copy_blocks,
    extract_plain_text,
    inline_from_dict,
    iter_blocks,
    merge_inline,
    strip_ids,
)
from quill.errors import ValidationError


# =============================================================================
# Empty blocks
# =============================================================================


class TestCreateEmptyBlock:
    """Every block type has one canonical empty shape."""

    @pytest.mark.parametrize("block_type", list(BlockType))
    def test_type_matches(self, block_type: BlockType) -> None:
        block = create_empty_block(block_type)
        assert block.type == block_type
        assert block.id.startswith("block-")

    def test_accepts_type_name(self) -> None:
        assert create_empty_block("tableOfContents").type == BlockType.TABLE_OF_CONTENTS

    def test_list_starts_with_one_empty_item(self) -> None:
        block = create_empty_block(BlockType.LIST)
        assert isinstance(block, ListBlock)
        assert block.ordered is False
        assert len(block.items) == 1
        assert block.items[0].content == []
        assert block.items[0].sublist is None

    def test_defaults(self) -> None:
        heading = create_empty_block(BlockType.HEADING)
        code = create_empty_block(BlockType.CODE)
        callout = create_empty_block(BlockType.CALLOUT)

        assert isinstance(heading, HeadingBlock) and heading.level == 1 and heading.content == []
        assert isinstance(code, CodeBlock) and code.language == "text" and code.code == ""
        assert isinstance(callout, CalloutBlock) and callout.variant == "note"

    def test_fresh_ids(self) -> None:
        assert create_empty_block(BlockType.PARAGRAPH).id != create_empty_block(BlockType.PARAGRAPH).id

    def test_unknown_type(self) -> None:
        with pytest.raises(ValidationError):
            create_empty_block("table")


# =============================================================================
# Dictionary form
# =============================================================================


class TestDictForm:
    """to_dict / from_dict keep structure and ids."""

    def test_paragraph_shape(self) -> None:
        block = ParagraphBlock(
            id="b1",
            content=[
                InlineText("plain "),
                InlineText("loud", frozenset({Mark.ITALIC, Mark.BOLD})),
            ],
        )
        assert block.to_dict() == {
            "id": "b1",
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "plain ", "marks": []},
                {"type": "text", "text": "loud", "marks": ["bold", "italic"]},
            ],
        }

    def test_nested_round_trip(self) -> None:
        blocks = [
            HeadingBlock(level=2, content=[InlineText("Title")]),
            ListBlock(
                ordered=True,
                items=[
                    ListItem(
                        content=[InlineLink(href="https://example.com", children=[InlineText("site")])],
                        sublist=ListBlock(items=[ListItem(content=[InlineText("child")])]),
                    )
                ],
            ),
            ToggleBlock(
                summary=[InlineText("More")],
                children=[CodeBlock(language="python", code="x = 1")],
            ),
        ]

        data = blocks_to_dicts(blocks)
        rebuilt = blocks_from_dicts(data)

        assert blocks_to_dicts(rebuilt) == data
        assert rebuilt[0].id == blocks[0].id

    def test_strip_ids(self) -> None:
        a = [ParagraphBlock(content=[InlineText("same")]).to_dict()]
        b = [ParagraphBlock(content=[InlineText("same")]).to_dict()]

        assert a != b
        assert strip_ids(a) == strip_ids(b)

    def test_unknown_block_type(self) -> None:
        with pytest.raises(ValidationError):
            block_from_dict({"type": "table"})

    @pytest.mark.parametrize("level", [0, 7, "2"])
    def test_heading_level_out_of_range(self, level) -> None:
        with pytest.raises(ValidationError):
            block_from_dict({"type": "heading", "level": level, "content": []})

    def test_links_cannot_nest(self) -> None:
        with pytest.raises(ValidationError):
            inline_from_dict({
                "type": "link",
                "href": "https://a.example",
                "children": [{"type": "link", "href": "https://b.example", "children": []}],
            })

    def test_unknown_mark(self) -> None:
        with pytest.raises(ValidationError):
            inline_from_dict({"type": "text", "text": "x", "marks": ["blink"]})


# =============================================================================
# Inline helpers
# =============================================================================


class TestInlineHelpers:
    def test_extract_plain_text(self) -> None:
        nodes = [
            InlineText("Read "),
            InlineLink(href="https://example.com", children=[InlineText("the ", frozenset({Mark.BOLD})), InlineText("docs")]),
            InlineText("."),
        ]
        assert extract_plain_text(nodes) == "Read the docs."

    def test_extract_plain_text_empty(self) -> None:
        assert extract_plain_text([]) == ""

    def test_merge_inline(self) -> None:
        bold = frozenset({Mark.BOLD})
        merged = merge_inline([
            InlineText("a", bold),
            InlineText("", frozenset()),
            InlineText("b", bold),
            InlineText("c"),
        ])
        assert merged == [InlineText("ab", bold), InlineText("c")]


# =============================================================================
# Tree helpers
# =============================================================================


class TestTreeHelpers:
    def _tree(self) -> list:
        return [
            ToggleBlock(children=[ParagraphBlock(content=[InlineText("inside")])]),
            ListBlock(items=[ListItem(sublist=ListBlock(items=[ListItem()]))]),
        ]

    def test_iter_blocks_descends(self) -> None:
        types = [block.type for block in iter_blocks(self._tree())]
        assert types == [BlockType.TOGGLE, BlockType.PARAGRAPH, BlockType.LIST, BlockType.LIST]

    def test_deep_copy_fresh_ids(self) -> None:
        original = self._tree()
        copied = deep_copy_blocks(original)

        assert strip_ids(blocks_to_dicts(copied)) == strip_ids(blocks_to_dicts(original))
        original_ids = {b.id for b in iter_blocks(original)}
        assert not original_ids & {b.id for b in iter_blocks(copied)}

    def test_deep_copy_keeps_ids(self) -> None:
        original = self._tree()
        copied = deep_copy_blocks(original, fresh_ids=False)

        assert blocks_to_dicts(copied) == blocks_to_dicts(original)
        copied[0].children[0].content[0].text = "changed"
        assert original[0].children[0].content[0].text == "inside"
