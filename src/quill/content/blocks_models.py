"""Data models for the block-based content editor.

Blocks and inline nodes are closed sets of dataclass variants. Each variant
carries only the fields its type needs; dispatch is on the ``type`` class
attribute, which is also the discriminator in the JSON shape.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union
from uuid import uuid4

from ..errors import ValidationError


def new_id(prefix: str) -> str:
    """Generate a new unique ID with prefix."""
    return f"{prefix}-{uuid4().hex[:12]}"


class BlockType(str, Enum):
    """Block types understood by the editor and the markdown converter."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST = "list"
    QUOTE = "quote"
    CALLOUT = "callout"
    CODE = "code"
    MATH = "math"
    TOGGLE = "toggle"
    HTML = "html"
    TABLE_OF_CONTENTS = "tableOfContents"
    DIVIDER = "divider"
    IMAGE = "image"


class Mark(str, Enum):
    """Inline formatting marks."""

    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    STRIKE = "strike"
    CODE = "code"
    HIGHLIGHT = "highlight"


# =============================================================================
# Inline Nodes
# =============================================================================


@dataclass
class InlineText:
    """A run of text sharing one set of marks."""

    text: str
    marks: frozenset[Mark] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "text",
            "text": self.text,
            "marks": sorted(mark.value for mark in self.marks),
        }


@dataclass
class InlineLink:
    """A hyperlink wrapping formatted text. Links never contain links."""

    href: str
    children: list[InlineText] = field(default_factory=list)
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "link",
            "href": self.href,
            "title": self.title,
            "children": [child.to_dict() for child in self.children],
        }


InlineNode = Union[InlineText, InlineLink]


def inline_from_dict(data: dict[str, Any]) -> InlineNode:
    """Create an inline node from its dictionary form."""
    kind = data.get("type", "text")
    if kind == "link":
        children = []
        for child in data.get("children", []):
            node = inline_from_dict(child)
            if isinstance(node, InlineLink):
                raise ValidationError("Links cannot contain links", field="children")
            children.append(node)
        return InlineLink(href=str(data.get("href", "")), children=children, title=data.get("title"))
    if kind == "text":
        try:
            marks = frozenset(Mark(m) for m in data.get("marks", []))
        except ValueError as exc:
            raise ValidationError(f"Unknown inline mark: {exc}", field="marks") from exc
        return InlineText(text=str(data.get("text", "")), marks=marks)
    raise ValidationError(f"Unknown inline node type: {kind}", field="type", value=kind)


def extract_plain_text(nodes: list[InlineNode]) -> str:
    """Concatenate the literal text of inline nodes, dropping marks and links."""
    parts = []
    for node in nodes:
        if isinstance(node, InlineLink):
            parts.append(extract_plain_text(list(node.children)))
        else:
            parts.append(node.text)
    return "".join(parts)


def merge_inline(nodes: list[InlineNode]) -> list[InlineNode]:
    """Merge adjacent text nodes with identical marks and drop empty text."""
    merged: list[InlineNode] = []
    for node in nodes:
        if isinstance(node, InlineLink):
            node = InlineLink(
                href=node.href,
                children=[n for n in merge_inline(list(node.children)) if isinstance(n, InlineText)],
                title=node.title,
            )
            merged.append(node)
            continue
        if not node.text:
            continue
        last = merged[-1] if merged else None
        if isinstance(last, InlineText) and last.marks == node.marks:
            merged[-1] = InlineText(text=last.text + node.text, marks=last.marks)
        else:
            merged.append(InlineText(text=node.text, marks=node.marks))
    return merged


# =============================================================================
# Blocks
# =============================================================================


@dataclass
class Block:
    """Base class for all block variants."""

    type: ClassVar[BlockType]

    id: str = field(default_factory=lambda: new_id("block"))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"id": self.id, "type": self.type.value}
        result.update(self._fields_to_dict())
        return result

    def _fields_to_dict(self) -> dict[str, Any]:
        return {}

    def plain_text(self) -> str:
        return ""


@dataclass
class ParagraphBlock(Block):
    type: ClassVar[BlockType] = BlockType.PARAGRAPH

    content: list[InlineNode] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"content": [node.to_dict() for node in self.content]}

    def plain_text(self) -> str:
        return extract_plain_text(self.content)


@dataclass
class HeadingBlock(Block):
    type: ClassVar[BlockType] = BlockType.HEADING

    level: int = 1
    content: list[InlineNode] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "content": [node.to_dict() for node in self.content]}

    def plain_text(self) -> str:
        return extract_plain_text(self.content)


@dataclass
class ListItem:
    """One list entry; a nested list hangs off ``sublist``."""

    id: str = field(default_factory=lambda: new_id("item"))
    content: list[InlineNode] = field(default_factory=list)
    sublist: ListBlock | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": [node.to_dict() for node in self.content],
            "sublist": self.sublist.to_dict() if self.sublist else None,
        }


@dataclass
class ListBlock(Block):
    type: ClassVar[BlockType] = BlockType.LIST

    ordered: bool = False
    items: list[ListItem] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"ordered": self.ordered, "items": [item.to_dict() for item in self.items]}

    def plain_text(self) -> str:
        lines = []
        for item in self.items:
            lines.append(extract_plain_text(item.content))
            if item.sublist:
                lines.append(item.sublist.plain_text())
        return "\n".join(lines)


@dataclass
class QuoteBlock(Block):
    type: ClassVar[BlockType] = BlockType.QUOTE

    content: list[InlineNode] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"content": [node.to_dict() for node in self.content]}

    def plain_text(self) -> str:
        return extract_plain_text(self.content)


@dataclass
class CalloutBlock(Block):
    type: ClassVar[BlockType] = BlockType.CALLOUT

    variant: str = "note"
    content: list[InlineNode] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"variant": self.variant, "content": [node.to_dict() for node in self.content]}

    def plain_text(self) -> str:
        return extract_plain_text(self.content)


@dataclass
class CodeBlock(Block):
    type: ClassVar[BlockType] = BlockType.CODE

    language: str = "text"
    code: str = ""

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"language": self.language, "code": self.code}

    def plain_text(self) -> str:
        return self.code


@dataclass
class MathBlock(Block):
    type: ClassVar[BlockType] = BlockType.MATH

    expression: str = ""

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"expression": self.expression}

    def plain_text(self) -> str:
        return self.expression


@dataclass
class ToggleBlock(Block):
    type: ClassVar[BlockType] = BlockType.TOGGLE

    summary: list[InlineNode] = field(default_factory=list)
    children: list[Block] = field(default_factory=list)

    def _fields_to_dict(self) -> dict[str, Any]:
        return {
            "summary": [node.to_dict() for node in self.summary],
            "children": [child.to_dict() for child in self.children],
        }

    def plain_text(self) -> str:
        parts = [extract_plain_text(self.summary)]
        parts.extend(child.plain_text() for child in self.children)
        return "\n".join(p for p in parts if p)


@dataclass
class HtmlBlock(Block):
    type: ClassVar[BlockType] = BlockType.HTML

    html: str = ""

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"html": self.html}


@dataclass
class TableOfContentsBlock(Block):
    type: ClassVar[BlockType] = BlockType.TABLE_OF_CONTENTS


@dataclass
class DividerBlock(Block):
    type: ClassVar[BlockType] = BlockType.DIVIDER


@dataclass
class ImageBlock(Block):
    type: ClassVar[BlockType] = BlockType.IMAGE

    src: str = ""
    alt: str = ""
    caption: str | None = None

    def _fields_to_dict(self) -> dict[str, Any]:
        return {"src": self.src, "alt": self.alt, "caption": self.caption}

    def plain_text(self) -> str:
        return self.alt


BLOCK_CLASSES: dict[BlockType, type[Block]] = {
    cls.type: cls
    for cls in (
        ParagraphBlock,
        HeadingBlock,
        ListBlock,
        QuoteBlock,
        CalloutBlock,
        CodeBlock,
        MathBlock,
        ToggleBlock,
        HtmlBlock,
        TableOfContentsBlock,
        DividerBlock,
        ImageBlock,
    )
}

# Block types whose content is kept verbatim with no inline parsing
RAW_TEXT_TYPES = frozenset({BlockType.CODE, BlockType.MATH, BlockType.HTML})


# =============================================================================
# Factories and Conversion
# =============================================================================


def create_empty_block(block_type: BlockType | str) -> Block:
    """Create a structurally valid, empty block of the given type.

    Each type has exactly one canonical empty shape; a new list starts with
    one empty item.
    """
    if isinstance(block_type, str):
        try:
            block_type = BlockType(block_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown block type: {block_type}", field="type", value=block_type
            ) from exc

    if block_type == BlockType.LIST:
        return ListBlock(ordered=False, items=[ListItem()])
    return BLOCK_CLASSES[block_type]()


def block_from_dict(data: dict[str, Any]) -> Block:
    """Create a block from its dictionary form.

    Raises:
        ValidationError: If the type is unknown or a field has the wrong shape.
    """
    raw_type = data.get("type")
    try:
        block_type = BlockType(raw_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown block type: {raw_type}", field="type", value=raw_type) from exc

    block_id = data.get("id") or new_id("block")
    inline = [inline_from_dict(node) for node in data.get("content", [])]

    if block_type == BlockType.PARAGRAPH:
        return ParagraphBlock(id=block_id, content=inline)
    if block_type == BlockType.HEADING:
        level = data.get("level", 1)
        if not isinstance(level, int) or not 1 <= level <= 6:
            raise ValidationError("Heading level must be 1-6", field="level", value=level)
        return HeadingBlock(id=block_id, level=level, content=inline)
    if block_type == BlockType.LIST:
        return _list_from_dict(data, block_id)
    if block_type == BlockType.QUOTE:
        return QuoteBlock(id=block_id, content=inline)
    if block_type == BlockType.CALLOUT:
        return CalloutBlock(id=block_id, variant=str(data.get("variant") or "note").lower(), content=inline)
    if block_type == BlockType.CODE:
        return CodeBlock(id=block_id, language=str(data.get("language") or "text"), code=str(data.get("code", "")))
    if block_type == BlockType.MATH:
        return MathBlock(id=block_id, expression=str(data.get("expression", "")))
    if block_type == BlockType.TOGGLE:
        return ToggleBlock(
            id=block_id,
            summary=[inline_from_dict(node) for node in data.get("summary", [])],
            children=[block_from_dict(child) for child in data.get("children", [])],
        )
    if block_type == BlockType.HTML:
        return HtmlBlock(id=block_id, html=str(data.get("html", "")))
    if block_type == BlockType.IMAGE:
        return ImageBlock(
            id=block_id,
            src=str(data.get("src", "")),
            alt=str(data.get("alt", "")),
            caption=data.get("caption"),
        )
    return BLOCK_CLASSES[block_type](id=block_id)


def _list_from_dict(data: dict[str, Any], block_id: str) -> ListBlock:
    items = []
    for item in data.get("items", []):
        sublist = item.get("sublist")
        items.append(ListItem(
            id=item.get("id") or new_id("item"),
            content=[inline_from_dict(node) for node in item.get("content", [])],
            sublist=_list_from_dict(sublist, sublist.get("id") or new_id("block")) if sublist else None,
        ))
    return ListBlock(id=block_id, ordered=bool(data.get("ordered", False)), items=items)


def blocks_to_dicts(blocks: list[Block]) -> list[dict[str, Any]]:
    return [block.to_dict() for block in blocks]


def blocks_from_dicts(data: list[dict[str, Any]]) -> list[Block]:
    return [block_from_dict(item) for item in data]


def strip_ids(data: Any) -> Any:
    """Drop every ``id`` key from a nested dict/list structure.

    Used to compare block trees structurally.
    """
    if isinstance(data, dict):
        return {k: strip_ids(v) for k, v in data.items() if k != "id"}
    if isinstance(data, list):
        return [strip_ids(item) for item in data]
    return data


def deep_copy_blocks(blocks: list[Block], *, fresh_ids: bool = True) -> list[Block]:
    """Deep-copy a block tree, optionally assigning new ids throughout."""
    copied = copy.deepcopy(blocks)
    if fresh_ids:
        for block in copied:
            _assign_fresh_ids(block)
    return copied


def _assign_fresh_ids(block: Block) -> None:
    block.id = new_id("block")
    if isinstance(block, ListBlock):
        for item in block.items:
            item.id = new_id("item")
            if item.sublist:
                _assign_fresh_ids(item.sublist)
    elif isinstance(block, ToggleBlock):
        for child in block.children:
            _assign_fresh_ids(child)


def iter_blocks(blocks: list[Block]):
    """Yield every block in document order, descending into toggles and sublists."""
    for block in blocks:
        yield block
        if isinstance(block, ToggleBlock):
            yield from iter_blocks(block.children)
        elif isinstance(block, ListBlock):
            for item in block.items:
                if item.sublist:
                    yield from iter_blocks([item.sublist])


def inline_sequences(block: Block):
    """Yield the inline node lists held directly by one block (not its children)."""
    if isinstance(block, (ParagraphBlock, HeadingBlock, QuoteBlock, CalloutBlock)):
        yield block.content
    elif isinstance(block, ToggleBlock):
        yield block.summary
    elif isinstance(block, ListBlock):
        for item in block.items:
            yield item.content
