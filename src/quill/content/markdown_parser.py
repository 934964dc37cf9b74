"""Parse Markdown into blocks.

This module converts Markdown text into a list of Block objects. A line
scanner first lifts out the constructs of the content dialect that plain
CommonMark does not know about (math, toggles, table of contents, raw html
and callouts); everything else is parsed by the mistletoe library.

Parsing is total: any input produces a block list, never an exception.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

from mistletoe import Document
from mistletoe.base_renderer import BaseRenderer
from mistletoe.block_token import (
    BlockCode,
    CodeFence,
    Heading,
    List as MdList,
    ListItem as MdListItem,
    Paragraph,
    Quote,
    SetextHeading,
    ThematicBreak,
)
from mistletoe.span_token import (
    AutoLink,
    Emphasis,
    EscapeSequence,
    Image,
    InlineCode,
    LineBreak,
    Link,
    RawText,
    SpanToken,
    Strikethrough,
    Strong,
)

from .blocks_models import (
    Block,
    CalloutBlock,
    CodeBlock,
    DividerBlock,
    HeadingBlock,
    HtmlBlock,
    ImageBlock,
    InlineLink,
    InlineNode,
    InlineText,
    ListBlock,
    ListItem,
    Mark,
    MathBlock,
    ParagraphBlock,
    QuoteBlock,
    TableOfContentsBlock,
    ToggleBlock,
    merge_inline,
)

logger = logging.getLogger(__name__)

# mistletoe keeps its token registry in module globals.
_MISTLETOE_LOCK = threading.RLock()

_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_MATH_FENCE = "$$"
_MATH_INLINE = re.compile(r"^\$\$(.+)\$\$$")
_TOC_MARKER = "[TOC]"
_HTML_OPEN = "<!-- html -->"
_HTML_CLOSE = "<!-- /html -->"
_DETAILS_OPEN = re.compile(r"^<details(\s[^>]*)?>$", re.IGNORECASE)
_DETAILS_CLOSE = re.compile(r"^</details>$", re.IGNORECASE)
_SUMMARY_LINE = re.compile(r"^<summary>(.*)</summary>$", re.IGNORECASE)
_CALLOUT_OPEN = re.compile(r"^> ?\[!([A-Za-z][A-Za-z0-9_-]*)\]\s*$")
_QUOTE_PREFIX = re.compile(r"^> ?")

_RAW_HTML_OPEN = re.compile(
    r"^<(?:/)?(address|article|aside|audio|blockquote|canvas|center|details|dialog|div|dl|"
    r"fieldset|figcaption|figure|footer|form|h[1-6]|header|hr|iframe|main|nav|ol|p|pre|"
    r"script|section|style|svg|table|textarea|ul|video)(?=[\s/>]|$)",
    re.IGNORECASE,
)
_RAW_HTML_VERBATIM = {"pre", "script", "style", "textarea"}


# =============================================================================
# Dialect span tokens
# =============================================================================


class Underline(SpanToken):
    """``<u>text</u>``"""

    pattern = re.compile(r"(?<!\\)<u>(.+?)</u>", re.DOTALL)
    parse_inner = True
    parse_group = 1


class Highlight(SpanToken):
    """``<mark>text</mark>``"""

    pattern = re.compile(r"(?<!\\)<mark>(.+?)</mark>", re.DOTALL)
    parse_inner = True
    parse_group = 1


class _DialectTokens(BaseRenderer):
    """Registers the dialect span tokens for the duration of a parse.

    Only used as a context manager; nothing is ever rendered through it.
    """

    def __init__(self) -> None:
        super().__init__(Underline, Highlight)

    def render_underline(self, token: Underline) -> str:
        return self.render_inner(token)

    def render_highlight(self, token: Highlight) -> str:
        return self.render_inner(token)


# =============================================================================
# Public API
# =============================================================================


def convert_markdown_to_blocks(markdown: str) -> list[Block]:
    """Parse Markdown text into a block tree.

    Args:
        markdown: The Markdown body (no frontmatter).

    Returns:
        Top-level blocks in document order. Malformed input degrades to
        paragraphs; this function does not raise.
    """
    if not markdown or not markdown.strip():
        return []

    try:
        with _MISTLETOE_LOCK, _DialectTokens():
            return _convert_lines(markdown.splitlines())
    except Exception as e:
        logger.warning(f"Markdown parse degraded to plain text: {e!r}")
        return [ParagraphBlock(content=[InlineText(markdown.strip())])]


def parse_inline(text: str) -> list[InlineNode]:
    """Parse a single line of inline Markdown into inline nodes."""
    if not text:
        return []
    with _MISTLETOE_LOCK, _DialectTokens():
        return _parse_inline_text(text)


# =============================================================================
# Line scanner
# =============================================================================


def _convert_lines(lines: list[str]) -> list[Block]:
    """Split lines into dialect blocks and plain Markdown runs."""
    blocks: list[Block] = []
    pending: list[str] = []
    fence: str | None = None
    i = 0

    def flush() -> None:
        if pending:
            blocks.extend(_convert_document("\n".join(pending) + "\n"))
            pending.clear()

    while i < len(lines):
        line = lines[i]

        if fence is not None:
            pending.append(line)
            if _closes_fence(line, fence):
                fence = None
            i += 1
            continue

        fence_match = _FENCE_OPEN.match(line)
        if fence_match:
            fence = fence_match.group(1)
            pending.append(line)
            i += 1
            continue

        consumed = _match_dialect_block(lines, i)
        if consumed is None:
            pending.append(line)
            i += 1
            continue

        block, i = consumed
        flush()
        if block is not None:
            blocks.append(block)

    flush()
    return blocks


def _match_dialect_block(lines: list[str], start: int) -> tuple[Block | None, int] | None:
    """Try every column-0 dialect construct at ``start``.

    Returns:
        ``(block, next_index)`` when a construct matched, otherwise None.
        Unterminated constructs do not match and fall through as text.
    """
    stripped = lines[start].strip()
    line = lines[start]

    if stripped == _MATH_FENCE and line.startswith("$"):
        end = _find_line(lines, start + 1, lambda s: s == _MATH_FENCE)
        if end is not None:
            return MathBlock(expression="\n".join(lines[start + 1:end])), end + 1
        return None

    inline_math = _MATH_INLINE.match(line)
    if inline_math:
        return MathBlock(expression=inline_math.group(1).strip()), start + 1

    if line.startswith("[") and stripped.upper() == _TOC_MARKER:
        return TableOfContentsBlock(), start + 1

    if line.startswith("<") and stripped == _HTML_OPEN:
        end = _find_line(lines, start + 1, lambda s: s == _HTML_CLOSE)
        if end is not None:
            return HtmlBlock(html="\n".join(lines[start + 1:end])), end + 1
        return None

    if line.startswith("<") and _DETAILS_OPEN.match(stripped):
        end = _find_details_close(lines, start + 1)
        if end is not None:
            return _convert_toggle(lines[start + 1:end]), end + 1
        return None

    if line.startswith(">") and _CALLOUT_OPEN.match(line):
        return _convert_callout(lines, start)

    if line.startswith("<"):
        return _convert_raw_html(lines, start)

    return None


def _closes_fence(line: str, fence: str) -> bool:
    stripped = line.strip()
    return (
        len(line) - len(line.lstrip(" ")) <= 3
        and stripped.startswith(fence)
        and set(stripped) == {fence[0]}
    )


def _find_line(lines: list[str], start: int, predicate: Any) -> int | None:
    for index in range(start, len(lines)):
        if predicate(lines[index].strip()):
            return index
    return None


def _find_details_close(lines: list[str], start: int) -> int | None:
    """Find the ``</details>`` closing the toggle opened before ``start``."""
    depth = 1
    fence: str | None = None
    for index in range(start, len(lines)):
        line = lines[index]
        if fence is not None:
            if _closes_fence(line, fence):
                fence = None
            continue
        fence_match = _FENCE_OPEN.match(line)
        if fence_match:
            fence = fence_match.group(1)
            continue
        stripped = line.strip()
        if _DETAILS_OPEN.match(stripped):
            depth += 1
        elif _DETAILS_CLOSE.match(stripped):
            depth -= 1
            if depth == 0:
                return index
    return None


def _convert_toggle(inner: list[str]) -> ToggleBlock:
    summary: list[InlineNode] = []
    body = inner
    for index, line in enumerate(inner):
        if not line.strip():
            continue
        summary_match = _SUMMARY_LINE.match(line.strip())
        if summary_match:
            summary = _parse_inline_text(summary_match.group(1))
            body = inner[index + 1:]
        break
    return ToggleBlock(summary=summary, children=_convert_lines(body))


def _convert_callout(lines: list[str], start: int) -> tuple[Block, int]:
    variant = _CALLOUT_OPEN.match(lines[start]).group(1).lower()
    body: list[str] = []
    index = start + 1
    while index < len(lines) and lines[index].startswith(">"):
        body.append(_QUOTE_PREFIX.sub("", lines[index], count=1))
        index += 1

    content: list[InlineNode] = []
    if any(line.strip() for line in body):
        doc = Document("\n".join(body) + "\n")
        content = _join_block_inline(doc.children)
    return CalloutBlock(variant=variant, content=content), index


def _convert_raw_html(lines: list[str], start: int) -> tuple[Block, int] | None:
    """Raw block-level HTML runs to the next blank line.

    ``<pre>``, ``<script>``, ``<style>`` and ``<textarea>`` run to their
    closing tag instead, and html comments to ``-->``.
    """
    line = lines[start]
    if line.startswith("<!--"):
        end = _find_line(lines, start, lambda s: "-->" in s)
        if end is None:
            return None
        return HtmlBlock(html="\n".join(lines[start:end + 1])), end + 1

    tag_match = _RAW_HTML_OPEN.match(line)
    if not tag_match:
        return None

    tag = tag_match.group(1).lower()
    if tag in _RAW_HTML_VERBATIM:
        closing = f"</{tag}>"
        end = _find_line(lines, start, lambda s: closing in s.lower())
        if end is not None:
            return HtmlBlock(html="\n".join(lines[start:end + 1])), end + 1

    end = start
    while end < len(lines) and lines[end].strip():
        end += 1
    return HtmlBlock(html="\n".join(lines[start:end])), end


# =============================================================================
# mistletoe block tokens
# =============================================================================


def _convert_document(text: str) -> list[Block]:
    doc = Document(text)
    blocks = []
    for token in doc.children:
        block = _convert_token(token)
        if block is not None:
            blocks.append(block)
    return blocks


def _convert_token(token: Any) -> Block | None:
    """Convert a mistletoe block token to a block."""
    if isinstance(token, (Heading, SetextHeading)):
        content = _fold_line_breaks(_convert_inline_tokens(token.children))
        return HeadingBlock(level=token.level, content=content)
    elif isinstance(token, Paragraph):
        return _convert_paragraph(token)
    elif isinstance(token, (BlockCode, CodeFence)):
        return _convert_code(token)
    elif isinstance(token, MdList):
        return _convert_list(token)
    elif isinstance(token, Quote):
        return QuoteBlock(content=_join_block_inline(token.children))
    elif isinstance(token, ThematicBreak):
        return DividerBlock()
    else:
        # Unknown token type - keep its text
        text = _flatten_text(_extract_text(token))
        if text:
            return ParagraphBlock(content=[InlineText(text)])
    return None


def _convert_paragraph(token: Paragraph) -> Block:
    children = list(token.children)

    # "&nbsp;" marks an empty paragraph; str.strip() also drops a decoded U+00A0
    if len(children) == 1 and isinstance(children[0], RawText):
        if children[0].content.strip() in ("&nbsp;", ""):
            return ParagraphBlock(content=[])

    if len(children) == 1 and isinstance(children[0], Image):
        image = children[0]
        return ImageBlock(
            src=image.src,
            alt=_extract_text(image),
            caption=image.title or None,
        )

    return ParagraphBlock(content=_convert_inline_tokens(children))


def _convert_code(token: BlockCode | CodeFence) -> CodeBlock:
    language = getattr(token, "language", "") or "text"
    content = _extract_text(token) if getattr(token, "children", None) else ""
    return CodeBlock(language=language.strip(), code=content.rstrip("\n"))


def _convert_list(token: MdList) -> ListBlock:
    """Convert a list token, nesting child lists under their item."""
    items = []
    for child in token.children:
        if isinstance(child, MdListItem):
            items.append(_convert_list_item(child))
    return ListBlock(ordered=token.start is not None, items=items)


def _convert_list_item(item: MdListItem) -> ListItem:
    content_tokens = []
    sublist: ListBlock | None = None
    for child in item.children:
        if isinstance(child, MdList):
            nested = _convert_list(child)
            if sublist is None:
                sublist = nested
            else:
                sublist.items.extend(nested.items)
        else:
            content_tokens.append(child)
    return ListItem(content=_join_block_inline(content_tokens), sublist=sublist)


def _join_block_inline(tokens: list[Any]) -> list[InlineNode]:
    """Flatten block tokens into one inline sequence, paragraphs separated by a blank line."""
    nodes: list[InlineNode] = []
    for token in tokens:
        if isinstance(token, (Paragraph, Heading, SetextHeading)):
            part = _convert_inline_tokens(token.children)
        else:
            text = _flatten_text(_extract_text(token))
            part = [InlineText(text)] if text else []
        if not part:
            continue
        if nodes:
            nodes.append(InlineText("\n\n"))
        nodes.extend(part)
    return merge_inline(nodes)


def _flatten_text(text: str) -> str:
    """Reduce block text (code, tables) to what a paragraph can hold.

    Lines are stripped and runs of blank lines collapse to one, since
    paragraph text keeps neither leading indentation nor repeated breaks.
    """
    lines = []
    for line in text.split("\n"):
        line = line.strip()
        if line or (lines and lines[-1]):
            lines.append(line)
    return "\n".join(lines).strip("\n")


def _fold_line_breaks(nodes: list[InlineNode]) -> list[InlineNode]:
    """Headings hold a single line: every break becomes a space."""
    folded: list[InlineNode] = []
    for node in nodes:
        if isinstance(node, InlineLink):
            folded.append(InlineLink(
                href=node.href,
                children=[InlineText(c.text.replace("\n", " "), c.marks) for c in node.children],
                title=node.title,
            ))
        else:
            folded.append(InlineText(node.text.replace("\n", " "), node.marks))
    return merge_inline(folded)


# =============================================================================
# mistletoe span tokens
# =============================================================================


_MARK_TOKENS = (
    (Strong, Mark.BOLD),
    (Emphasis, Mark.ITALIC),
    (Strikethrough, Mark.STRIKE),
    (Underline, Mark.UNDERLINE),
    (Highlight, Mark.HIGHLIGHT),
)


def _parse_inline_text(text: str) -> list[InlineNode]:
    doc = Document(text + "\n")
    for token in doc.children:
        if isinstance(token, (Paragraph, Heading, SetextHeading)):
            return _convert_inline_tokens(token.children)
    plain = _extract_text(doc).strip()
    return [InlineText(plain)] if plain else []


def _convert_inline_tokens(tokens: Any) -> list[InlineNode]:
    """Convert a list of inline tokens to inline nodes."""
    nodes: list[InlineNode] = []
    for token in tokens or []:
        nodes.extend(_convert_inline_token(token, frozenset()))
    # Merge adjacent nodes with same formatting
    return merge_inline(nodes)


def _convert_inline_token(token: Any, marks: frozenset[Mark]) -> list[InlineNode]:
    """Convert a single inline token, accumulating marks from its ancestors."""
    if isinstance(token, RawText):
        return [InlineText(token.content, marks)]

    for token_type, mark in _MARK_TOKENS:
        if isinstance(token, token_type):
            return _convert_children(token, marks | {mark})

    if isinstance(token, InlineCode):
        return [InlineText(_extract_text(token), marks | {Mark.CODE})]

    if isinstance(token, (Link, AutoLink, Image)):
        return [_convert_link(token, marks)]

    if isinstance(token, LineBreak):
        return [InlineText("\n", marks)]

    if isinstance(token, EscapeSequence):
        return [InlineText(_extract_text(token), marks)]

    if hasattr(token, "children") and token.children:
        return _convert_children(token, marks)

    content = getattr(token, "content", "")
    return [InlineText(content, marks)] if content else []


def _convert_children(token: Any, marks: frozenset[Mark]) -> list[InlineNode]:
    nodes: list[InlineNode] = []
    for child in token.children:
        nodes.extend(_convert_inline_token(child, marks))
    return nodes


def _convert_link(token: Any, marks: frozenset[Mark]) -> InlineLink:
    """Links, autolinks and inline images all become links. Links do not nest."""
    if isinstance(token, Image):
        href = token.src
        children: list[InlineNode] = [InlineText(_extract_text(token), marks)]
    else:
        href = token.target
        children = []
        for node in _convert_children(token, marks):
            if isinstance(node, InlineLink):
                children.extend(node.children)
            else:
                children.append(node)
        if isinstance(token, AutoLink) and getattr(token, "mailto", False) and not href.startswith("mailto:"):
            href = f"mailto:{href}"

    merged = [node for node in merge_inline(children) if isinstance(node, InlineText)]
    return InlineLink(href=href, children=merged, title=getattr(token, "title", None) or None)


def _extract_text(token: Any) -> str:
    """Extract plain text from a token."""
    if isinstance(token, RawText):
        return token.content
    elif isinstance(token, LineBreak):
        return "\n"
    elif hasattr(token, "children") and token.children:
        return "".join(_extract_text(child) for child in token.children)
    return ""
