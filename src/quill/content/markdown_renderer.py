"""Render blocks to Markdown.

This module converts Block objects back to Markdown text. Every block tree
has exactly one rendering, and parsing that rendering gives back the same
tree (ignoring ids).
"""

from __future__ import annotations

import re

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
    ListBlock,
    Mark,
    MathBlock,
    ParagraphBlock,
    QuoteBlock,
    TableOfContentsBlock,
    ToggleBlock,
    merge_inline,
)

EMPTY_PARAGRAPH = "&nbsp;"

_DELIMITERS: dict[Mark, tuple[str, str]] = {
    Mark.BOLD: ("**", "**"),
    Mark.ITALIC: ("*", "*"),
    Mark.STRIKE: ("~~", "~~"),
    Mark.UNDERLINE: ("<u>", "</u>"),
    Mark.HIGHLIGHT: ("<mark>", "</mark>"),
}
_MARK_ORDER = (Mark.BOLD, Mark.ITALIC, Mark.STRIKE, Mark.UNDERLINE, Mark.HIGHLIGHT, Mark.CODE)

_ESCAPED_CHARS = re.compile(r"([\\*_`\[\]<~#|$])")
_ENTITY_LIKE = re.compile(r"&(?=#?[A-Za-z0-9]+;)")
_LINE_START_MARKER = re.compile(r"^([ \t]*)([-+=>])", re.MULTILINE)
_LINE_START_ORDERED = re.compile(r"^([ \t]*\d+)([.)])", re.MULTILINE)
_BACKTICK_RUN = re.compile(r"`+")


def convert_blocks_to_markdown(blocks: list[Block]) -> str:
    """Render a list of blocks to Markdown.

    Args:
        blocks: Top-level blocks in document order.

    Returns:
        Markdown text, blocks separated by a blank line, ending in a newline
        (empty string for no blocks).
    """
    parts = []
    previous: Block | None = None
    list_style = 0

    for block in blocks:
        if isinstance(block, ListBlock):
            # Two adjacent lists of one kind would merge unless the marker changes
            if isinstance(previous, ListBlock) and previous.ordered == block.ordered:
                list_style = 1 - list_style
            else:
                list_style = 0
            parts.append(_render_list(block, list_style))
        else:
            parts.append(_render_block(block))
        previous = block

    return "\n\n".join(parts) + "\n" if parts else ""


def _render_block(block: Block) -> str:
    """Render a single non-list block to Markdown."""
    if isinstance(block, ParagraphBlock):
        text = render_inline(block.content)
        return text if text.strip() else EMPTY_PARAGRAPH
    elif isinstance(block, HeadingBlock):
        text = render_inline(block.content).replace("\n", " ").strip()
        marker = "#" * block.level
        return f"{marker} {text}" if text else marker
    elif isinstance(block, ListBlock):
        return _render_list(block, 0)
    elif isinstance(block, QuoteBlock):
        return _quote_lines(render_inline(block.content)) or ">"
    elif isinstance(block, CalloutBlock):
        header = f"> [!{(block.variant or 'note').upper()}]"
        body = _quote_lines(render_inline(block.content))
        return f"{header}\n{body}" if body else header
    elif isinstance(block, CodeBlock):
        return _render_code(block)
    elif isinstance(block, MathBlock):
        return f"$$\n{block.expression}\n$$"
    elif isinstance(block, ToggleBlock):
        return _render_toggle(block)
    elif isinstance(block, HtmlBlock):
        return f"<!-- html -->\n{block.html}\n<!-- /html -->"
    elif isinstance(block, TableOfContentsBlock):
        return "[TOC]"
    elif isinstance(block, DividerBlock):
        return "---"
    elif isinstance(block, ImageBlock):
        return f"![{_escape(block.alt)}]({_link_destination(block.src)}{_link_title(block.caption)})"
    # Default: render plain text as a paragraph
    return _escape(block.plain_text()) or EMPTY_PARAGRAPH


def _render_list(block: ListBlock, style: int) -> str:
    """Render a list; nested sublists are indented under their item's marker."""
    lines = []
    for number, item in enumerate(block.items, start=1):
        if block.ordered:
            marker = f"{number}{'.' if style == 0 else ')'}"
        else:
            marker = "-" if style == 0 else "*"
        indent = " " * (len(marker) + 1)

        text = render_inline(item.content)
        if text:
            first, *rest = text.split("\n")
            lines.append(f"{marker} {first}")
            lines.extend(_indent(rest, indent))
        else:
            lines.append(marker)

        if item.sublist is not None and item.sublist.items:
            lines.extend(_indent(_render_list(item.sublist, 0).split("\n"), indent))

    return "\n".join(lines)


def _indent(lines: list[str], indent: str) -> list[str]:
    return [f"{indent}{line}" if line else "" for line in lines]


def _quote_lines(text: str) -> str:
    if not text:
        return ""
    return "\n".join(f"> {line}" if line else ">" for line in text.split("\n"))


def _render_code(block: CodeBlock) -> str:
    """Fenced code; the fence is longer than any backtick run in the code."""
    longest = max((len(run) for run in _BACKTICK_RUN.findall(block.code)), default=0)
    language = block.language or "text"
    fence_char = "~" if "`" in language else "`"
    fence = fence_char * max(3, longest + 1)
    if block.code:
        return f"{fence}{language}\n{block.code}\n{fence}"
    return f"{fence}{language}\n{fence}"


def _render_toggle(block: ToggleBlock) -> str:
    lines = ["<details>", f"<summary>{render_inline(block.summary)}</summary>", ""]
    if block.children:
        lines.append(convert_blocks_to_markdown(block.children).rstrip("\n"))
        lines.append("")
    lines.append("</details>")
    return "\n".join(lines)


# =============================================================================
# Inline rendering
# =============================================================================


def render_inline(nodes: list[InlineNode]) -> str:
    """Render inline nodes to Markdown.

    Marks are grouped greedily: at each position the mark with the longest
    run is opened first, so overlapping marks nest deterministically. Code
    is always the innermost mark.
    """
    rendered = _render_nodes(merge_inline(list(nodes)), frozenset(), parent_star=False)
    rendered = _LINE_START_MARKER.sub(r"\1\\\2", rendered)
    return _LINE_START_ORDERED.sub(r"\1\\\2", rendered)


def _node_marks(node: InlineNode) -> frozenset[Mark]:
    """Marks that apply to a whole node; a link carries those shared by all its children."""
    if isinstance(node, InlineLink):
        if not node.children:
            return frozenset()
        shared = frozenset.intersection(*(child.marks for child in node.children))
        return shared - {Mark.CODE}
    return node.marks


def _pick_mark(nodes: list[InlineNode], start: int, pending: frozenset[Mark]) -> Mark:
    candidates = [m for m in _MARK_ORDER if m in pending and m is not Mark.CODE] or [Mark.CODE]
    best = candidates[0]
    best_run = 0
    for mark in candidates:
        run = 0
        while start + run < len(nodes) and mark in _node_marks(nodes[start + run]):
            run += 1
        if run > best_run:
            best, best_run = mark, run
    return best


def _render_nodes(nodes: list[InlineNode], open_marks: frozenset[Mark], parent_star: bool) -> str:
    # Chunks are (mark, inner) for wrappers and (None, text) for leaves
    chunks: list[tuple[Mark | None, str]] = []
    i = 0
    while i < len(nodes):
        node = nodes[i]
        pending = _node_marks(node) - open_marks

        if not pending or pending == {Mark.CODE}:
            leaf = _render_leaf(node, open_marks)
            if isinstance(node, InlineLink) and chunks and chunks[-1][0] is None and chunks[-1][1].endswith("!"):
                # "!" directly before a link would turn it into an image
                chunks[-1] = (None, chunks[-1][1][:-1] + "\\!")
            chunks.append((None, leaf))
            i += 1
            continue

        mark = _pick_mark(nodes, i, pending)
        end = i
        while end < len(nodes) and mark in _node_marks(nodes[end]):
            end += 1
        inner = _render_nodes(nodes[i:end], open_marks | {mark}, parent_star=mark in (Mark.BOLD, Mark.ITALIC))
        chunks.append((mark, inner))
        i = end

    return _compose(chunks, parent_star)


def _compose(chunks: list[tuple[Mark | None, str]], parent_star: bool) -> str:
    out = ""
    for index, (mark, inner) in enumerate(chunks):
        if mark is None:
            out += inner
            continue
        opener, closer = _DELIMITERS[mark]
        if mark is Mark.ITALIC:
            opener = closer = _italic_delimiter(chunks, index, out, inner, parent_star)
        out += f"{opener}{inner}{closer}"
    return out


def _italic_delimiter(
    chunks: list[tuple[Mark | None, str]],
    index: int,
    before: str,
    inner: str,
    parent_star: bool,
) -> str:
    """Pick ``*`` or ``_`` so an italic run never fuses with a neighbouring ``*`` delimiter."""
    prev_char = before[-1] if before else ("*" if parent_star else "")
    if index + 1 < len(chunks):
        next_mark, next_text = chunks[index + 1]
        next_char = _DELIMITERS[next_mark][0][0] if next_mark else next_text[:1]
    else:
        next_char = "*" if parent_star else ""

    conflict = "*" in (prev_char, next_char) or inner.startswith("*") or inner.endswith("*")
    if conflict and not prev_char.isalnum() and not next_char.isalnum():
        return "_"
    return "*"


def _render_leaf(node: InlineNode, open_marks: frozenset[Mark]) -> str:
    if isinstance(node, InlineLink):
        outer = open_marks | _node_marks(node)
        text = _render_nodes(list(node.children), outer, parent_star=False)
        return f"[{text}]({_link_destination(node.href)}{_link_title(node.title)})"
    if Mark.CODE in node.marks and Mark.CODE not in open_marks:
        return _code_span(node.text)
    return _escape(node.text)


def _code_span(text: str) -> str:
    longest = max((len(run) for run in _BACKTICK_RUN.findall(text)), default=0)
    fence = "`" * (longest + 1)
    if text.strip(" ") and (
        text.startswith("`") or text.endswith("`") or (text.startswith(" ") and text.endswith(" "))
    ):
        text = f" {text} "
    return f"{fence}{text}{fence}"


def _escape(text: str) -> str:
    """Backslash-escape characters that would otherwise start inline syntax."""
    text = _ESCAPED_CHARS.sub(r"\\\1", text)
    return _ENTITY_LIKE.sub(r"\\&", text)


def _link_destination(href: str) -> str:
    if re.search(r"[\s()<>]", href):
        return "<" + href.replace("<", "%3C").replace(">", "%3E") + ">"
    return href


def _link_title(title: str | None) -> str:
    if not title:
        return ""
    escaped = title.replace("\\", "\\\\").replace('"', '\\"')
    return f' "{escaped}"'
