"""Block-based content documents.

Key components:
- blocks_models: Block variants, inline nodes, BlockType and Mark
- markdown_parser: Markdown -> Blocks conversion
- markdown_renderer: Blocks -> Markdown rendering
- frontmatter: YAML header split/render
- mapper: Content records <-> stored markdown, document stats
"""

from .blocks_models import (
    Block,
    BlockType,
    InlineLink,
    InlineText,
    ListItem,
    Mark,
    blocks_from_dicts,
    blocks_to_dicts,
    create_empty_block,
    extract_plain_text,
    strip_ids,
)
from .mapper import (
    Content,
    ContentStatus,
    MarkdownStats,
    calculate_markdown_stats,
    content_to_markdown,
    get_full_content,
    markdown_to_content,
    save_full_content,
)
from .markdown_parser import convert_markdown_to_blocks, parse_inline
from .markdown_renderer import convert_blocks_to_markdown, render_inline

__all__ = [
    "Block",
    "BlockType",
    "InlineLink",
    "InlineText",
    "ListItem",
    "Mark",
    "blocks_from_dicts",
    "blocks_to_dicts",
    "create_empty_block",
    "extract_plain_text",
    "strip_ids",
    "Content",
    "ContentStatus",
    "MarkdownStats",
    "calculate_markdown_stats",
    "content_to_markdown",
    "get_full_content",
    "markdown_to_content",
    "save_full_content",
    "convert_markdown_to_blocks",
    "parse_inline",
    "convert_blocks_to_markdown",
    "render_inline",
]
