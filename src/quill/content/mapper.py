"""Content records <-> markdown documents.

The mapper is the only place that translates between the structured content
shape used by callers (``Content``: metadata plus a block tree) and what is
persisted: a markdown body with YAML frontmatter metadata.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import ValidationError
from ..validation import (
    normalize_slug,
    require_valid_slug,
    require_valid_title,
    sanitize_html,
    sanitize_url,
)
from .blocks_models import (
    Block,
    HeadingBlock,
    HtmlBlock,
    ImageBlock,
    InlineLink,
    blocks_from_dicts,
    blocks_to_dicts,
    deep_copy_blocks,
    inline_sequences,
    iter_blocks,
    new_id,
)
from .frontmatter import compose_document, split_frontmatter
from .markdown_parser import convert_markdown_to_blocks
from .markdown_renderer import convert_blocks_to_markdown

if TYPE_CHECKING:
    from ..content_db import ContentIndex, IndexEntry

logger = logging.getLogger(__name__)

RESERVED_KEYS = ("id", "title", "slug", "status", "category")
WORDS_PER_MINUTE = 200

_SCALAR_TYPES = (str, int, float, bool, type(None))
_WORD = re.compile(r"\S+")


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def _parse_status(value: Any) -> ContentStatus:
    try:
        return ContentStatus(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid status: {value}",
            field="status",
            value=value,
            reasons=[f"status must be one of {', '.join(s.value for s in ContentStatus)}"],
        ) from exc


@dataclass
class Content:
    """A content record as callers see it."""

    id: str
    title: str
    slug: str
    status: ContentStatus = ContentStatus.DRAFT
    category: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict)
    blocks: list[Block] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape used by request handlers."""
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "status": ContentStatus(self.status).value,
            "category": self.category,
            "frontmatter": dict(self.frontmatter),
            "blocks": blocks_to_dicts(self.blocks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Content:
        """Create from the handler JSON shape.

        Raises:
            ValidationError: If the status or a block is malformed.
        """
        return cls(
            id=str(data.get("id") or new_id("content")),
            title=str(data.get("title", "")),
            slug=str(data.get("slug", "")),
            status=_parse_status(data.get("status", ContentStatus.DRAFT.value)),
            category=data.get("category"),
            frontmatter=dict(data.get("frontmatter") or {}),
            blocks=blocks_from_dicts(data.get("blocks") or []),
        )


@dataclass
class MarkdownStats:
    character_count: int = 0
    word_count: int = 0
    heading_count: int = 0
    link_count: int = 0
    image_count: int = 0
    line_count: int = 0
    reading_time: int = 0
    block_types: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "character_count": self.character_count,
            "word_count": self.word_count,
            "heading_count": self.heading_count,
            "link_count": self.link_count,
            "image_count": self.image_count,
            "line_count": self.line_count,
            "reading_time": self.reading_time,
            "block_types": dict(self.block_types),
        }


# =============================================================================
# Load / Save
# =============================================================================


def _default_index() -> ContentIndex:
    from ..db_registry import get_registry

    return get_registry().get_index()


def get_full_content(content_id: str, *, index: ContentIndex | None = None) -> Content:
    """Load a content record and parse its body into blocks.

    Args:
        content_id: The content to load.
        index: Index to read from; the active database's when omitted.

    Raises:
        NotFoundError: If the id is not indexed.
    """
    index = index or _default_index()
    record = index.get_record(content_id)
    try:
        status = ContentStatus(record.status)
    except ValueError:
        logger.warning(f"Content {content_id} has unknown status {record.status!r}; using draft")
        status = ContentStatus.DRAFT

    return Content(
        id=record.content_id,
        title=record.title,
        slug=record.slug,
        status=status,
        category=record.category,
        frontmatter=record.frontmatter,
        blocks=convert_markdown_to_blocks(record.body),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def save_full_content(content: Content, *, index: ContentIndex | None = None) -> IndexEntry:
    """Validate, sanitize and persist a content record.

    Creates the index entry when the id is new.

    Raises:
        ValidationError: If the id, slug, title or frontmatter is invalid.
        AlreadyExistsError: If another record already uses the slug.
    """
    validate_content(content)
    blocks = sanitize_blocks(content.blocks)
    body = convert_blocks_to_markdown(blocks)

    index = index or _default_index()
    entry = index.save_record(
        content.id,
        slug=content.slug,
        title=content.title.strip(),
        status=ContentStatus(content.status).value,
        category=content.category,
        frontmatter=content.frontmatter,
        body=body,
    )
    logger.info(f"Saved content {content.id} ({content.slug})")
    return entry


def validate_content(content: Content) -> None:
    """Raise ValidationError listing every problem with a record's metadata."""
    if not isinstance(content.id, str) or not content.id.strip():
        raise ValidationError("Content id is required", field="id", reasons=["id must not be empty"])

    require_valid_slug(content.slug)
    require_valid_title(content.title)

    _parse_status(content.status)

    reasons = []
    for key, value in content.frontmatter.items():
        if not isinstance(key, str) or not key:
            reasons.append(f"frontmatter key {key!r} must be a non-empty string")
        elif key in RESERVED_KEYS:
            reasons.append(f"frontmatter key {key!r} is reserved")
        elif isinstance(value, list):
            if not all(isinstance(item, _SCALAR_TYPES) for item in value):
                reasons.append(f"frontmatter {key!r} may only list scalar values")
        elif not isinstance(value, _SCALAR_TYPES):
            reasons.append(f"frontmatter {key!r} must be a scalar or a list of scalars")
    if reasons:
        raise ValidationError("Invalid frontmatter", field="frontmatter", reasons=reasons)


def sanitize_blocks(blocks: list[Block]) -> list[Block]:
    """Copy of ``blocks`` with scripts stripped from html and unsafe URLs blanked."""
    cleaned = deep_copy_blocks(blocks, fresh_ids=False)
    for block in iter_blocks(cleaned):
        if isinstance(block, HtmlBlock):
            safe = sanitize_html(block.html)
            if safe != block.html:
                logger.warning(f"Removed script content from html block {block.id}")
                block.html = safe
        elif isinstance(block, ImageBlock):
            safe = sanitize_url(block.src)
            if safe != block.src:
                logger.warning(f"Dropped unsafe image URL in block {block.id}")
                block.src = safe

        for nodes in inline_sequences(block):
            for node in nodes:
                if isinstance(node, InlineLink):
                    safe = sanitize_url(node.href)
                    if safe != node.href:
                        logger.warning(f"Dropped unsafe link URL in block {block.id}")
                        node.href = safe
    return cleaned


# =============================================================================
# Full documents
# =============================================================================


def content_to_markdown(content: Content) -> str:
    """Render a record as a full markdown document: frontmatter, then body."""
    header: dict[str, Any] = {
        "id": content.id,
        "title": content.title,
        "slug": content.slug,
        "status": ContentStatus(content.status).value,
    }
    if content.category is not None:
        header["category"] = content.category
    for key, value in content.frontmatter.items():
        if key not in RESERVED_KEYS:
            header[key] = value
    return compose_document(header, convert_blocks_to_markdown(content.blocks))


def markdown_to_content(text: str, content_id: str | None = None) -> Content:
    """Parse a full markdown document into a record.

    The result is not validated; ``save_full_content`` does that. A missing
    slug is derived from the title, a missing id is generated.
    """
    frontmatter, body = split_frontmatter(text)
    meta = {key: frontmatter.pop(key) for key in RESERVED_KEYS if key in frontmatter}

    title = str(meta.get("title") or "")
    raw_status = meta.get("status", ContentStatus.DRAFT.value)
    try:
        status = ContentStatus(raw_status)
    except ValueError:
        logger.warning(f"Unknown status {raw_status!r} in document; using draft")
        status = ContentStatus.DRAFT

    category = meta.get("category")
    return Content(
        id=content_id or str(meta.get("id") or new_id("content")),
        title=title,
        slug=str(meta.get("slug") or normalize_slug(title)),
        status=status,
        category=str(category) if category is not None else None,
        frontmatter=frontmatter,
        blocks=convert_markdown_to_blocks(body),
    )


def calculate_markdown_stats(markdown: str) -> MarkdownStats:
    """Counts over a markdown document, for listings and reports.

    Frontmatter is excluded. Reading time is in whole minutes at 200 words
    per minute, rounded up.
    """
    _, body = split_frontmatter(markdown or "")
    blocks = convert_markdown_to_blocks(body)

    stats = MarkdownStats(character_count=len(body), line_count=len(body.splitlines()))
    words = 0
    for block in iter_blocks(blocks):
        stats.block_types[block.type.value] += 1
        if isinstance(block, HeadingBlock):
            stats.heading_count += 1
        elif isinstance(block, ImageBlock):
            stats.image_count += 1
        for nodes in inline_sequences(block):
            stats.link_count += sum(1 for node in nodes if isinstance(node, InlineLink))

    for block in blocks:
        words += len(_WORD.findall(block.plain_text()))

    stats.word_count = words
    stats.reading_time = math.ceil(words / WORDS_PER_MINUTE) if words else 0
    return stats
