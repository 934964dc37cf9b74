"""YAML frontmatter for markdown documents.

A document may start with a YAML mapping between two ``---`` lines. The
header is parsed independently of the body; a header that is not valid YAML
(or not a mapping) is left in the body as ordinary text.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any

import yaml

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)^---[ \t]*(?:\n|\Z)", re.DOTALL | re.MULTILINE)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into its frontmatter mapping and body.

    Returns:
        ``(frontmatter, body)``. Without a valid header the mapping is empty
        and the body is the whole text.
    """
    if not text:
        return {}, ""

    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, text

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse frontmatter: {e}")
        return {}, text

    if data is None:
        data = {}
    if not isinstance(data, dict):
        logger.warning(f"Frontmatter is not a mapping ({type(data).__name__}); treating as body")
        return {}, text

    body = text[match.end():]
    if body.startswith("\n"):
        body = body[1:]
    return {str(key): _normalize(value) for key, value in data.items()}, body


def render_frontmatter(mapping: dict[str, Any]) -> str:
    """Serialize a mapping as a ``---`` delimited YAML header (empty for no keys)."""
    if not mapping:
        return ""
    dumped = yaml.safe_dump(
        mapping,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{dumped}---\n"


def compose_document(mapping: dict[str, Any], body: str) -> str:
    """Join a frontmatter header and a body into one document."""
    header = render_frontmatter(mapping)
    if header and body:
        return f"{header}\n{body}"
    return header or body


def _normalize(value: Any) -> Any:
    """YAML timestamps become ISO strings so metadata stays JSON-friendly."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    return value
