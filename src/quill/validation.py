"""Identifier and URL safety checks.

Pure functions with no storage dependencies. The index and mapper rely on
these to keep slugs, titles, database names and rendered URLs well-formed.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlsplit

from .errors import PathValidationError, ValidationError

MAX_SLUG_LENGTH = 120
MAX_TITLE_LENGTH = 180

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_SLUG_SEPARATOR_RUN = re.compile(r"[^a-z0-9]+")

SAFE_URL_SCHEMES = frozenset({"http", "https", "mailto", "tel"})
_NEUTRAL_BASE_URL = "https://example.invalid/"

# Single-expression stripper; obfuscated or unterminated markup can get past it.
_SCRIPT_ELEMENT = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)

DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*\.db$")
DATABASE_SUFFIX = ".db"


# =============================================================================
# Slugs and Titles
# =============================================================================


def validate_slug(slug: str) -> list[str]:
    """Check a slug against the slug grammar.

    Returns:
        A list of human-readable reasons; empty when the slug is valid.
    """
    if not isinstance(slug, str):
        return ["slug must be a string"]

    reasons: list[str] = []
    if not slug:
        return ["slug must not be empty"]
    if len(slug) > MAX_SLUG_LENGTH:
        reasons.append(f"slug exceeds {MAX_SLUG_LENGTH} characters")
    if re.search(r"[^a-z0-9-]", slug):
        reasons.append("slug may only contain lowercase letters, digits and hyphens")
    if slug.startswith("-") or slug.endswith("-"):
        reasons.append("slug must not start or end with a hyphen")
    if "--" in slug:
        reasons.append("slug must not contain consecutive hyphens")
    return reasons


def normalize_slug(raw: str) -> str:
    """Derive a slug from arbitrary text.

    Lowercases, trims, collapses every run of characters outside
    ``[a-z0-9]`` into one hyphen and strips hyphens from both ends. The
    result is either empty or passes :func:`validate_slug`.
    """
    if not raw:
        return ""
    slug = _SLUG_SEPARATOR_RUN.sub("-", raw.strip().lower()).strip("-")
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug


def validate_title(title: str) -> str | None:
    """Return the reason a title is invalid, or None when it is acceptable."""
    if not isinstance(title, str) or not title.strip():
        return "title must not be empty"
    if len(title) > MAX_TITLE_LENGTH:
        return f"title exceeds {MAX_TITLE_LENGTH} characters"
    return None


def require_valid_slug(slug: str) -> str:
    """Validate a slug, raising ValidationError with every failed rule."""
    reasons = validate_slug(slug)
    if reasons:
        raise ValidationError("Invalid slug", field="slug", value=slug, reasons=reasons)
    return slug


def require_valid_title(title: str) -> str:
    reason = validate_title(title)
    if reason:
        raise ValidationError("Invalid title", field="title", value=title, reasons=[reason])
    return title


# =============================================================================
# URLs and HTML
# =============================================================================


def is_safe_url(url: str) -> bool:
    """Allow only http(s), mailto and tel URLs.

    Relative URLs are resolved against a neutral base first, so ``/about``
    and ``//cdn.example.com/x`` count as safe while ``javascript:`` and
    ``data:`` do not.
    """
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        resolved = urljoin(_NEUTRAL_BASE_URL, url.strip())
        scheme = urlsplit(resolved).scheme
    except ValueError:
        return False
    return scheme.lower() in SAFE_URL_SCHEMES


def sanitize_url(url: str) -> str:
    """Return the URL unchanged when safe, otherwise an empty string."""
    return url if is_safe_url(url) else ""


def sanitize_html(html: str) -> str:
    """Strip ``<script>`` elements from raw HTML.

    The substitution is repeated until the text stops changing so that a
    removal cannot splice a new script element together.
    """
    if not html:
        return ""
    previous = None
    cleaned = html
    while cleaned != previous:
        previous = cleaned
        cleaned = _SCRIPT_ELEMENT.sub("", cleaned)
    return cleaned


# =============================================================================
# Database Names
# =============================================================================


def validate_database_name(name: str) -> str:
    """Normalize and validate a database file name.

    A missing ``.db`` suffix is appended. Names are plain file names under the
    storage root; separators and traversal are rejected.

    Raises:
        PathValidationError: If the name is not a safe file name.
    """
    if not isinstance(name, str) or not name.strip():
        raise PathValidationError("Database name is required", path=name, reason="empty")
    candidate = name.strip()
    if "/" in candidate or "\\" in candidate or ".." in candidate:
        raise PathValidationError(
            "Database name must be a plain file name", path=candidate, reason="traversal"
        )
    if not candidate.endswith(DATABASE_SUFFIX):
        candidate += DATABASE_SUFFIX
    if not DATABASE_NAME_PATTERN.match(candidate):
        raise PathValidationError(
            "Database name may only contain letters, digits, '_' and '-'",
            path=candidate,
            reason="invalid_characters",
        )
    return candidate
