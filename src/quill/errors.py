"""Quill error hierarchy.

Provides a structured error hierarchy for the content store:
- QuillError: Base exception for all content-store errors
- ValidationError: Slug/title/frontmatter grammar violations
- NotFoundError: Unknown content id or database
- AlreadyExistsError: Duplicate content id, slug or database on create/copy
- IsActiveError: Attempt to delete the active database
- ConfigCorruptError: Active-database config unreadable (recovered, logged)
- StorageError: Underlying storage unreadable or unwritable

Each error type includes:
- Descriptive message
- Recoverable flag for retry logic
- Structured representation for handler responses

Usage:
    from quill.errors import NotFoundError

    entry = index.get_from_index(content_id)  # raises NotFoundError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Error Base Class
# =============================================================================


class QuillError(Exception):
    """Base exception for all Quill errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to structured dictionary for handler responses."""
        return {
            "type": _error_type_name(self),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(QuillError):
    """Input validation failed.

    Example:
        raise ValidationError("Invalid slug", field="slug", reasons=["contains uppercase"])
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        reasons: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if reasons:
            context["reasons"] = list(reasons)
        if value is not None:
            context["value"] = _truncate(str(value), 100)
        super().__init__(message, recoverable=False, context=context)
        self.field = field
        self.reasons = list(reasons or [])


class PathValidationError(ValidationError):
    """Database name validation failed (traversal attempt, invalid chars, etc)."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(
            message,
            field="path",
            reasons=[reason] if reason else None,
            context={"path": _truncate(path, 200) if path else None},
        )


# =============================================================================
# Lookup / Conflict Errors
# =============================================================================


class NotFoundError(QuillError):
    """Resource not found."""

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class AlreadyExistsError(QuillError):
    """Resource already exists (duplicate id, slug or database name)."""

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class IsActiveError(QuillError):
    """Operation refused because the database is the active one."""

    def __init__(self, message: str, *, database: str | None = None) -> None:
        super().__init__(message, recoverable=False, context={"database": database})
        self.database = database


# =============================================================================
# Configuration / Storage Errors
# =============================================================================


class ConfigCorruptError(QuillError):
    """Active-database configuration exists but cannot be parsed.

    Never surfaced to callers: the registry logs it and falls back.
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, recoverable=True, context={"path": path})


class StorageError(QuillError):
    """Errors in the persistence layer.

    Used for SQLite failures, file I/O issues, etc. Not retried automatically.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if operation:
            context["operation"] = operation
        if path:
            context["path"] = _truncate(path, 200)
        super().__init__(message, recoverable=False, context=context)


# =============================================================================
# Helpers
# =============================================================================


def _error_type_name(exc: QuillError) -> str:
    name = type(exc).__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return name.lower()


def _truncate(value: str | None, max_len: int) -> str | None:
    """Truncate a string value for safe logging."""
    if value is None:
        return None
    if len(value) <= max_len:
        return value
    return value[:max_len] + "..."


# =============================================================================
# Error Response Helpers
# =============================================================================


@dataclass
class ErrorResponse:
    """Structured error response for handler layers."""

    error_type: str
    message: str
    recoverable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": {
                "type": self.error_type,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


def error_response(exc: Exception) -> ErrorResponse:
    """Convert an exception to a structured error response."""
    if isinstance(exc, QuillError):
        return ErrorResponse(
            error_type=_error_type_name(exc),
            message=exc.message,
            recoverable=exc.recoverable,
            details=exc.context,
        )

    logger.error(f"Unexpected error reached error_response: {exc!r}")
    return ErrorResponse(
        error_type="internal",
        message=str(exc) if str(exc) else "An unexpected error occurred",
        recoverable=False,
    )


# =============================================================================
# Process Exit Code Mapping
# =============================================================================


# Map domain errors to CLI exit codes
EXIT_CODES: dict[type[QuillError], int] = {
    NotFoundError: 3,
    AlreadyExistsError: 4,
    ValidationError: 5,
    PathValidationError: 5,
    IsActiveError: 6,
    StorageError: 7,
}


def get_exit_code(exc: QuillError) -> int:
    """Get the process exit code for a domain error."""
    if type(exc) in EXIT_CODES:
        return EXIT_CODES[type(exc)]
    for error_type, code in EXIT_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 1
