"""Quill - content storage and markdown block core.

Stores content documents in SQLite databases, exposes them as typed block
trees for editing, and round-trips them through markdown with frontmatter.

Environment Variables:
    QUILL_DATA_DIR          Data directory (default: ./.quill-data)
    QUILL_DEFAULT_DATABASE  Fallback active database (default: content.db)
    QUILL_LOG_LEVEL         Logging level (default: INFO)
"""

__version__ = "0.1.0"
