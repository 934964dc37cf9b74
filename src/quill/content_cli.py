#!/usr/bin/env python3
"""Operator CLI for the content store.

Usage:
    quill-content [--log-level LEVEL] COMMAND [args...]
    python -m quill.content_cli COMMAND [args...]

Commands:
    copy OLD_ID NEW_ID      Copy a content record under a new id
    list                    List indexed content
    export ID               Print a record as a markdown document
    import FILE             Save a markdown document as a record
    stats ID                Show word/heading/link counts for a record
    verify                  Cross-check the index against stored records
    tags                    List the tag catalog
    tag-set NAME            Add or update a catalogued tag
    tag-remove NAME         Remove a tag from the catalog
    dates                   List manual dates
    date-set ID DATE        Set the manual date of a content id
    date-remove ID          Clear the manual date of a content id
    databases              List databases (* marks the active one)
    use NAME                Make NAME the active database
    create-db NAME          Create an empty database
    copy-db SOURCE DEST     Copy a whole database under a new name
    delete-db NAME          Delete a database that is not active

Content commands act on the active database unless --database is given.

Exit codes:
    0  success
    1  other failure
    2  usage error
    3  content or database not found
    4  content, slug or database already exists
    5  invalid input
    6  database is active
    7  storage failure
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .content.mapper import (
    calculate_markdown_stats,
    content_to_markdown,
    get_full_content,
    markdown_to_content,
    save_full_content,
)
from .db_registry import get_registry
from .errors import NotFoundError, QuillError, ValidationError, get_exit_code
from .logging_setup import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quill-content",
        description="Manage content records and databases",
        epilog="""
Examples:
  quill-content copy about-page about-page-v2
  quill-content copy about-page about-page-v2 --database staging.db
  quill-content copy-db content.db staging.db
  quill-content use staging.db
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: QUILL_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    def with_database(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--database", "-d", default=None, help="Database name (default: active)")
        return p

    copy = with_database(sub.add_parser("copy", help="Copy a content record under a new id"))
    copy.add_argument("old_id")
    copy.add_argument("new_id")

    with_database(sub.add_parser("list", help="List indexed content"))

    export = with_database(sub.add_parser("export", help="Print a record as markdown"))
    export.add_argument("content_id")
    export.add_argument("--output", "-o", type=Path, default=None, help="Write to a file instead of stdout")

    imp = with_database(sub.add_parser("import", help="Save a markdown document as a record"))
    imp.add_argument("file", type=Path)
    imp.add_argument("--id", dest="content_id", default=None, help="Content id (default: from frontmatter)")

    stats = with_database(sub.add_parser("stats", help="Show document statistics for a record"))
    stats.add_argument("content_id")

    with_database(sub.add_parser("verify", help="Cross-check index and records"))

    with_database(sub.add_parser("tags", help="List the tag catalog"))

    tag_set = with_database(sub.add_parser("tag-set", help="Add or update a catalogued tag"))
    tag_set.add_argument("name")
    tag_set.add_argument("--last-used", default=None, help="ISO timestamp of last use")
    tag_set.add_argument("--metadata", default=None, help="Tag metadata as JSON")

    tag_remove = with_database(sub.add_parser("tag-remove", help="Remove a tag from the catalog"))
    tag_remove.add_argument("name")

    with_database(sub.add_parser("dates", help="List manual dates"))

    date_set = with_database(sub.add_parser("date-set", help="Set the manual date of a content id"))
    date_set.add_argument("content_id")
    date_set.add_argument("date", help="ISO date, e.g. 2024-05-01")

    date_remove = with_database(sub.add_parser("date-remove", help="Clear the manual date of a content id"))
    date_remove.add_argument("content_id")

    sub.add_parser("databases", help="List databases")

    use = sub.add_parser("use", help="Set the active database")
    use.add_argument("name")

    create = sub.add_parser("create-db", help="Create an empty database")
    create.add_argument("name")
    create.add_argument("--display-name", default=None)

    copy_db = sub.add_parser("copy-db", help="Copy a database")
    copy_db.add_argument("source")
    copy_db.add_argument("dest")
    copy_db.add_argument("--display-name", default=None)

    delete_db = sub.add_parser("delete-db", help="Delete a database")
    delete_db.add_argument("name")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    handlers = {
        "copy": cmd_copy,
        "list": cmd_list,
        "export": cmd_export,
        "import": cmd_import,
        "stats": cmd_stats,
        "verify": cmd_verify,
        "tags": cmd_tags,
        "tag-set": cmd_tag_set,
        "tag-remove": cmd_tag_remove,
        "dates": cmd_dates,
        "date-set": cmd_date_set,
        "date-remove": cmd_date_remove,
        "databases": cmd_databases,
        "use": cmd_use,
        "create-db": cmd_create_db,
        "copy-db": cmd_copy_db,
        "delete-db": cmd_delete_db,
    }

    try:
        return handlers[args.command](args)
    except QuillError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return get_exit_code(e)
    except Exception as e:
        logger.exception(f"Unexpected failure in {args.command}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


# =============================================================================
# Content commands
# =============================================================================


def cmd_copy(args: argparse.Namespace) -> int:
    """Copy a content record within one database."""
    index = get_registry().get_index(args.database)
    # Fails with NotFoundError (exit 3) before anything is written
    source = index.get_from_index(args.old_id)
    entry = index.copy_content(args.old_id, args.new_id)

    print(f"Copied {args.old_id} -> {args.new_id}")
    print(f"Source key: {source.storage_key}")
    print(f"New key:    {entry.storage_key}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List indexed content."""
    index = get_registry().get_index(args.database)
    entries = index.get_all_from_index()

    print(f"\n{'ID':<24} {'Slug':<32} {'Status':<10} {'Last Modified'}")
    print("-" * 95)
    for entry in entries:
        record = index.get_record(entry.content_id)
        print(f"{entry.content_id:<24} {record.slug:<32} {record.status:<10} {entry.last_modified}")

    print(f"\nTotal: {len(entries)} records")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a record as a markdown document."""
    index = get_registry().get_index(args.database)
    markdown = content_to_markdown(get_full_content(args.content_id, index=index))

    if args.output:
        args.output.write_text(markdown, encoding="utf-8")
        print(f"Wrote {args.output}")
    else:
        print(markdown, end="")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import a markdown document as a record."""
    index = get_registry().get_index(args.database)
    text = args.file.read_text(encoding="utf-8")
    content = markdown_to_content(text, content_id=args.content_id)
    entry = save_full_content(content, index=index)

    print(f"Saved {entry.content_id} ({content.slug}, {len(content.blocks)} blocks)")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show document statistics for a record."""
    index = get_registry().get_index(args.database)
    markdown = content_to_markdown(get_full_content(args.content_id, index=index))
    stats = calculate_markdown_stats(markdown)

    print(f"Words:        {stats.word_count}")
    print(f"Characters:   {stats.character_count}")
    print(f"Lines:        {stats.line_count}")
    print(f"Headings:     {stats.heading_count}")
    print(f"Links:        {stats.link_count}")
    print(f"Images:       {stats.image_count}")
    print(f"Reading time: {stats.reading_time} min")
    for block_type, count in sorted(stats.block_types.items()):
        print(f"  {block_type:<18} {count}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Cross-check the index against stored records."""
    index = get_registry().get_index(args.database)
    report = index.verify_integrity()

    if report.ok:
        print(f"OK: {index.path.name}")
        return 0

    if not report.sqlite_ok:
        print("SQLite integrity check failed")
    for content_id in report.dangling_entries:
        print(f"Dangling index entry: {content_id}")
    for storage_key in report.unindexed_records:
        print(f"Unindexed record: {storage_key}")
    return 1


# =============================================================================
# Tag catalog and manual dates
# =============================================================================


def cmd_tags(args: argparse.Namespace) -> int:
    """List the tag catalog."""
    tags = get_registry().get_index(args.database).list_tags()

    print(f"\n{'Name':<24} {'Created':<34} {'Last Used'}")
    print("-" * 90)
    for tag in tags:
        print(f"{tag.name:<24} {tag.created_at:<34} {tag.last_used or '-'}")

    print(f"\nTotal: {len(tags)} tags")
    return 0


def cmd_tag_set(args: argparse.Namespace) -> int:
    metadata = None
    if args.metadata is not None:
        try:
            metadata = json.loads(args.metadata)
        except json.JSONDecodeError as e:
            raise ValidationError("Tag metadata is not valid JSON", field="metadata", reasons=[str(e)]) from e

    tag = get_registry().get_index(args.database).upsert_tag(
        args.name, last_used=args.last_used, metadata=metadata
    )
    print(f"Tag saved: {tag.name}")
    return 0


def cmd_tag_remove(args: argparse.Namespace) -> int:
    if not get_registry().get_index(args.database).remove_tag(args.name):
        raise NotFoundError(f"Tag not found: {args.name}", resource_type="tag", resource_id=args.name)
    print(f"Tag removed: {args.name}")
    return 0


def cmd_dates(args: argparse.Namespace) -> int:
    """List manual dates."""
    entries = get_registry().get_index(args.database).list_manual_dates()

    print(f"\n{'ID':<24} {'Date':<26} {'Updated'}")
    print("-" * 90)
    for entry in entries:
        print(f"{entry.content_id:<24} {entry.date:<26} {entry.updated_at}")

    print(f"\nTotal: {len(entries)} dates")
    return 0


def cmd_date_set(args: argparse.Namespace) -> int:
    entry = get_registry().get_index(args.database).upsert_manual_date(args.content_id, args.date)
    print(f"Manual date for {entry.content_id}: {entry.date}")
    return 0


def cmd_date_remove(args: argparse.Namespace) -> int:
    if not get_registry().get_index(args.database).remove_manual_date(args.content_id):
        raise NotFoundError(
            f"No manual date for: {args.content_id}",
            resource_type="manual_date",
            resource_id=args.content_id,
        )
    print(f"Manual date cleared: {args.content_id}")
    return 0


# =============================================================================
# Database commands
# =============================================================================


def cmd_databases(args: argparse.Namespace) -> int:
    """List databases."""
    registry = get_registry()
    registry.get_active_database()
    databases = registry.list_databases()

    print(f"\n{'Name':<24} {'Display Name':<24} {'Records':>8} {'Size':>10} {'Active':>7}")
    print("-" * 77)
    for db in databases:
        active = "*" if db.is_active else ""
        print(f"{db.name:<24} {db.display_name:<24} {db.content_count:>8} {db.size_bytes:>10} {active:>7}")

    print(f"\nTotal: {len(databases)} databases")
    return 0


def cmd_use(args: argparse.Namespace) -> int:
    info = get_registry().set_active_database(args.name)
    print(f"Active database: {info.name}")
    return 0


def cmd_create_db(args: argparse.Namespace) -> int:
    info = get_registry().create_database(args.name, args.display_name)
    print(f"Created database: {info.name}")
    return 0


def cmd_copy_db(args: argparse.Namespace) -> int:
    info = get_registry().copy_database(args.source, args.dest, args.display_name)
    print(f"Copied database {args.source} -> {info.name} ({info.content_count} records)")
    return 0


def cmd_delete_db(args: argparse.Namespace) -> int:
    get_registry().delete_database(args.name)
    print(f"Deleted database: {args.name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
