"""
Command line tool for inspecting docrecords collections.

Commands:
- history: Print every saved version of a record
- at: Print a record as it was at a given time
- page: Print one page of a collection with its page start tokens

Usage:
    docrecords history articles 52c86e4803642e240d717729
    docrecords at articles 52c86e4803642e240d717729 2014-01-04T20:28:12Z
    docrecords page articles --sort published_at:desc --size 50

Configuration is read from the environment (see docrecords.config).
Output is MongoDB Extended JSON.

Invariants:
    - Exit code 0 on success, 1 when nothing was found, 2 on usage errors
    - The tool never writes to the store
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, List, Optional, TextIO, Tuple

import json_log_formatter
from bson import json_util

from .. import history
from ..config import RecordsConfig
from ..model import EntityDescriptor, ModelComponent
from ..pagination import decode_page_start, encode_page_start, page
from ..store.base import ASCENDING, DESCENDING, StoreAdapter, StoreError, create_store

logger = logging.getLogger(__name__)

_JSON_OPTIONS = json_util.JSONOptions(
    json_mode=json_util.JSONMode.RELAXED,
    tz_aware=True,
    tzinfo=timezone.utc,
)


def setup_logging(config: RecordsConfig) -> None:
    """Configure logging based on configuration."""
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from the driver
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def parse_sort(value: str) -> Tuple[str, int]:
    """Parse FIELD or FIELD:asc / FIELD:desc."""
    name, _, direction = value.partition(":")
    direction = direction.lower() or "asc"
    if not name or direction not in ("asc", "desc"):
        raise argparse.ArgumentTypeError(f"Invalid sort '{value}', expected FIELD[:asc|desc]")
    return name, ASCENDING if direction == "asc" else DESCENDING


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid datetime '{value}'")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_parser(config: Optional[RecordsConfig] = None) -> argparse.ArgumentParser:
    """Build the argument parser."""
    default_size = config.paging.default_page_size if config else 20

    parser = argparse.ArgumentParser(
        prog="docrecords",
        description="Inspect records, their history and pages",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    history_parser = subparsers.add_parser("history", help="Print all versions of a record")
    history_parser.add_argument("collection", help="Live collection name")
    history_parser.add_argument("id", help="Record id")

    at_parser = subparsers.add_parser("at", help="Print a record as it was at a time")
    at_parser.add_argument("collection", help="Live collection name")
    at_parser.add_argument("id", help="Record id")
    at_parser.add_argument("datetime", type=parse_datetime, help="ISO 8601 timestamp")

    page_parser = subparsers.add_parser("page", help="Print one page of a collection")
    page_parser.add_argument("collection", help="Collection name")
    page_parser.add_argument("--sort", type=parse_sort, default=None, help="FIELD[:asc|desc]")
    page_parser.add_argument("--start", default=None, help="Page start token")
    page_parser.add_argument("--size", type=int, default=default_size, help="Page size")

    return parser


def _dump(value: Any, out: TextIO) -> None:
    out.write(json_util.dumps(value, json_options=_JSON_OPTIONS, indent=2))
    out.write("\n")


async def run(
    args: argparse.Namespace,
    store: StoreAdapter,
    out: TextIO = sys.stdout,
    max_page_size: Optional[int] = None,
) -> int:
    """Execute a parsed command against a connected store.

    Returns:
        Process exit code
    """
    model = ModelComponent(store=store, entity=EntityDescriptor(collection=args.collection))

    if args.command == "history":
        versions = await history.find_all_by_record_id(model, args.id)
        _dump(versions, out)
        return 0 if versions else 1

    if args.command == "at":
        record = await history.find_record_at(model, args.id, args.datetime)
        _dump(record, out)
        return 0 if record is not None else 1

    if args.command == "page":
        size = args.size
        if max_page_size is not None and size > max_page_size:
            logger.warning(f"Page size {size} capped to {max_page_size}")
            size = max_page_size
        start = decode_page_start(args.start) if args.start else None
        result = await page(
            model,
            sort=[args.sort] if args.sort else None,
            start=start,
            page_size=size,
        )
        _dump(
            {
                "items": result.items,
                "previous": encode_page_start(result.previous_page_start)
                if result.previous_page_start
                else None,
                "next": encode_page_start(result.next_page_start)
                if result.next_page_start
                else None,
            },
            out,
        )
        return 0 if result.items else 1

    raise ValueError(f"Unknown command: {args.command}")


async def _main_async(config: RecordsConfig, args: argparse.Namespace) -> int:
    store = create_store(config)
    await store.connect()
    try:
        return await run(args, store, max_page_size=config.paging.max_page_size)
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    try:
        config = RecordsConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)
    config.log_config()

    parser = build_parser(config)
    args = parser.parse_args(argv)

    try:
        return asyncio.run(_main_async(config, args))
    except ValueError as e:
        logger.error(str(e))
        return 2
    except StoreError as e:
        logger.error(f"Store error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
