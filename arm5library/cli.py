"""Command line for the library catalogue.

    arm5library init --seed libraries.json
    arm5library list
    arm5library show "Covenant Library"
    arm5library delete 3

JSON goes to stdout; logging goes to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sqlite3
import sys
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger
from pydantic import TypeAdapter

from arm5library import config
from arm5library.dao import LibraryDao
from arm5library.db.error_utils import LibraryError, classify_storage_error
from arm5library.db.storage import LibraryStorage
from arm5library.models import Library

_libraries_adapter: TypeAdapter = TypeAdapter(List[Library])


def _configure_logging(verbose: bool = False) -> None:
    logger.remove()
    level = "DEBUG" if verbose else config.LOG_LEVEL
    logger.add(sys.stderr, level=level)


def load_seed(path: str | Path) -> List[Library]:
    """Read one library object or a list of them from a JSON file."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = [raw]
    return _libraries_adapter.validate_python(raw)


def _dump(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    sys.stdout.flush()


async def _run(args: argparse.Namespace) -> int:
    if args.command == "init":
        seed = load_seed(args.seed) if args.seed else None
        storage = LibraryStorage(args.db)
        try:
            storage.initialize(seed, reset=args.reset)
        finally:
            storage.close()
        return 0

    with LibraryStorage(args.db, must_exist=True) as storage:
        dao = LibraryDao(storage)

        if args.command == "list":
            libraries = await dao.all()
            _dump([library.model_dump(mode="json") for library in libraries])
            return 0

        if args.command == "show":
            # A numeric argument is an id first, then a name.
            library = None
            if args.library.isdigit():
                library = await dao.one(int(args.library))
            if library is None:
                library = await dao.one(args.library)
            if library is None:
                logger.error(f"No library {args.library!r}")
                return 1
            _dump(library.model_dump(mode="json"))
            return 0

        if args.command == "delete":
            return 0 if await dao.delete(args.library_id) else 1

    raise ValueError(f"Unknown command {args.command!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="arm5library: a covenant library catalogue backed by SQLite.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--db",
        type=str,
        default=config.DB_PATH,
        help=f"SQLite database file (default: {config.DB_PATH})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level).",
    )
    subparsers = parser.add_subparsers(
        dest="command", required=True, help="Available commands"
    )

    parser_init = subparsers.add_parser("init", help="Create the database schema.")
    parser_init.add_argument(
        "--reset",
        action="store_true",
        help="Drop and recreate all tables first.",
    )
    parser_init.add_argument(
        "--seed",
        type=str,
        default=None,
        help="JSON file with one library or a list of libraries to insert.",
    )

    subparsers.add_parser("list", help="Print all libraries as JSON.")

    parser_show = subparsers.add_parser("show", help="Print one library as JSON.")
    parser_show.add_argument("library", help="Library id or name.")

    parser_delete = subparsers.add_parser("delete", help="Delete a library.")
    parser_delete.add_argument("library_id", type=int, help="Library id.")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(verbose=args.verbose)

    try:
        return asyncio.run(_run(args))
    except (LibraryError, sqlite3.Error, ValueError, OSError) as e:
        err = classify_storage_error(e, operation=args.command)
        logger.error(f"'{args.command}' failed [{err.code}]: {err.message}")
        return 1


def cli_main() -> None:
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover
    cli_main()
