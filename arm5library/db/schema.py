from __future__ import annotations

import sqlite3
from typing import Dict, Sequence, Tuple

from loguru import logger

from arm5library.db.error_utils import SchemaError
from arm5library.db.naming import ENTITIES, JOIN_PATHS, relation_table

SCHEMA_VERSION = 1

# Field definitions of the base tables; the id column is added by
# define_base_table.
BASE_TABLE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "library": (
        "name TEXT NOT NULL UNIQUE",
        "title TEXT",
        "author TEXT",
    ),
    "collection": (
        "name TEXT NOT NULL",
        "title TEXT",
        "author TEXT",
    ),
    "book": (
        "name TEXT NOT NULL",
        "book_type TEXT NOT NULL",
        "title TEXT",
        "author TEXT",
    ),
    "content": (
        "name TEXT NOT NULL",
        "content_type TEXT NOT NULL",
        "title TEXT",
        "author TEXT",
        "details_json TEXT NOT NULL DEFAULT '{}'",
    ),
}

FK_ACTIONS = "ON UPDATE CASCADE ON DELETE CASCADE"


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


def define_base_table(
    conn: sqlite3.Connection, entity: str, field_defs: Sequence[str]
) -> None:
    """Create (if needed) an entity table with an autoincrement id."""

    if entity not in ENTITIES:
        raise SchemaError(f"Unknown entity '{entity}'")
    columns = ["id INTEGER PRIMARY KEY AUTOINCREMENT", *field_defs]
    stmt = f"CREATE TABLE IF NOT EXISTS {entity} ({', '.join(columns)})"
    logger.debug(stmt)
    conn.execute(stmt)


def define_relation_table(conn: sqlite3.Connection, path: Sequence[str]) -> None:
    """Create (if needed) the relation table of a join path.

    The table has one cascading foreign key per path member, a composite
    primary key over all of them and, for paths deeper than two, a composite
    foreign key onto the relation table of the path prefix. A deeper relation
    row can therefore only exist while its parent relation row exists.
    """

    table = relation_table(path)

    # SQLite does not resolve REFERENCES at CREATE time, so check here.
    for entity in table.path:
        if not table_exists(conn, entity):
            raise SchemaError(
                f"Cannot create {table.name}: base table '{entity}' does not exist"
            )

    defs = [
        f"{column} INTEGER NOT NULL REFERENCES {entity}(id) {FK_ACTIONS}"
        for entity, column in zip(table.path, table.columns)
    ]
    defs.append(f"PRIMARY KEY ({', '.join(table.columns)})")

    if table.parent is not None:
        parent = relation_table(table.parent)
        if not table_exists(conn, parent.name):
            raise SchemaError(
                f"Cannot create {table.name}: parent relation table "
                f"'{parent.name}' does not exist"
            )
        keys = ", ".join(parent.columns)
        defs.append(
            f"FOREIGN KEY ({keys}) REFERENCES {parent.name}({keys}) {FK_ACTIONS}"
        )

    stmt = f"CREATE TABLE IF NOT EXISTS {table.name} ({', '.join(defs)})"
    logger.debug(stmt)
    conn.execute(stmt)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create (if needed) the base and relation tables.

    Idempotent (CREATE TABLE IF NOT EXISTS), so it's safe to call at every
    program start.
    """

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS arm5library_schema_version (
            version INTEGER NOT NULL
        );
        """
    )

    for entity in ENTITIES:
        define_base_table(conn, entity, BASE_TABLE_FIELDS[entity])

    for path in JOIN_PATHS:
        define_relation_table(conn, path)

    row = conn.execute(
        "SELECT version FROM arm5library_schema_version LIMIT 1"
    ).fetchone()
    if row is None:
        conn.execute(
            "INSERT INTO arm5library_schema_version(version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
    conn.commit()


def drop_schema(conn: sqlite3.Connection) -> None:
    """Drop relation tables (deepest first) and then the base tables."""

    for path in reversed(JOIN_PATHS):
        conn.execute(f"DROP TABLE IF EXISTS {relation_table(path).name}")
    for entity in reversed(ENTITIES):
        conn.execute(f"DROP TABLE IF EXISTS {entity}")
    conn.execute("DROP TABLE IF EXISTS arm5library_schema_version")
    conn.commit()
