import sqlite3

import pytest

from arm5library.db.connection import connect
from arm5library.db.error_utils import SchemaError
from arm5library.db.naming import JOIN_PATHS, relation_table
from arm5library.db.schema import (
    BASE_TABLE_FIELDS,
    define_base_table,
    define_relation_table,
    drop_schema,
    ensure_schema,
)


def _tables(conn):
    return {
        r["name"]
        for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }


def test_schema_creates_base_and_relation_tables(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        ensure_schema(conn)
        tables = _tables(conn)
        assert {"library", "collection", "book", "content"}.issubset(tables)
        assert {relation_table(p).name for p in JOIN_PATHS}.issubset(tables)

        # Idempotent
        ensure_schema(conn)
        version_rows = conn.execute("SELECT * FROM arm5library_schema_version").fetchall()
        assert len(version_rows) == 1
    finally:
        conn.close()


def test_relation_primary_and_foreign_keys(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        ensure_schema(conn)
        info = conn.execute("PRAGMA table_info(libraryCollectionBook)").fetchall()
        pk = {r["name"]: r["pk"] for r in info if r["pk"]}
        assert pk == {"library_id": 1, "collection_id": 2, "book_id": 3}

        fks = conn.execute("PRAGMA foreign_key_list(libraryCollectionBook)").fetchall()
        targets = {r["table"] for r in fks}
        assert targets == {"library", "collection", "book", "libraryCollection"}
        assert {r["on_delete"] for r in fks} == {"CASCADE"}
        assert {r["on_update"] for r in fks} == {"CASCADE"}

        # Shallow tables have no composite FK onto a relation table.
        fks = conn.execute("PRAGMA foreign_key_list(libraryBook)").fetchall()
        assert {r["table"] for r in fks} == {"library", "book"}
    finally:
        conn.close()


def test_deeper_row_requires_parent_relation_row(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        ensure_schema(conn)
        conn.execute("INSERT INTO library(name) VALUES ('L')")
        conn.execute("INSERT INTO book(name, book_type) VALUES ('B', 'Summa')")
        conn.execute("INSERT INTO content(name, content_type) VALUES ('C', 'Summa')")

        # libraryBook(1, 1) missing
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO libraryBookContent(library_id, book_id, content_id) VALUES (1, 1, 1)"
            )

        conn.execute("INSERT INTO libraryBook(library_id, book_id) VALUES (1, 1)")
        conn.execute(
            "INSERT INTO libraryBookContent(library_id, book_id, content_id) VALUES (1, 1, 1)"
        )

        # Composite primary key: the same triple only once.
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO libraryBookContent(library_id, book_id, content_id) VALUES (1, 1, 1)"
            )

        # Cascade from the parent relation row.
        conn.execute("DELETE FROM libraryBook WHERE library_id = 1")
        assert conn.execute("SELECT COUNT(*) FROM libraryBookContent").fetchone()[0] == 0
    finally:
        conn.close()


def test_relation_tables_in_order_never_fail(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        for entity, fields in BASE_TABLE_FIELDS.items():
            define_base_table(conn, entity, fields)
        for path in JOIN_PATHS:
            define_relation_table(conn, path)
    finally:
        conn.close()


def test_deeper_relation_table_before_prefix_fails(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        for entity, fields in BASE_TABLE_FIELDS.items():
            define_base_table(conn, entity, fields)
        with pytest.raises(SchemaError):
            define_relation_table(conn, ("library", "collection", "book"))
        assert "libraryCollectionBook" not in _tables(conn)
    finally:
        conn.close()


def test_relation_table_without_base_table_fails(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        with pytest.raises(SchemaError):
            define_relation_table(conn, ("library", "content"))
    finally:
        conn.close()


def test_unknown_base_table_is_rejected(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        with pytest.raises(SchemaError):
            define_base_table(conn, "saga", ["name TEXT"])
    finally:
        conn.close()


def test_drop_schema_removes_everything(tmp_path):
    conn = connect(tmp_path / "lib.db")
    try:
        ensure_schema(conn)
        drop_schema(conn)
        tables = _tables(conn)
        assert not tables & {"library", "content", "libraryContent", "libraryCollectionBookContent"}
    finally:
        conn.close()
