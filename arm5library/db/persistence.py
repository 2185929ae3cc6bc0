"""Insertion helpers.

Every helper takes an open connection and never commits; the caller owns
the transaction so that an entity and all of its relation rows are written
atomically.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel

from arm5library.db.error_utils import DuplicateNameError, InvalidLibraryError
from arm5library.db.naming import (
    LIBRARY_BOOK,
    LIBRARY_BOOK_CONTENT,
    LIBRARY_COLLECTION,
    LIBRARY_COLLECTION_BOOK,
    LIBRARY_COLLECTION_BOOK_CONTENT,
    LIBRARY_COLLECTION_CONTENT,
    LIBRARY_CONTENT,
    RELATION_TABLES,
    relation_table,
)
from arm5library.models import Book, Collection, ContentBase, Library
# Top-level relation tables of a library; deeper rows cascade from these.
_LIBRARY_ROOTS = (LIBRARY_CONTENT, LIBRARY_BOOK, LIBRARY_COLLECTION)


def insert_relation(conn: sqlite3.Connection, path: Sequence[str], ids: Sequence[int]) -> None:
    table = relation_table(path)
    if len(ids) != len(table.columns):
        raise ValueError(f"{table.name} expects {len(table.columns)} ids, got {len(ids)}")
    placeholders = ", ".join("?" for _ in table.columns)
    conn.execute(
        f"INSERT INTO {table.name} ({', '.join(table.columns)}) VALUES ({placeholders})",
        tuple(ids),
    )
    logger.debug(f"Linked {table.name}{tuple(ids)}")


def insert_content(conn: sqlite3.Connection, content: ContentBase) -> int:
    cur = conn.execute(
        """
        INSERT INTO content (name, content_type, title, author, details_json)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            content.name,
            content.content_type.value,
            content.title,
            content.author,
            json.dumps(content.details()),
        ),
    )
    content.id = cur.lastrowid
    return content.id


def add_content(
    conn: sqlite3.Connection,
    content: ContentBase,
    *,
    library_id: int,
    collection_id: Optional[int] = None,
    book_id: Optional[int] = None,
) -> int:
    """Insert a content and link it into the library hierarchy.

    The content always joins the library contents. Depending on the
    optional keys it also joins:

    - ``book_id`` only: the contents of that library book.
    - ``collection_id`` only: the contents of that collection.
    - both: the collection contents and the contents of that collection book.

    Unknown or unrelated parent ids are rejected by the foreign keys.
    """

    content_id = insert_content(conn, content)
    insert_relation(conn, LIBRARY_CONTENT.path, (library_id, content_id))

    if collection_id is None and book_id is not None:
        insert_relation(conn, LIBRARY_BOOK_CONTENT.path, (library_id, book_id, content_id))
    elif collection_id is not None:
        insert_relation(
            conn, LIBRARY_COLLECTION_CONTENT.path, (library_id, collection_id, content_id)
        )
        if book_id is not None:
            insert_relation(
                conn,
                LIBRARY_COLLECTION_BOOK_CONTENT.path,
                (library_id, collection_id, book_id, content_id),
            )

    content.library_id = library_id
    content.collection_id = collection_id
    content.book_id = book_id
    logger.debug(
        f"Added content {content_id} ({content.name!r}) to library={library_id} "
        f"collection={collection_id} book={book_id}"
    )
    return content_id


def _book_name_taken(conn: sqlite3.Connection, library_id: int, name: str) -> bool:
    row = conn.execute(
        f"""
        SELECT 1 FROM book b
        WHERE b.name = ? AND (
            b.id IN (SELECT book_id FROM {LIBRARY_BOOK.name} WHERE library_id = ?)
            OR b.id IN (SELECT book_id FROM {LIBRARY_COLLECTION_BOOK.name} WHERE library_id = ?)
        )
        LIMIT 1
        """,
        (name, library_id, library_id),
    ).fetchone()
    return row is not None


def _collection_name_taken(conn: sqlite3.Connection, library_id: int, name: str) -> bool:
    row = conn.execute(
        f"""
        SELECT 1 FROM collection c
        JOIN {LIBRARY_COLLECTION.name} lc ON lc.collection_id = c.id
        WHERE lc.library_id = ? AND c.name = ?
        LIMIT 1
        """,
        (library_id, name),
    ).fetchone()
    return row is not None


def library_name_taken(
    conn: sqlite3.Connection, name: str, exclude_id: Optional[int] = None
) -> bool:
    row = conn.execute(
        "SELECT id FROM library WHERE name = ? AND id IS NOT ?", (name, exclude_id)
    ).fetchone()
    return row is not None


def _insert_book_row(conn: sqlite3.Connection, library_id: int, book: Book) -> int:
    if _book_name_taken(conn, library_id, book.name):
        raise DuplicateNameError(
            f"Book name '{book.name}' already used in library {library_id}"
        )
    cur = conn.execute(
        "INSERT INTO book (name, book_type, title, author) VALUES (?, ?, ?, ?)",
        (book.name, book.type.value, book.title, book.author),
    )
    book.id = cur.lastrowid
    return book.id


def _add_book_contents(
    conn: sqlite3.Connection,
    book: Book,
    *,
    library_id: int,
    collection_id: Optional[int] = None,
) -> None:
    for content in book.contents:
        if content.author is None:
            content.author = book.author
        add_content(
            conn,
            content,
            library_id=library_id,
            collection_id=collection_id,
            book_id=book.id,
        )


def insert_library_book(conn: sqlite3.Connection, library_id: int, book: Book) -> int:
    """Insert a book of a library together with its contents."""

    book_id = _insert_book_row(conn, library_id, book)
    insert_relation(conn, LIBRARY_BOOK.path, (library_id, book_id))
    _add_book_contents(conn, book, library_id=library_id)
    logger.debug(f"Inserted book {book_id} ({book.name!r}) into library {library_id}")
    return book_id


def insert_collection_book(
    conn: sqlite3.Connection, library_id: int, collection_id: int, book: Book | int
) -> int:
    """Insert a book into a collection.

    A ``Book`` is inserted by value with its contents. An ``int`` refers to
    an existing book of the library, which only gains the collection link.
    """

    if isinstance(book, int):
        row = conn.execute(
            f"SELECT 1 FROM {LIBRARY_BOOK.name} WHERE library_id = ? AND book_id = ?",
            (library_id, book),
        ).fetchone()
        if row is None:
            raise InvalidLibraryError(f"Book {book} is not a book of library {library_id}")
        insert_relation(conn, LIBRARY_COLLECTION_BOOK.path, (library_id, collection_id, book))
        return book

    book_id = _insert_book_row(conn, library_id, book)
    insert_relation(conn, LIBRARY_COLLECTION_BOOK.path, (library_id, collection_id, book_id))
    _add_book_contents(conn, book, library_id=library_id, collection_id=collection_id)
    logger.debug(
        f"Inserted book {book_id} ({book.name!r}) into collection {collection_id}"
    )
    return book_id


def insert_collection(
    conn: sqlite3.Connection,
    library_id: int,
    collection: Collection,
    book_ids: Optional[Dict[int, int]] = None,
) -> int:
    """Insert a collection of a library with its books and contents.

    A collection content whose ``book_id`` names a book the collection holds
    by reference keeps its collection book link. ``book_ids`` maps stale book
    ids (from a model read back from storage) onto the ones just assigned.
    """

    if _collection_name_taken(conn, library_id, collection.name):
        raise DuplicateNameError(
            f"Collection name '{collection.name}' already used in library {library_id}"
        )
    cur = conn.execute(
        "INSERT INTO collection (name, title, author) VALUES (?, ?, ?)",
        (collection.name, collection.title, collection.author),
    )
    collection.id = cur.lastrowid
    insert_relation(conn, LIBRARY_COLLECTION.path, (library_id, collection.id))

    for book in collection.books:
        insert_collection_book(conn, library_id, collection.id, book)

    referenced = {book for book in collection.books if isinstance(book, int)}
    for content in collection.contents:
        book_id = content.book_id
        if book_id is not None and book_ids:
            book_id = book_ids.get(book_id, book_id)
        add_content(
            conn,
            content,
            library_id=library_id,
            collection_id=collection.id,
            book_id=book_id if book_id in referenced else None,
        )

    logger.debug(
        f"Inserted collection {collection.id} ({collection.name!r}) into library {library_id}"
    )
    return collection.id


def insert_hierarchy(conn: sqlite3.Connection, library: Library) -> None:
    """Insert the books, collections and contents of a persisted library.

    Books that already carry an id (a model read back from storage) get a new
    one; collection references to the old id follow the book.
    """

    new_ids: Dict[int, int] = {}
    for book in library.books:
        old_id = book.id
        new_id = insert_library_book(conn, library.id, book)
        if old_id is not None:
            new_ids[old_id] = new_id
    for collection in library.collections:
        collection.books = [
            new_ids.get(book, book) if isinstance(book, int) else book
            for book in collection.books
        ]
        insert_collection(conn, library.id, collection, new_ids)
    for content in library.contents:
        add_content(conn, content, library_id=library.id)


def insert_library(conn: sqlite3.Connection, library: Library) -> int:
    """Insert a library with its whole hierarchy."""

    if library_name_taken(conn, library.name):
        raise DuplicateNameError(f"Library name '{library.name}' already used")
    cur = conn.execute(
        "INSERT INTO library (name, title, author) VALUES (?, ?, ?)",
        (library.name, library.title, library.author),
    )
    library.id = cur.lastrowid
    insert_hierarchy(conn, library)
    logger.debug(f"Inserted library {library.id} ({library.name!r})")
    return library.id


def delete_library_hierarchy(conn: sqlite3.Connection, library_id: int) -> None:
    """Unlink everything a library owns; deeper relation rows cascade."""

    for table in _LIBRARY_ROOTS:
        conn.execute(f"DELETE FROM {table.name} WHERE library_id = ?", (library_id,))


def _owner_tables(entity: str) -> Iterable[str]:
    return [
        table.name
        for path, table in RELATION_TABLES.items()
        if path[0] == "library" and entity in path
    ]


def purge_orphans(conn: sqlite3.Connection) -> int:
    """Delete content, book and collection rows no library relates to."""

    removed = 0
    for entity in ("content", "book", "collection"):
        column = f"{entity}_id"
        owned = " UNION ".join(f"SELECT {column} FROM {name}" for name in _owner_tables(entity))
        cur = conn.execute(f"DELETE FROM {entity} WHERE id NOT IN ({owned})")
        removed += cur.rowcount or 0
    if removed:
        logger.debug(f"Purged {removed} orphaned rows")
    return removed


# Fields the insertion helpers write back onto the models they are given.
_ASSIGNED_FIELDS = {
    Library: ("id",),
    Collection: ("id", "books"),
    Book: ("id",),
    ContentBase: ("id", "author", "library_id", "collection_id", "book_id"),
}


def _assigned_models(models: Iterable[Any]) -> Iterator[BaseModel]:
    for model in models:
        if isinstance(model, Library):
            yield model
            yield from _assigned_models(model.books)
            yield from _assigned_models(model.collections)
            yield from _assigned_models(model.contents)
        elif isinstance(model, (Collection, Book)):
            yield model
            if isinstance(model, Collection):
                yield from _assigned_models(model.books)
            yield from _assigned_models(model.contents)
        elif isinstance(model, ContentBase):
            yield model


def _fields_of(model: BaseModel) -> Tuple[str, ...]:
    for cls, fields in _ASSIGNED_FIELDS.items():
        if isinstance(model, cls):
            return fields
    return ()


@contextmanager
def restore_on_failure(*models: Any) -> Iterator[None]:
    """Put back ids and linkage written onto ``models`` if the block raises.

    Wrap a transaction with it so that a rolled-back insert leaves the
    caller's models exactly as they were.
    """

    saved: List[Tuple[BaseModel, Dict[str, Any]]] = [
        (model, {name: _copy(getattr(model, name)) for name in _fields_of(model)})
        for model in _assigned_models(models)
    ]
    try:
        yield
    except BaseException:
        for model, values in saved:
            for name, value in values.items():
                setattr(model, name, value)
        raise


def _copy(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value
