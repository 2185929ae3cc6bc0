from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from arm5library.db.error_utils import DuplicateNameError, LibraryNotFoundError
from arm5library.db.naming import (
    LIBRARY_BOOK,
    LIBRARY_BOOK_CONTENT,
    LIBRARY_COLLECTION,
    LIBRARY_COLLECTION_BOOK,
    LIBRARY_COLLECTION_BOOK_CONTENT,
    LIBRARY_COLLECTION_CONTENT,
    LIBRARY_CONTENT,
)
from arm5library.db.persistence import (
    add_content,
    delete_library_hierarchy,
    insert_collection,
    insert_collection_book,
    insert_hierarchy,
    insert_library,
    insert_library_book,
    library_name_taken,
    purge_orphans,
    restore_on_failure,
)
from arm5library.db.storage import LibraryStorage
from arm5library.models import Book, Collection, ContentBase, Library, parse_content

LibraryKey = Union[int, str]

# `? IS NULL OR ...` lets one statement serve both all() and one().
_CONTENTS_SQL = f"""
    SELECT c.id, c.name, c.content_type, c.title, c.author, c.details_json,
           lc.library_id,
           lcc.collection_id,
           COALESCE(lcbc.book_id, lbc.book_id) AS book_id
    FROM {LIBRARY_CONTENT.name} lc
    JOIN content c ON c.id = lc.content_id
    LEFT JOIN {LIBRARY_BOOK_CONTENT.name} lbc
        ON lbc.library_id = lc.library_id AND lbc.content_id = c.id
    LEFT JOIN {LIBRARY_COLLECTION_CONTENT.name} lcc
        ON lcc.library_id = lc.library_id AND lcc.content_id = c.id
    LEFT JOIN {LIBRARY_COLLECTION_BOOK_CONTENT.name} lcbc
        ON lcbc.library_id = lc.library_id
        AND lcbc.collection_id = lcc.collection_id
        AND lcbc.content_id = c.id
    WHERE (:library_id IS NULL OR lc.library_id = :library_id)
    ORDER BY c.id
"""

_LIBRARY_BOOKS_SQL = f"""
    SELECT b.id, b.name, b.book_type, b.title, b.author, lb.library_id
    FROM {LIBRARY_BOOK.name} lb
    JOIN book b ON b.id = lb.book_id
    WHERE (:library_id IS NULL OR lb.library_id = :library_id)
    ORDER BY b.id
"""

# Collection books keep their insertion order (rowid of the relation row).
_COLLECTION_BOOKS_SQL = f"""
    SELECT b.id, b.name, b.book_type, b.title, b.author,
           lcb.library_id, lcb.collection_id,
           EXISTS (
               SELECT 1 FROM {LIBRARY_BOOK.name} lb
               WHERE lb.library_id = lcb.library_id AND lb.book_id = lcb.book_id
           ) AS is_reference
    FROM {LIBRARY_COLLECTION_BOOK.name} lcb
    JOIN book b ON b.id = lcb.book_id
    WHERE (:library_id IS NULL OR lcb.library_id = :library_id)
    ORDER BY lcb.rowid
"""

_COLLECTIONS_SQL = f"""
    SELECT c.id, c.name, c.title, c.author, lc.library_id
    FROM {LIBRARY_COLLECTION.name} lc
    JOIN collection c ON c.id = lc.collection_id
    WHERE (:library_id IS NULL OR lc.library_id = :library_id)
    ORDER BY c.id
"""


def _content_from_row(row: sqlite3.Row) -> ContentBase:
    data = json.loads(row["details_json"] or "{}")
    data.update(
        id=row["id"],
        type=row["content_type"],
        name=row["name"],
        title=row["title"],
        author=row["author"],
        library_id=row["library_id"],
        collection_id=row["collection_id"],
        book_id=row["book_id"],
    )
    return parse_content(data)


def _book_from_row(row: sqlite3.Row) -> Book:
    return Book(
        id=row["id"],
        name=row["name"],
        type=row["book_type"],
        title=row["title"],
        author=row["author"],
    )


def assemble_libraries(
    library_rows: List[sqlite3.Row],
    content_rows: List[sqlite3.Row],
    book_rows: Tuple[List[sqlite3.Row], List[sqlite3.Row]],
    collection_rows: List[sqlite3.Row],
) -> List[Library]:
    """Attach fetched rows to their owning library.

    A content lands in its deepest owner: a collection book held by value,
    the collection, a library book, or the library itself.
    """

    libraries: Dict[int, Library] = {
        row["id"]: Library(
            id=row["id"], name=row["name"], title=row["title"], author=row["author"]
        )
        for row in library_rows
    }

    collections: Dict[Tuple[int, int], Collection] = {}
    for row in collection_rows:
        library = libraries.get(row["library_id"])
        if library is None:
            continue
        collection = Collection(
            id=row["id"], name=row["name"], title=row["title"], author=row["author"]
        )
        collections[(library.id, collection.id)] = collection
        library.collections.append(collection)

    library_book_rows, collection_book_rows = book_rows
    library_books: Dict[Tuple[int, int], Book] = {}
    for row in library_book_rows:
        library = libraries.get(row["library_id"])
        if library is None:
            continue
        book = _book_from_row(row)
        library_books[(library.id, book.id)] = book
        library.books.append(book)

    collection_books: Dict[Tuple[int, int, int], Book] = {}
    for row in collection_book_rows:
        collection = collections.get((row["library_id"], row["collection_id"]))
        if collection is None:
            continue
        if row["is_reference"]:
            collection.books.append(row["id"])
            continue
        book = _book_from_row(row)
        collection_books[(row["library_id"], row["collection_id"], book.id)] = book
        collection.books.append(book)

    for row in content_rows:
        library = libraries.get(row["library_id"])
        if library is None:
            continue
        content = _content_from_row(row)
        lib_id, coll_id, book_id = library.id, content.collection_id, content.book_id
        if coll_id is not None and (lib_id, coll_id, book_id) in collection_books:
            collection_books[(lib_id, coll_id, book_id)].contents.append(content)
        elif coll_id is not None and (lib_id, coll_id) in collections:
            collections[(lib_id, coll_id)].contents.append(content)
        elif book_id is not None and (lib_id, book_id) in library_books:
            library_books[(lib_id, book_id)].contents.append(content)
        else:
            library.contents.append(content)

    return list(libraries.values())


def _fetch_libraries(
    conn: sqlite3.Connection, library_id: Optional[int]
) -> List[sqlite3.Row]:
    return conn.execute(
        """
        SELECT id, name, title, author FROM library
        WHERE (:library_id IS NULL OR id = :library_id)
        ORDER BY id
        """,
        {"library_id": library_id},
    ).fetchall()


def _fetch_contents(
    conn: sqlite3.Connection, library_id: Optional[int]
) -> List[sqlite3.Row]:
    return conn.execute(_CONTENTS_SQL, {"library_id": library_id}).fetchall()


def _fetch_books(
    conn: sqlite3.Connection, library_id: Optional[int]
) -> Tuple[List[sqlite3.Row], List[sqlite3.Row]]:
    params = {"library_id": library_id}
    return (
        conn.execute(_LIBRARY_BOOKS_SQL, params).fetchall(),
        conn.execute(_COLLECTION_BOOKS_SQL, params).fetchall(),
    )


def _fetch_collections(
    conn: sqlite3.Connection, library_id: Optional[int]
) -> List[sqlite3.Row]:
    return conn.execute(_COLLECTIONS_SQL, {"library_id": library_id}).fetchall()


def _library_id_by_name(conn: sqlite3.Connection, name: str) -> Optional[int]:
    row = conn.execute("SELECT id FROM library WHERE name = ?", (name,)).fetchone()
    return row["id"] if row else None


class LibraryDao:
    """Library data access over a LibraryStorage.

    Methods are coroutines. Reads run in worker threads; each write is one
    atomic transaction and failures raise typed errors from
    arm5library.db.error_utils.
    """

    def __init__(self, storage: LibraryStorage):
        self.storage = storage

    async def _load(self, library_id: Optional[int] = None) -> List[Library]:
        library_rows = await self.storage.run(_fetch_libraries, library_id)
        if not library_rows:
            return []

        # Independent fetches; gather fails as a whole if any of them fails.
        content_rows, book_rows, collection_rows = await asyncio.gather(
            self.storage.run(_fetch_contents, library_id),
            self.storage.run(_fetch_books, library_id),
            self.storage.run(_fetch_collections, library_id),
        )
        return assemble_libraries(library_rows, content_rows, book_rows, collection_rows)

    async def _resolve_id(self, key: LibraryKey) -> Optional[int]:
        if isinstance(key, str):
            return await self.storage.run(_library_id_by_name, key)
        return key

    async def all(self) -> List[Library]:
        return await self._load()

    async def one(self, key: LibraryKey) -> Optional[Library]:
        """Fetch one library by id, or by name when given a string."""
        library_id = await self._resolve_id(key)
        if library_id is None:
            return None
        found = await self._load(library_id)
        return found[0] if found else None

    async def create(self, library: Library) -> int:
        """Persist a new library with its whole hierarchy and return its id."""
        with restore_on_failure(library), self.storage.transaction() as conn:
            library_id = insert_library(conn, library)
        logger.info(f"Created library {library_id} ({library.name!r})")
        return library_id

    async def update(self, key: LibraryKey, library: Library) -> bool:
        """Replace a stored library.

        Returns False when the replacement equals the stored record, True when
        the record changed.
        """

        current = await self.one(key)
        if current is None:
            raise LibraryNotFoundError(f"Cannot update non-existing library {key!r}")
        if library is current or library == current:
            return False

        library_id = current.id
        with restore_on_failure(library), self.storage.transaction() as conn:
            if library_name_taken(conn, library.name, exclude_id=library_id):
                raise DuplicateNameError(f"Library name '{library.name}' already used")
            conn.execute(
                "UPDATE library SET name = ?, title = ?, author = ? WHERE id = ?",
                (library.name, library.title, library.author, library_id),
            )
            delete_library_hierarchy(conn, library_id)
            purge_orphans(conn)
            library.id = library_id
            insert_hierarchy(conn, library)
        logger.info(f"Updated library {library_id} ({library.name!r})")
        return True

    async def delete(self, key: LibraryKey) -> bool:
        """Delete a library and everything only it owned."""
        library_id = await self._resolve_id(key)
        if library_id is None:
            return False
        with self.storage.transaction() as conn:
            cur = conn.execute("DELETE FROM library WHERE id = ?", (library_id,))
            removed = bool(cur.rowcount)
            if removed:
                purge_orphans(conn)
        if removed:
            logger.info(f"Deleted library {library_id}")
        else:
            logger.warning(f"No library {library_id} to delete")
        return removed

    async def add_content(
        self,
        content: ContentBase,
        *,
        library_id: int,
        collection_id: Optional[int] = None,
        book_id: Optional[int] = None,
    ) -> int:
        """Insert a content under a library, optionally inside a collection and/or book."""
        with restore_on_failure(content), self.storage.transaction() as conn:
            return add_content(
                conn,
                content,
                library_id=library_id,
                collection_id=collection_id,
                book_id=book_id,
            )

    async def add_library_book(self, library_id: int, book: Book) -> int:
        with restore_on_failure(book), self.storage.transaction() as conn:
            return insert_library_book(conn, library_id, book)

    async def add_collection(self, library_id: int, collection: Collection) -> int:
        with restore_on_failure(collection), self.storage.transaction() as conn:
            return insert_collection(conn, library_id, collection)

    async def add_collection_book(
        self, library_id: int, collection_id: int, book: Union[Book, int]
    ) -> int:
        with restore_on_failure(book), self.storage.transaction() as conn:
            return insert_collection_book(conn, library_id, collection_id, book)
