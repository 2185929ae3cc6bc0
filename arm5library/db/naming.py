"""Table and column names of the relation tables.

Relation tables are named after their join path: the first entity as is,
the following ones capitalized (``library, collection, book`` ->
``libraryCollectionBook``). Each path member contributes one ``<entity>_id``
column. The seven known paths are resolved once, at import.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from arm5library.db.error_utils import SchemaError

ENTITIES: Tuple[str, ...] = ("library", "collection", "book", "content")

# Dependency order: every prefix precedes the paths extending it.
JOIN_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("library", "content"),
    ("library", "book"),
    ("library", "book", "content"),
    ("library", "collection"),
    ("library", "collection", "content"),
    ("library", "collection", "book"),
    ("library", "collection", "book", "content"),
)


def _uc_first(name: str) -> str:
    return name[:1].upper() + name[1:]


def relation_table_name(path: Sequence[str]) -> str:
    return "".join(
        segment if index == 0 else _uc_first(segment)
        for index, segment in enumerate(path)
    )


def key_column(entity: str) -> str:
    return f"{entity}_id"


@dataclass(frozen=True)
class RelationTable:
    """A relation table derived from a join path."""

    path: Tuple[str, ...]
    name: str
    columns: Tuple[str, ...]
    parent: Optional[Tuple[str, ...]]

    @property
    def parent_columns(self) -> Tuple[str, ...]:
        return self.columns[:-1] if self.parent else ()


def _build(path: Tuple[str, ...]) -> RelationTable:
    for segment in path:
        if segment not in ENTITIES:
            raise SchemaError(f"Unknown entity '{segment}' in join path {path}")
    return RelationTable(
        path=path,
        name=relation_table_name(path),
        columns=tuple(key_column(segment) for segment in path),
        parent=path[:-1] if len(path) > 2 else None,
    )


RELATION_TABLES: Dict[Tuple[str, ...], RelationTable] = {
    path: _build(path) for path in JOIN_PATHS
}


def relation_table(path: Sequence[str]) -> RelationTable:
    """Look up the relation table of a known join path."""
    try:
        return RELATION_TABLES[tuple(path)]
    except KeyError:
        raise SchemaError(f"No relation table for join path {tuple(path)}") from None


LIBRARY_CONTENT = relation_table(("library", "content"))
LIBRARY_BOOK = relation_table(("library", "book"))
LIBRARY_BOOK_CONTENT = relation_table(("library", "book", "content"))
LIBRARY_COLLECTION = relation_table(("library", "collection"))
LIBRARY_COLLECTION_CONTENT = relation_table(("library", "collection", "content"))
LIBRARY_COLLECTION_BOOK = relation_table(("library", "collection", "book"))
LIBRARY_COLLECTION_BOOK_CONTENT = relation_table(
    ("library", "collection", "book", "content")
)
