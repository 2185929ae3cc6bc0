import pytest

from arm5library.db.error_utils import SchemaError
from arm5library.db.naming import (
    JOIN_PATHS,
    RELATION_TABLES,
    key_column,
    relation_table,
    relation_table_name,
)


def test_relation_table_name_is_camel_concatenation():
    assert relation_table_name(["library", "content"]) == "libraryContent"
    assert relation_table_name(["library", "collection", "book"]) == "libraryCollectionBook"


def test_key_column():
    assert key_column("collection") == "collection_id"


def test_all_seven_paths_are_known():
    assert len(JOIN_PATHS) == 7
    assert set(RELATION_TABLES) == set(JOIN_PATHS)
    assert {t.name for t in RELATION_TABLES.values()} == {
        "libraryContent",
        "libraryBook",
        "libraryBookContent",
        "libraryCollection",
        "libraryCollectionContent",
        "libraryCollectionBook",
        "libraryCollectionBookContent",
    }


def test_prefixes_precede_their_extensions():
    seen = set()
    for path in JOIN_PATHS:
        table = RELATION_TABLES[path]
        if table.parent is not None:
            assert table.parent in seen
        seen.add(path)


def test_deep_table_columns_and_parent():
    table = relation_table(("library", "collection", "book", "content"))
    assert table.columns == ("library_id", "collection_id", "book_id", "content_id")
    assert table.parent == ("library", "collection", "book")
    assert table.parent_columns == ("library_id", "collection_id", "book_id")

    shallow = relation_table(["library", "book"])
    assert shallow.parent is None
    assert shallow.parent_columns == ()


def test_unknown_path_raises():
    with pytest.raises(SchemaError):
        relation_table(("book", "library"))
