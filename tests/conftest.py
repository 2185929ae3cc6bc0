import pytest

from arm5library.db.storage import LibraryStorage
from arm5library.models import (
    Book,
    Collection,
    CommentaryContent,
    LabtextContent,
    Library,
    Reference,
    SummaContent,
    TractatusContent,
)


@pytest.fixture
def row_count(storage):
    def count(table: str) -> int:
        return storage.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    return count


@pytest.fixture
def storage(tmp_path):
    s = LibraryStorage(tmp_path / "arm5library.db")
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def tractatus():
    def make(name="Of the Vim Arts", quality=7):
        return TractatusContent(
            name=name, target_type="Art", target="Vim", quality=quality
        )

    return make


@pytest.fixture
def make_library():
    """Build a fresh, unpersisted library with every kind of member."""

    def make(name="Durenmar"):
        return Library(
            name=name,
            title=f"The library of {name}",
            books=[
                Book(
                    name="Summa Creo",
                    type="Summa",
                    contents=[
                        SummaContent(
                            name="Creo Summa",
                            target_type="Art",
                            target="Creo",
                            quality=11,
                            cap_level=15,
                        )
                    ],
                )
            ],
            collections=[
                Collection(
                    name="Verditius notes",
                    books=[
                        Book(
                            name="Labtexts of Verditius",
                            type="Labtexts",
                            contents=[
                                LabtextContent(
                                    name="Ring of warming",
                                    item=Reference(name="Ring"),
                                    activation="Touch",
                                    effect="Heat the wearer",
                                ),
                                LabtextContent(name="Pilum of Fire", spell="Pilum of Fire"),
                            ],
                        )
                    ],
                    contents=[
                        CommentaryContent(name="On the Creo Summa", source_name="Creo Summa")
                    ],
                )
            ],
            contents=[
                TractatusContent(
                    name="Loose tractatus",
                    target_type="Ability",
                    target="Magic Theory",
                    quality=6,
                    author="Bonisagus",
                )
            ],
        )

    return make
