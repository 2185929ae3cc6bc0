import pytest
from pydantic import ValidationError

from arm5library.models import (
    Book,
    BookType,
    Collection,
    CommentaryContent,
    ContentType,
    LabtextContent,
    Library,
    Reference,
    SummaContent,
    TractatusContent,
    parse_content,
)


def test_library_members_default_to_empty_lists():
    lib = Library(name="Durenmar")
    assert lib.books == []
    assert lib.collections == []
    assert lib.contents == []
    assert lib.id is None


def test_library_from_untyped_model():
    lib = Library.model_validate(
        {
            "name": "Durenmar",
            "books": [{"name": "Liber", "type": "Florilegum"}],
            "collections": [{"name": "Shelf", "books": [3, {"name": "Other"}]}],
        }
    )
    assert lib.contents == []
    assert lib.books[0].type is BookType.FLORILEGUM
    assert lib.books[0].contents == []
    assert lib.collections[0].books[0] == 3
    assert isinstance(lib.collections[0].books[1], Book)
    assert lib.collections[0].contents == []


def test_display_title_defaults_to_name():
    book = Book(name="Liber")
    assert book.display_title == "Liber"
    book.title = "Liber de Vim"
    assert book.display_title == "Liber de Vim"
    assert Collection(name="Shelf").display_title == "Shelf"


def test_parse_content_picks_variant_by_type():
    c = parse_content(
        {"type": "Summa", "name": "S", "target_type": "Art", "target": "Ignem", "cap_level": 10}
    )
    assert isinstance(c, SummaContent)
    assert c.quality is None
    assert c.content_type is ContentType.SUMMA

    c = parse_content({"type": "Commentary", "name": "C", "source_name": "S"})
    assert isinstance(c, CommentaryContent)

    c = parse_content({"type": "Laboratory Text", "name": "L", "spell": {"name": "Pilum"}})
    assert isinstance(c, LabtextContent)
    assert c.spell == Reference(name="Pilum")
    assert c.content_type is ContentType.LABTEXT


def test_parse_content_rejects_unknown_type():
    with pytest.raises(ValidationError):
        parse_content({"type": "Grimoire", "name": "G"})


def test_tractatus_requires_quality():
    with pytest.raises(ValidationError):
        TractatusContent(name="T", target_type="Art", target="Vim")


def test_labtext_needs_exactly_one_of_item_or_spell():
    with pytest.raises(ValidationError):
        LabtextContent(name="L")
    with pytest.raises(ValidationError):
        LabtextContent(name="L", item="Ring", effect="Warmth", spell="Pilum")
    with pytest.raises(ValidationError):
        LabtextContent(name="L", item="Ring")


def test_details_exclude_common_fields():
    c = TractatusContent(
        name="T", target_type="Art", target="Vim", quality=8, author="Bonisagus", library_id=1
    )
    assert c.details() == {"target_type": "Art", "target": "Vim", "quality": 8}


def test_empty_name_is_rejected():
    with pytest.raises(ValidationError):
        Library(name="")
