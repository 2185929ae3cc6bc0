"""
=============================================================
Models
=============================================================
The library data model.

- Library -> Book -> Content            (books of the library)
- Library -> Collection -> Book/Content (collections group books and contents)
- Library -> Content                    (every content belongs to a library)

Conventions:
- `id` is assigned by storage on first write; an entity without an id has
  never been persisted.
- Names are unique within the parent scope: libraries globally, books and
  collections within their library.
- Contents are tagged variants discriminated by `type`.
- A collection holds books by value (`Book`) or by reference to a book id of
  the same library (`int`).
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class BookType(str, Enum):
    """The book types."""

    TRACTATUS = "Tractatus"
    SUMMA = "Summa"
    COMMENTARY = "Commentary"
    FLORILEGUM = "Florilegum"
    LABTEXTS = "Labtexts"


class ContentType(str, Enum):
    """The book content types."""

    TRACTATUS = "Tractatus"
    SUMMA = "Summa"
    COMMENTARY = "Commentary"
    LABTEXT = "Laboratory Text"


class Reference(BaseModel):
    """A reference to a persisted record (spell, item, ...)."""

    ref_id: Optional[int] = None
    name: str = Field(..., min_length=1)
    title: Optional[str] = None


RefOrName = Union[str, Reference]


class ContentBase(BaseModel):
    """Properties common to every book content."""

    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    title: Optional[str] = None
    author: Optional[str] = None

    # Linkage, filled in by storage.
    library_id: Optional[int] = None
    collection_id: Optional[int] = None
    book_id: Optional[int] = None

    @property
    def display_title(self) -> str:
        return self.title or self.name

    @property
    def content_type(self) -> ContentType:
        return ContentType(self.type)

    def details(self) -> Dict[str, Any]:
        """The type-specific payload, JSON-serializable."""
        return self.model_dump(mode="json", exclude=set(COMMON_CONTENT_FIELDS))


class TractatusContent(ContentBase):
    type: Literal["Tractatus"] = "Tractatus"
    target_type: str
    target: str
    quality: int = Field(..., ge=0)


class SummaContent(ContentBase):
    type: Literal["Summa"] = "Summa"
    target_type: str
    target: str
    quality: Optional[int] = Field(None, ge=0)
    cap_level: Optional[int] = Field(None, ge=0)


class CommentaryContent(ContentBase):
    type: Literal["Commentary"] = "Commentary"
    source_id: Optional[int] = None
    source_name: str


class LabtextContent(ContentBase):
    """An item enchantment (item, activation, effect) or an invented spell."""

    type: Literal["Laboratory Text"] = "Laboratory Text"
    item: Optional[RefOrName] = None
    activation: Optional[str] = None
    effect: Optional[RefOrName] = None
    spell: Optional[RefOrName] = None

    @model_validator(mode="after")
    def _item_or_spell(self) -> "LabtextContent":
        if (self.item is None) == (self.spell is None):
            raise ValueError("a laboratory text has either an item or a spell")
        if self.item is not None and self.effect is None:
            raise ValueError("an item laboratory text requires an effect")
        return self


Content = Annotated[
    Union[TractatusContent, SummaContent, CommentaryContent, LabtextContent],
    Field(discriminator="type"),
]

COMMON_CONTENT_FIELDS = tuple(ContentBase.model_fields) + ("type",)

_content_adapter: TypeAdapter = TypeAdapter(Content)


def parse_content(data: Mapping[str, Any]) -> ContentBase:
    """Validate an untyped mapping into its content variant."""
    return _content_adapter.validate_python(dict(data))


class Book(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    type: BookType = BookType.TRACTATUS
    title: Optional[str] = None
    author: Optional[str] = None
    contents: List[Content] = Field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title or self.name


class Collection(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    title: Optional[str] = None
    author: Optional[str] = None
    # Books by value, or ids of books of the same library.
    books: List[Union[Book, int]] = Field(default_factory=list)
    contents: List[Content] = Field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title or self.name


class Library(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    title: Optional[str] = None
    author: Optional[str] = None
    books: List[Book] = Field(default_factory=list)
    collections: List[Collection] = Field(default_factory=list)
    contents: List[Content] = Field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title or self.name
