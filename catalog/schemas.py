"""
Request and response schemas exchanged with API clients.

Field names travel as camelCase on the wire (``genreId``, ``publishedDate``)
and are snake_case in Python. Views are built from stored entities by the
explicit ``to_*_view`` functions at the bottom of the module.
"""

import math
import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from catalog.models import Book, Genre, User

ISBN_PATTERN = re.compile(r"^[0-9Xx-]+$")


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_text(value: Optional[str], label: str, min_length: int, max_length: int) -> Optional[str]:
    if value is None:
        return value
    if not value.strip():
        raise ValueError(f"{label} cannot be blank")
    if not min_length <= len(value) <= max_length:
        raise ValueError(f"{label} must be between {min_length} and {max_length} characters long")
    return value


def _require_isbn(value: str) -> str:
    value = _require_text(value.strip(), "ISBN", 10, 13)
    if not ISBN_PATTERN.match(value):
        raise ValueError("ISBN may only contain digits, hyphens and X")
    return value


def _require_past_or_present(value: Optional[date]) -> Optional[date]:
    if value is not None and value > date.today():
        raise ValueError("Published date cannot be in the future")
    return value


# Requests

class UserRegisterRequest(CamelModel):
    """Payload for ``POST /users/register``."""
    username: str
    email: EmailStr
    password: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        return _require_text(v, "Username", 2, 50)

    @field_validator('email', mode='before')
    @classmethod
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        """Emails compare case-insensitively."""
        return v.lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """At least six characters with one letter and one digit."""
        if not v or not v.strip():
            raise ValueError("Password cannot be blank")
        if len(v) < 6 or not any(c.isalpha() for c in v) or not any(c.isdigit() for c in v):
            raise ValueError(
                "Password must be at least 6 characters long and contain at least one letter and one number"
            )
        return v


class LoginRequest(CamelModel):
    """Payload for ``POST /auth/login``."""
    email: EmailStr
    password: str

    @field_validator('email', mode='before')
    @classmethod
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        """Emails compare case-insensitively."""
        return v.lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not v or not v.strip():
            raise ValueError("Password cannot be blank")
        return v


class GenreRegisterRequest(CamelModel):
    """Payload for ``POST /genres``. ``userId`` defaults to the caller."""
    name: str
    user_id: Optional[int] = Field(None, ge=1)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        return _require_text(v, "Genre name", 3, 30)


class BookRegisterRequest(CamelModel):
    """Payload for ``POST /books``."""
    isbn: str
    title: str
    genre_id: int = Field(..., ge=1)
    published_date: date
    synopsis: str
    user_id: int = Field(..., ge=1)

    @field_validator('isbn')
    @classmethod
    def validate_isbn(cls, v):
        return _require_isbn(v)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _require_text(v, "Title", 2, 100)

    @field_validator('synopsis')
    @classmethod
    def validate_synopsis(cls, v):
        return _require_text(v, "Synopsis", 10, 500)

    @field_validator('published_date')
    @classmethod
    def validate_published_date(cls, v):
        return _require_past_or_present(v)


class BookUpdateRequest(CamelModel):
    """
    Payload for ``PATCH /books`` and ``PUT /books``.

    Only ``isbn`` and ``userId`` are required; every other field left as
    null keeps its stored value.
    """
    isbn: str
    title: Optional[str] = None
    genre_id: Optional[int] = Field(None, ge=1)
    published_date: Optional[date] = None
    synopsis: Optional[str] = None
    user_id: int = Field(..., ge=1)

    @field_validator('isbn')
    @classmethod
    def validate_isbn(cls, v):
        return _require_isbn(v)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _require_text(v, "Title", 2, 100)

    @field_validator('synopsis')
    @classmethod
    def validate_synopsis(cls, v):
        return _require_text(v, "Synopsis", 10, 500)

    @field_validator('published_date')
    @classmethod
    def validate_published_date(cls, v):
        return _require_past_or_present(v)


# Responses

class LoginResponse(CamelModel):
    token: str


class UserView(CamelModel):
    id: int
    username: str
    email: str


class GenreView(CamelModel):
    id: int
    name: str


class BookView(CamelModel):
    isbn: str
    title: str
    genre: str
    genre_id: int
    published_date: date
    synopsis: str
    created_at: datetime
    cover_image_path: Optional[str] = None


class BookPage(CamelModel):
    """One page of books, shaped like a Spring Data ``Page``."""
    content: List[BookView]
    total_elements: int
    total_pages: int
    size: int
    number: int
    number_of_elements: int
    first: bool
    last: bool
    empty: bool

    @classmethod
    def build(cls, content: List[BookView], page: int, size: int, total: int) -> "BookPage":
        total_pages = math.ceil(total / size) if size else 0
        return cls(
            content=content,
            total_elements=total,
            total_pages=total_pages,
            size=size,
            number=page,
            number_of_elements=len(content),
            first=page == 0,
            last=page >= total_pages - 1,
            empty=not content,
        )


def to_user_view(user: User) -> UserView:
    return UserView(id=user.id, username=user.username, email=user.email)


def to_genre_view(genre: Genre) -> GenreView:
    return GenreView(id=genre.id, name=genre.name)


def to_book_view(book: Book, genre: Genre) -> BookView:
    return BookView(
        isbn=book.isbn,
        title=book.title,
        genre=genre.name,
        genre_id=genre.id,
        published_date=book.published_date,
        synopsis=book.synopsis,
        created_at=book.created_at,
        cover_image_path=book.cover_image_path,
    )
