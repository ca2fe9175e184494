"""
Pydantic models for the entities stored in MongoDB.
Users, genres and books as the services see them, plus small value objects.
"""

from datetime import date, datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """Registered account. ``password`` always holds the hash."""
    id: int = Field(..., ge=1, description="Surrogate user id")
    username: str = Field(..., description="Unique display name")
    email: str = Field(..., description="Unique, lower-cased login email")
    password: str = Field(..., description="Password hash")


class Genre(BaseModel):
    """Genre owned by one user."""
    id: int = Field(..., ge=1, description="Surrogate genre id")
    name: str = Field(..., description="Genre name as entered")
    user_id: int = Field(..., description="Owning user id")


class Book(BaseModel):
    """Book owned by one user and filed under one of that user's genres."""
    isbn: str = Field(..., description="Catalog identifier")
    title: str = Field(..., description="Book title")
    genre_id: int = Field(..., description="Genre id")
    published_date: date = Field(..., description="Publication date")
    synopsis: str = Field(..., description="Short synopsis")
    created_at: datetime = Field(..., description="Creation timestamp")
    user_id: int = Field(..., description="Owning user id")
    cover_image_path: Optional[str] = Field(None, description="Cover path relative to the upload directory")


class AuthenticatedUser(BaseModel):
    """Identity bound to a request once its bearer token has been validated."""
    id: int
    email: str
    username: str


class CoverImage(BaseModel):
    """Cover image file resolved for streaming."""
    path: Path
    content_type: str
    filename: str
