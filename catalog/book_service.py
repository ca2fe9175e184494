"""
Book catalog operations scoped to the owning user.

Every lookup filters by ``user_id``; a book or genre belonging to somebody
else is reported as not found. Cover images are validated here and handed
to ``ImageStorage`` for the filesystem work.
"""

import mimetypes
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import List

import structlog
from pymongo.errors import DuplicateKeyError

from catalog.database import MongoDBManager
from catalog.exceptions import (
    AlreadyExistsError, ForbiddenError, NotFoundError, ValidationFailedError
)
from catalog.image_storage import ImageStorage
from catalog.models import Book, CoverImage, Genre, User
from catalog.schemas import (
    BookPage, BookRegisterRequest, BookUpdateRequest, BookView, to_book_view
)
from utilities.config import CatalogConfig

logger = structlog.get_logger(__name__)


def _now_millis() -> datetime:
    """Current UTC time truncated to the millisecond precision BSON stores."""
    now = datetime.utcnow()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class BookService:
    """Registers, updates, lists and deletes books and manages their covers."""

    def __init__(self, db_manager: MongoDBManager, image_storage: ImageStorage, config: CatalogConfig):
        self.users = db_manager.users
        self.genres = db_manager.genres
        self.books = db_manager.books
        self.image_storage = image_storage
        self.config = config

    async def register(self, request: BookRegisterRequest) -> BookView:
        """
        Register a book for a user.

        Raises:
            AlreadyExistsError: If the ISBN is taken under the configured uniqueness policy
            NotFoundError: If the genre or the user does not exist
            ValidationFailedError: If the published date lies in the future
        """
        if await self._isbn_taken(request.isbn, request.user_id):
            logger.warning("Book already exists", isbn=request.isbn, user_id=request.user_id)
            raise AlreadyExistsError("A book with that ISBN already exists")

        user = await self._get_user_or_raise(request.user_id)
        genre = await self._get_genre_or_raise(request.genre_id, user.id)
        self._check_published_date(request.published_date)

        book = Book(
            isbn=request.isbn,
            title=request.title,
            genre_id=genre.id,
            published_date=request.published_date,
            synopsis=request.synopsis,
            created_at=_now_millis(),
            user_id=user.id,
        )
        try:
            saved = await self.books.insert(book)
        except DuplicateKeyError as e:
            raise AlreadyExistsError("A book with that ISBN already exists") from e

        logger.info("Book registered", isbn=saved.isbn, user_id=user.id, genre_id=genre.id)
        return to_book_view(saved, genre)

    async def update(self, request: BookUpdateRequest) -> BookView:
        """
        Apply a partial update; fields left as None keep their stored value.

        Raises:
            NotFoundError: If the book does not exist for that owner, or the new genre is unknown
        """
        book = await self.books.find_by_isbn_and_user_id(request.isbn, request.user_id)
        if book is None:
            raise NotFoundError("Book not found for this user")

        changes = {}
        if request.title is not None:
            changes["title"] = request.title
        if request.published_date is not None:
            self._check_published_date(request.published_date)
            changes["published_date"] = request.published_date
        if request.synopsis is not None:
            changes["synopsis"] = request.synopsis
        if request.genre_id is not None:
            genre = await self._get_genre_or_raise(request.genre_id, request.user_id)
            changes["genre_id"] = genre.id

        updated = await self.books.update(request.isbn, request.user_id, changes)
        if updated is None:
            raise NotFoundError("Book not found for this user")

        logger.info("Book updated", isbn=updated.isbn, user_id=updated.user_id, fields=sorted(changes))
        return await self._to_view(updated)

    async def delete(self, isbn: str, user_id: int) -> None:
        """
        Delete a book and its cover.

        Raises:
            NotFoundError: If the user is unknown or the book is not theirs
        """
        await self._get_user_or_raise(user_id)
        if not await self.books.delete_by_isbn_and_user_id(isbn, user_id):
            raise NotFoundError("Book not found for this user")

        self.image_storage.delete_cover_images(isbn, user_id)
        logger.info("Book deleted", isbn=isbn, user_id=user_id)

    async def find_paginated(self, user_id: int, page: int, size: int) -> BookPage:
        """Zero-based page of the user's books ordered by title."""
        await self._get_user_or_raise(user_id)
        books, total = await self.books.find_page_by_user_id(user_id, page, size)
        return BookPage.build(await self._to_views(books), page, size, total)

    async def find_by_genre_and_user(self, genre_id: int, user_id: int, page: int, size: int) -> BookPage:
        """
        Zero-based page of the user's books in one genre.

        A genre without books yields an empty page, not an error.

        Raises:
            NotFoundError: If the user or the genre does not exist for that owner
        """
        await self._get_user_or_raise(user_id)
        genre = await self._get_genre_or_raise(genre_id, user_id)
        books, total = await self.books.find_page_by_genre_and_user_id(genre.id, user_id, page, size)
        views = [to_book_view(book, genre) for book in books]
        return BookPage.build(views, page, size, total)

    async def find_by_isbn_and_user(self, isbn: str, user_id: int) -> BookView:
        await self._get_user_or_raise(user_id)
        book = await self.books.find_by_isbn_and_user_id(isbn, user_id)
        if book is None:
            raise NotFoundError("Book not found for this user")
        return await self._to_view(book)

    async def update_cover_image(
        self,
        isbn: str,
        user_id: int,
        content: bytes,
        content_type: str,
        size: int
    ) -> BookView:
        """
        Validate and store a new cover, then record its path on the book.

        Nothing is written when validation fails.

        Raises:
            NotFoundError: If the book does not exist for that owner
            ValidationFailedError: If the file is empty, not JPEG/PNG, or too large
            StorageError: If the file cannot be written
        """
        book = await self.books.find_by_isbn_and_user_id(isbn, user_id)
        if book is None:
            raise NotFoundError("Book not found for this user")

        if not content or size == 0:
            raise ValidationFailedError("File is empty")

        if (content_type or "").lower() not in self.config.allowed_cover_types:
            raise ValidationFailedError("Only JPG or PNG images are allowed")

        if max(size, len(content)) > self.config.max_cover_size_bytes:
            limit_mb = self.config.max_cover_size_bytes // (1024 * 1024)
            raise ValidationFailedError(f"Maximum allowed file size is {limit_mb}MB")

        image_path = self.image_storage.store_cover_image(content, content_type, isbn, user_id)
        updated = await self.books.update(isbn, user_id, {"cover_image_path": image_path})
        if updated is None:
            raise NotFoundError("Book not found for this user")

        logger.info("Cover image updated", isbn=isbn, user_id=user_id, path=image_path)
        return await self._to_view(updated)

    async def get_cover_image(self, user_id: int, path: str) -> CoverImage:
        """
        Resolve a stored cover for streaming after checking ownership.

        ``path`` is relative to the upload directory: ``{isbn}/{file}``, or
        ``{isbn}/{user_id}/{file}`` when covers are kept per owner.

        Raises:
            ValidationFailedError: If the path is malformed or tries to leave the upload directory
            NotFoundError: If the user is unknown or the file is missing
            ForbiddenError: If the ISBN segment is not one of the user's books, or the
                path lies outside that book's cover directory
        """
        pure = PurePosixPath(path)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValidationFailedError("Invalid cover path")

        parts = [part for part in pure.parts if part not in ("", ".")]
        if len(parts) < 2:
            raise ValidationFailedError("Invalid cover path")

        isbn = parts[0]
        user = await self._get_user_or_raise(user_id)

        if await self.books.find_by_isbn_and_user_id(isbn, user.id) is None:
            logger.warning("Cover access denied", isbn=isbn, user_id=user.id)
            raise ForbiddenError("Not authorized to view this image")

        if tuple(parts[:-1]) != self.image_storage.cover_dir_parts(isbn, user.id):
            logger.warning("Cover access denied", isbn=isbn, user_id=user.id, path=path)
            raise ForbiddenError("Not authorized to view this image")

        image_path = self.image_storage.resolve("/".join(parts))
        if not image_path.is_file():
            raise NotFoundError("Image not found")

        content_type, _ = mimetypes.guess_type(image_path.name)
        return CoverImage(
            path=image_path,
            content_type=content_type or "application/octet-stream",
            filename=image_path.name,
        )

    async def _isbn_taken(self, isbn: str, user_id: int) -> bool:
        if self.config.isbn_unique_per_user():
            return await self.books.exists_by_isbn_and_user_id(isbn, user_id)
        return await self.books.exists_by_isbn(isbn)

    async def _get_user_or_raise(self, user_id: int) -> User:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _get_genre_or_raise(self, genre_id: int, user_id: int) -> Genre:
        genre = await self.genres.find_by_id_and_user_id(genre_id, user_id)
        if genre is None:
            raise NotFoundError("Genre not found")
        return genre

    @staticmethod
    def _check_published_date(published_date: date) -> None:
        if published_date > date.today():
            raise ValidationFailedError("Published date cannot be in the future")

    async def _to_view(self, book: Book) -> BookView:
        genre = await self._get_genre_or_raise(book.genre_id, book.user_id)
        return to_book_view(book, genre)

    async def _to_views(self, books: List[Book]) -> List[BookView]:
        genres = await self.genres.find_by_ids(book.genre_id for book in books)
        return [to_book_view(book, genres[book.genre_id]) for book in books]
