"""
Genre registration, listing and cascading deletion.
"""

from typing import List

import structlog
from pymongo.errors import DuplicateKeyError

from catalog.database import MongoDBManager
from catalog.exceptions import AlreadyExistsError, NotFoundError
from catalog.image_storage import ImageStorage
from catalog.schemas import GenreView, to_genre_view

logger = structlog.get_logger(__name__)


class GenreService:
    """Manages the genres each user files books under."""

    def __init__(self, db_manager: MongoDBManager, image_storage: ImageStorage):
        self.users = db_manager.users
        self.genres = db_manager.genres
        self.books = db_manager.books
        self.image_storage = image_storage

    async def register(self, name: str, user_id: int) -> GenreView:
        """
        Create a genre for a user.

        Raises:
            NotFoundError: If the user does not exist
            AlreadyExistsError: If the user already has a genre with that name, ignoring case
        """
        if await self.users.find_by_id(user_id) is None:
            raise NotFoundError("User not found")

        if await self.genres.exists_by_name_ignore_case_and_user_id(name, user_id):
            logger.warning("Genre already exists", name=name, user_id=user_id)
            raise AlreadyExistsError("A genre with that name already exists for this user")

        try:
            genre = await self.genres.insert(name, user_id)
        except DuplicateKeyError as e:
            raise AlreadyExistsError("A genre with that name already exists for this user") from e

        logger.info("Genre registered", genre_id=genre.id, user_id=user_id)
        return to_genre_view(genre)

    async def list_by_user(self, user_id: int) -> List[GenreView]:
        """All genres of a user ordered by name; empty for unknown users."""
        genres = await self.genres.find_by_user_id(user_id)
        return [to_genre_view(genre) for genre in genres]

    async def delete(self, genre_id: int, user_id: int) -> None:
        """
        Delete a genre together with its books and their covers.

        Books go first so no book is ever left pointing at a missing genre.

        Raises:
            NotFoundError: If the genre does not exist for that owner
        """
        genre = await self.genres.find_by_id_and_user_id(genre_id, user_id)
        if genre is None:
            raise NotFoundError("Genre not found")

        isbns = await self.books.find_isbns_by_genre(genre_id, user_id)
        deleted_books = await self.books.delete_by_genre(genre_id, user_id)
        for isbn in isbns:
            self.image_storage.delete_cover_images(isbn, user_id)

        await self.genres.delete(genre_id, user_id)
        logger.info("Genre deleted", genre_id=genre_id, user_id=user_id, deleted_books=deleted_books)
