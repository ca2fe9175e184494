"""
Repository-style query methods over the catalog collections.

Documents are converted to and from the entity models by hand so the
stored field names stay visible in one place.
"""

from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, ReturnDocument

from catalog.models import Book, Genre, User

logger = structlog.get_logger(__name__)


def _to_datetime(value: date) -> datetime:
    """BSON has no date type; dates are stored as midnight datetimes."""
    return datetime.combine(value, time.min)


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _document_to_user(doc: Dict[str, Any]) -> User:
    return User(
        id=doc["_id"],
        username=doc["username"],
        email=doc["email"],
        password=doc["password"],
    )


def _document_to_genre(doc: Dict[str, Any]) -> Genre:
    return Genre(id=doc["_id"], name=doc["name"], user_id=doc["user_id"])


def _document_to_book(doc: Dict[str, Any]) -> Book:
    return Book(
        isbn=doc["isbn"],
        title=doc["title"],
        genre_id=doc["genre_id"],
        published_date=_to_date(doc["published_date"]),
        synopsis=doc["synopsis"],
        created_at=doc["created_at"],
        user_id=doc["user_id"],
        cover_image_path=doc.get("cover_image_path"),
    )


def _book_to_document(book: Book) -> Dict[str, Any]:
    return {
        "isbn": book.isbn,
        "title": book.title,
        "genre_id": book.genre_id,
        "published_date": _to_datetime(book.published_date),
        "synopsis": book.synopsis,
        "created_at": book.created_at,
        "user_id": book.user_id,
        "cover_image_path": book.cover_image_path,
    }


class UserRepository:
    """Queries over the ``users`` collection."""

    def __init__(self, collection: AsyncIOMotorCollection, manager):
        self.collection = collection
        self.manager = manager

    async def insert(self, username: str, email: str, password_hash: str) -> User:
        user_id = await self.manager.next_sequence("users")
        await self.collection.insert_one({
            "_id": user_id,
            "username": username,
            "email": email,
            "password": password_hash,
        })
        logger.debug("Inserted user", user_id=user_id)
        return User(id=user_id, username=username, email=email, password=password_hash)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        doc = await self.collection.find_one({"_id": user_id})
        return _document_to_user(doc) if doc else None

    async def find_by_email(self, email: str) -> Optional[User]:
        doc = await self.collection.find_one({"email": email.lower()})
        return _document_to_user(doc) if doc else None

    async def exists_by_email(self, email: str) -> bool:
        return await self.collection.count_documents({"email": email.lower()}, limit=1) > 0

    async def exists_by_username(self, username: str) -> bool:
        return await self.collection.count_documents({"username": username}, limit=1) > 0


class GenreRepository:
    """Queries over the ``genres`` collection. Names compare case-insensitively."""

    def __init__(self, collection: AsyncIOMotorCollection, manager):
        self.collection = collection
        self.manager = manager

    async def insert(self, name: str, user_id: int) -> Genre:
        genre_id = await self.manager.next_sequence("genres")
        await self.collection.insert_one({
            "_id": genre_id,
            "name": name,
            "name_lower": name.lower(),
            "user_id": user_id,
        })
        logger.debug("Inserted genre", genre_id=genre_id, user_id=user_id)
        return Genre(id=genre_id, name=name, user_id=user_id)

    async def find_by_id_and_user_id(self, genre_id: int, user_id: int) -> Optional[Genre]:
        doc = await self.collection.find_one({"_id": genre_id, "user_id": user_id})
        return _document_to_genre(doc) if doc else None

    async def find_by_ids(self, genre_ids: Iterable[int]) -> Dict[int, Genre]:
        """Load several genres at once, keyed by id."""
        ids = list(set(genre_ids))
        if not ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": ids}})
        docs = await cursor.to_list(length=len(ids))
        return {doc["_id"]: _document_to_genre(doc) for doc in docs}

    async def exists_by_name_ignore_case_and_user_id(self, name: str, user_id: int) -> bool:
        query = {"name_lower": name.lower(), "user_id": user_id}
        return await self.collection.count_documents(query, limit=1) > 0

    async def find_by_user_id(self, user_id: int) -> List[Genre]:
        cursor = self.collection.find({"user_id": user_id}).sort("name_lower", ASCENDING)
        return [_document_to_genre(doc) async for doc in cursor]

    async def delete(self, genre_id: int, user_id: int) -> bool:
        result = await self.collection.delete_one({"_id": genre_id, "user_id": user_id})
        return result.deleted_count > 0


class BookRepository:
    """Queries over the ``books`` collection, always scoped by owner except for ISBN checks."""

    def __init__(self, collection: AsyncIOMotorCollection, manager):
        self.collection = collection
        self.manager = manager

    async def insert(self, book: Book) -> Book:
        await self.collection.insert_one(_book_to_document(book))
        logger.debug("Inserted book", isbn=book.isbn, user_id=book.user_id)
        return book

    async def exists_by_isbn(self, isbn: str) -> bool:
        return await self.collection.count_documents({"isbn": isbn}, limit=1) > 0

    async def exists_by_isbn_and_user_id(self, isbn: str, user_id: int) -> bool:
        return await self.collection.count_documents({"isbn": isbn, "user_id": user_id}, limit=1) > 0

    async def find_by_isbn_and_user_id(self, isbn: str, user_id: int) -> Optional[Book]:
        doc = await self.collection.find_one({"isbn": isbn, "user_id": user_id})
        return _document_to_book(doc) if doc else None

    async def find_page_by_user_id(self, user_id: int, page: int, size: int) -> Tuple[List[Book], int]:
        return await self._find_page({"user_id": user_id}, page, size)

    async def find_page_by_genre_and_user_id(
        self,
        genre_id: int,
        user_id: int,
        page: int,
        size: int
    ) -> Tuple[List[Book], int]:
        return await self._find_page({"user_id": user_id, "genre_id": genre_id}, page, size)

    async def _find_page(self, query: Dict[str, Any], page: int, size: int) -> Tuple[List[Book], int]:
        """
        Fetch one zero-based page ordered by title, then ISBN.

        Returns:
            The page's books and the total number of matching books
        """
        try:
            total = await self.collection.count_documents(query)
            cursor = (
                self.collection.find(query)
                .sort([("title", ASCENDING), ("isbn", ASCENDING)])
                .skip(page * size)
                .limit(size)
            )
            docs = await cursor.to_list(length=size)
            return [_document_to_book(doc) for doc in docs], total

        except Exception as e:
            logger.error("Failed to page books", query=query, page=page, size=size, error=str(e))
            raise

    async def update(self, isbn: str, user_id: int, fields: Dict[str, Any]) -> Optional[Book]:
        """
        Overwrite the given fields of one book.

        ``created_at`` is never part of the update.

        Returns:
            The updated book, or None if it does not exist for that owner
        """
        changes = dict(fields)
        changes.pop("created_at", None)
        if isinstance(changes.get("published_date"), date):
            changes["published_date"] = _to_datetime(changes["published_date"])

        if not changes:
            return await self.find_by_isbn_and_user_id(isbn, user_id)

        doc = await self.collection.find_one_and_update(
            {"isbn": isbn, "user_id": user_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return _document_to_book(doc) if doc else None

    async def delete_by_isbn_and_user_id(self, isbn: str, user_id: int) -> bool:
        result = await self.collection.delete_one({"isbn": isbn, "user_id": user_id})
        return result.deleted_count > 0

    async def find_isbns_by_genre(self, genre_id: int, user_id: int) -> List[str]:
        cursor = self.collection.find({"genre_id": genre_id, "user_id": user_id}, {"isbn": 1})
        return [doc["isbn"] async for doc in cursor]

    async def delete_by_genre(self, genre_id: int, user_id: int) -> int:
        result = await self.collection.delete_many({"genre_id": genre_id, "user_id": user_id})
        return result.deleted_count
