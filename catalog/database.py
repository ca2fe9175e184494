"""
MongoDB connection management for the catalog.
Handles connection, indexing and id sequences; query methods live in
``catalog.repositories``.
"""

from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure

from catalog.repositories import BookRepository, GenreRepository, UserRepository

logger = structlog.get_logger(__name__)


class MongoDBManager:
    """
    Async MongoDB manager for the users, genres and books collections.
    Owns the client and exposes one repository per collection.
    """

    def __init__(self, connection_url: str, database_name: str, isbn_unique_per_user: bool = False):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            isbn_unique_per_user: Scope ISBN uniqueness to each user instead of globally
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.isbn_unique_per_user = isbn_unique_per_user
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.users: Optional[UserRepository] = None
        self.genres: Optional[GenreRepository] = None
        self.books: Optional[BookRepository] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB and make sure indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            await self.client.admin.command('ping')
            self.bind(self.client[self.database_name])
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self.create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    def bind(self, database: AsyncIOMotorDatabase) -> None:
        """Attach an already opened database and build the repositories."""
        self.database = database
        self.users = UserRepository(database.users, self)
        self.genres = GenreRepository(database.genres, self)
        self.books = BookRepository(database.books, self)

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def create_indexes(self) -> None:
        """
        Create the unique indexes backing the catalog invariants and the
        indexes used by owner-scoped queries.
        """
        try:
            await self.database.users.create_index("email", unique=True)
            await self.database.users.create_index("username", unique=True)

            await self.database.genres.create_index([("user_id", 1), ("name_lower", 1)], unique=True)

            if self.isbn_unique_per_user:
                await self.database.books.create_index([("user_id", 1), ("isbn", 1)], unique=True)
            else:
                await self.database.books.create_index("isbn", unique=True)
            await self.database.books.create_index([("user_id", 1), ("title", 1)])
            await self.database.books.create_index([("user_id", 1), ("genre_id", 1)])

            logger.info("Successfully created MongoDB indexes",
                        isbn_scope="per_user" if self.isbn_unique_per_user else "global")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def next_sequence(self, name: str) -> int:
        """
        Return the next value of a named counter, starting at 1.

        Args:
            name: Counter name, one per collection using integer ids
        """
        counter = await self.database.counters.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"]

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            return {
                "status": "healthy",
                "users_count": await self.database.users.count_documents({}),
                "books_count": await self.database.books.count_documents({}),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
