"""
Pytest configuration and shared fixtures.

Services run against mongomock-motor's in-memory database and store
covers under ``tmp_path``.
"""

from datetime import date

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from catalog.auth_service import AuthService
from catalog.book_service import BookService
from catalog.database import MongoDBManager
from catalog.genre_service import GenreService
from catalog.image_storage import ImageStorage
from catalog.schemas import BookRegisterRequest
from catalog.security import PasswordHasher, TokenService
from catalog.user_service import UserService
from utilities.config import CatalogConfig

TEST_SECRET = "test-secret-key"


@pytest.fixture
def catalog_config(tmp_path):
    """Catalog configuration writing covers into a temporary directory."""
    return CatalogConfig(upload_dir=str(tmp_path / "uploads" / "books"))


@pytest.fixture
def mongo_database():
    """Fresh in-memory database per test."""
    return AsyncMongoMockClient()["catalog_test"]


@pytest_asyncio.fixture
async def db_manager(mongo_database, catalog_config):
    """MongoDB manager bound to the in-memory database, indexes created."""
    manager = MongoDBManager(
        connection_url="mongodb://localhost:27017",
        database_name="catalog_test",
        isbn_unique_per_user=catalog_config.isbn_unique_per_user()
    )
    manager.bind(mongo_database)
    await manager.create_indexes()
    return manager


@pytest.fixture
def password_hasher():
    """Cheap hashing so tests stay fast."""
    return PasswordHasher(method="pbkdf2:sha256:1000")


@pytest.fixture
def token_service():
    return TokenService(secret_key=TEST_SECRET, algorithm="HS256", expire_minutes=5)


@pytest.fixture
def image_storage(catalog_config):
    return ImageStorage(catalog_config.upload_dir, per_owner=catalog_config.isbn_unique_per_user())


@pytest.fixture
def user_service(db_manager, password_hasher):
    return UserService(db_manager, password_hasher)


@pytest.fixture
def auth_service(db_manager, password_hasher, token_service):
    return AuthService(db_manager, password_hasher, token_service)


@pytest.fixture
def genre_service(db_manager, image_storage):
    return GenreService(db_manager, image_storage)


@pytest.fixture
def book_service(db_manager, image_storage, catalog_config):
    return BookService(db_manager, image_storage, catalog_config)


@pytest_asyncio.fixture
async def owner(user_service):
    """Registered user owning the books under test."""
    return await user_service.register("reader", "reader@example.com", "secret1")


@pytest_asyncio.fixture
async def other_owner(user_service):
    """A second, unrelated user."""
    return await user_service.register("intruder", "intruder@example.com", "secret2")


@pytest_asyncio.fixture
async def fiction(genre_service, owner):
    """Genre 'Fiction' owned by ``owner``."""
    return await genre_service.register("Fiction", owner.id)


@pytest.fixture
def book_request():
    """Factory for valid book registration payloads."""
    def _make(**overrides):
        data = {
            "isbn": "1234567890",
            "title": "The Left Hand of Darkness",
            "genre_id": 1,
            "published_date": date(1969, 3, 1),
            "synopsis": "An envoy visits a planet whose people have no fixed sex.",
            "user_id": 1,
        }
        data.update(overrides)
        return BookRegisterRequest(**data)
    return _make
