"""
Fixtures for exercising the FastAPI application end to end.
"""

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from api.main import app
from catalog.database import MongoDBManager
from catalog.image_storage import ImageStorage
from catalog.security import PasswordHasher, TokenService
from utilities.config import CatalogConfig

TEST_SECRET = "api-test-secret"


@pytest.fixture
def api_token_service():
    return TokenService(secret_key=TEST_SECRET, algorithm="HS256", expire_minutes=5)


@pytest.fixture
def api_db_manager():
    """Manager bound to an in-memory database; the lifespan never runs."""
    manager = MongoDBManager("mongodb://localhost:27017", "catalog_api_test")
    manager.bind(AsyncMongoMockClient()["catalog_api_test"])
    return manager


@pytest.fixture
def client(tmp_path, api_db_manager, api_token_service):
    """Test client with the application state pointed at test resources."""
    catalog_config = CatalogConfig(upload_dir=str(tmp_path / "uploads" / "books"))
    overrides = {
        "db_manager": api_db_manager,
        "catalog_config": catalog_config,
        "image_storage": ImageStorage(catalog_config.upload_dir, per_owner=catalog_config.isbn_unique_per_user()),
        "password_hasher": PasswordHasher(method="pbkdf2:sha256:1000"),
        "token_service": api_token_service,
    }
    saved = {name: getattr(app.state, name) for name in overrides}
    for name, value in overrides.items():
        setattr(app.state, name, value)

    yield TestClient(app)

    for name, value in saved.items():
        setattr(app.state, name, value)


@pytest.fixture
def register_and_login(client):
    """Create an account and return ``(user_id, auth headers)``."""
    def _register(username="reader", email="reader@example.com", password="secret1"):
        response = client.post("/api/v1/users/register", json={
            "username": username, "email": email, "password": password
        })
        assert response.status_code == 201
        user_id = response.json()["id"]

        response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200
        return user_id, {"Authorization": f"Bearer {response.json()['token']}"}
    return _register
