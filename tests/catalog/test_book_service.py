"""
Unit tests for book registration, updates, paging and covers.
"""

from datetime import date

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from catalog.book_service import BookService
from catalog.database import MongoDBManager
from catalog.exceptions import (
    AlreadyExistsError, ForbiddenError, NotFoundError, ValidationFailedError
)
from catalog.genre_service import GenreService
from catalog.image_storage import ImageStorage
from catalog.schemas import BookUpdateRequest
from catalog.user_service import UserService
from utilities.config import CatalogConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


class TestRegister:
    """Test cases for BookService.register."""

    @pytest.mark.asyncio
    async def test_register(self, book_service, fiction, book_request):
        view = await book_service.register(book_request(genre_id=fiction.id))

        assert view.isbn == "1234567890"
        assert view.genre == "Fiction"
        assert view.genre_id == fiction.id
        assert view.published_date == date(1969, 3, 1)
        assert view.cover_image_path is None
        assert view.created_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_isbn(self, book_service, fiction, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        with pytest.raises(AlreadyExistsError) as exc_info:
            await book_service.register(book_request(genre_id=fiction.id, title="Another title"))

        assert exc_info.value.message == "A book with that ISBN already exists"

    @pytest.mark.asyncio
    async def test_isbn_is_global_by_default(
        self, book_service, genre_service, fiction, other_owner, book_request
    ):
        """Test that another user cannot reuse an ISBN under the global policy."""
        await book_service.register(book_request(genre_id=fiction.id))
        their_genre = await genre_service.register("Fiction", other_owner.id)

        with pytest.raises(AlreadyExistsError):
            await book_service.register(book_request(genre_id=their_genre.id, user_id=other_owner.id))

    @pytest.mark.asyncio
    async def test_unknown_user(self, book_service, fiction, book_request):
        with pytest.raises(NotFoundError) as exc_info:
            await book_service.register(book_request(genre_id=fiction.id, user_id=99))

        assert exc_info.value.message == "User not found"

    @pytest.mark.asyncio
    async def test_genre_of_another_user(
        self, book_service, fiction, other_owner, book_request
    ):
        """Test that a book cannot be filed under someone else's genre."""
        with pytest.raises(NotFoundError) as exc_info:
            await book_service.register(book_request(genre_id=fiction.id, user_id=other_owner.id))

        assert exc_info.value.message == "Genre not found"


class TestPerUserIsbn:
    """Test cases for the per-user ISBN uniqueness policy."""

    @pytest_asyncio.fixture
    async def per_user_services(self, tmp_path, password_hasher):
        config = CatalogConfig(upload_dir=str(tmp_path / "covers"), isbn_uniqueness="per_user")
        storage = ImageStorage(config.upload_dir, per_owner=True)
        manager = MongoDBManager("mongodb://localhost:27017", "catalog_per_user", isbn_unique_per_user=True)
        manager.bind(AsyncMongoMockClient()["catalog_per_user"])
        await manager.create_indexes()
        return (
            UserService(manager, password_hasher),
            GenreService(manager, storage),
            BookService(manager, storage, config),
        )

    @pytest_asyncio.fixture
    async def shared_isbn(self, per_user_services, book_request):
        """Alice and Bob each own a book with ISBN 1234567890."""
        users, genres, books = per_user_services
        alice = await users.register("alice", "alice@example.com", "secret1")
        bob = await users.register("bob", "bob@example.com", "secret2")
        alice_genre = await genres.register("Fiction", alice.id)
        bob_genre = await genres.register("Fiction", bob.id)
        await books.register(book_request(genre_id=alice_genre.id, user_id=alice.id))
        await books.register(book_request(genre_id=bob_genre.id, user_id=bob.id))
        return alice, bob, bob_genre

    @pytest.mark.asyncio
    async def test_same_isbn_for_two_users(self, per_user_services, shared_isbn, book_request):
        _, _, books = per_user_services
        alice, bob, bob_genre = shared_isbn

        assert (await books.find_by_isbn_and_user("1234567890", alice.id)).isbn == "1234567890"
        assert (await books.find_by_isbn_and_user("1234567890", bob.id)).isbn == "1234567890"
        with pytest.raises(AlreadyExistsError):
            await books.register(book_request(genre_id=bob_genre.id, user_id=bob.id))

    @pytest.mark.asyncio
    async def test_covers_stay_private(self, per_user_services, shared_isbn):
        """Test that owners of the same ISBN never see or replace each other's cover."""
        _, _, books = per_user_services
        alice, bob, _ = shared_isbn
        bob_png = b"\x89PNG\r\n\x1a\nBOB-PRIVATE"

        alice_view = await books.update_cover_image("1234567890", alice.id, PNG_BYTES, "image/png", len(PNG_BYTES))
        bob_view = await books.update_cover_image("1234567890", bob.id, bob_png, "image/png", len(bob_png))

        assert alice_view.cover_image_path == f"1234567890/{alice.id}/cover.png"
        assert bob_view.cover_image_path == f"1234567890/{bob.id}/cover.png"
        assert (await books.get_cover_image(alice.id, alice_view.cover_image_path)).path.read_bytes() == PNG_BYTES

        with pytest.raises(ForbiddenError):
            await books.get_cover_image(alice.id, bob_view.cover_image_path)
        with pytest.raises(ForbiddenError):
            await books.get_cover_image(alice.id, "1234567890/cover.png")

        await books.update_cover_image("1234567890", bob.id, JPEG_BYTES, "image/jpeg", len(JPEG_BYTES))

        cover = await books.get_cover_image(alice.id, alice_view.cover_image_path)
        assert cover.path.read_bytes() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_delete_keeps_other_owners_cover(self, per_user_services, shared_isbn):
        _, _, books = per_user_services
        alice, bob, _ = shared_isbn
        alice_view = await books.update_cover_image("1234567890", alice.id, PNG_BYTES, "image/png", len(PNG_BYTES))
        await books.update_cover_image("1234567890", bob.id, PNG_BYTES, "image/png", len(PNG_BYTES))

        await books.delete("1234567890", bob.id)

        cover = await books.get_cover_image(alice.id, alice_view.cover_image_path)
        assert cover.path.is_file()


class TestUpdateAndDelete:
    """Test cases for partial updates and deletion."""

    @pytest.mark.asyncio
    async def test_all_null_update_changes_nothing(self, book_service, fiction, owner, book_request):
        original = await book_service.register(book_request(genre_id=fiction.id))

        updated = await book_service.update(BookUpdateRequest(isbn=original.isbn, user_id=owner.id))

        assert updated.model_dump() == original.model_dump()

    @pytest.mark.asyncio
    async def test_partial_update(self, book_service, genre_service, fiction, owner, book_request):
        """Test that only the provided fields change."""
        original = await book_service.register(book_request(genre_id=fiction.id))
        classics = await genre_service.register("Classics", owner.id)

        updated = await book_service.update(BookUpdateRequest(
            isbn=original.isbn,
            user_id=owner.id,
            title="The Dispossessed",
            genre_id=classics.id,
        ))

        assert updated.title == "The Dispossessed"
        assert updated.genre == "Classics"
        assert updated.synopsis == original.synopsis
        assert updated.published_date == original.published_date
        assert updated.created_at == original.created_at

    @pytest.mark.asyncio
    async def test_update_other_users_book(self, book_service, fiction, other_owner, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        with pytest.raises(NotFoundError) as exc_info:
            await book_service.update(BookUpdateRequest(isbn="1234567890", user_id=other_owner.id, title="Mine now"))

        assert exc_info.value.message == "Book not found for this user"

    @pytest.mark.asyncio
    async def test_update_to_unknown_genre(self, book_service, fiction, owner, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        with pytest.raises(NotFoundError):
            await book_service.update(BookUpdateRequest(isbn="1234567890", user_id=owner.id, genre_id=77))

    @pytest.mark.asyncio
    async def test_delete_removes_book_and_cover(
        self, book_service, image_storage, fiction, owner, book_request
    ):
        await book_service.register(book_request(genre_id=fiction.id))
        await book_service.update_cover_image("1234567890", owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))

        await book_service.delete("1234567890", owner.id)

        with pytest.raises(NotFoundError):
            await book_service.find_by_isbn_and_user("1234567890", owner.id)
        assert not (image_storage.base_dir / "1234567890").exists()

    @pytest.mark.asyncio
    async def test_delete_other_users_book(self, book_service, fiction, owner, other_owner, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        with pytest.raises(NotFoundError):
            await book_service.delete("1234567890", other_owner.id)

        assert (await book_service.find_by_isbn_and_user("1234567890", owner.id)).isbn == "1234567890"


class TestQueries:
    """Test cases for lookups and pagination."""

    @pytest.mark.asyncio
    async def test_find_by_isbn_is_owner_scoped(self, book_service, fiction, owner, other_owner, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        assert (await book_service.find_by_isbn_and_user("1234567890", owner.id)).title == "The Left Hand of Darkness"
        with pytest.raises(NotFoundError):
            await book_service.find_by_isbn_and_user("1234567890", other_owner.id)

    @pytest.mark.asyncio
    async def test_paging_ordered_by_title(self, book_service, fiction, owner, book_request):
        """Test page contents and metadata across seven books."""
        titles = ["Gamma", "Alpha", "Eta", "Beta", "Zeta", "Delta", "Epsilon"]
        for index, title in enumerate(titles):
            await book_service.register(book_request(isbn=f"978000000{index:04d}", title=title, genre_id=fiction.id))

        first = await book_service.find_paginated(owner.id, page=0, size=5)
        second = await book_service.find_paginated(owner.id, page=1, size=5)

        assert [book.title for book in first.content] == ["Alpha", "Beta", "Delta", "Epsilon", "Eta"]
        assert [book.title for book in second.content] == ["Gamma", "Zeta"]
        assert first.total_elements == 7
        assert first.total_pages == 2
        assert first.first and not first.last
        assert second.last and second.number_of_elements == 2

    @pytest.mark.asyncio
    async def test_page_past_the_end(self, book_service, fiction, owner, book_request):
        await book_service.register(book_request(genre_id=fiction.id))

        page = await book_service.find_paginated(owner.id, page=3, size=5)

        assert page.content == []
        assert page.empty
        assert page.total_elements == 1

    @pytest.mark.asyncio
    async def test_paging_unknown_user(self, book_service):
        with pytest.raises(NotFoundError):
            await book_service.find_paginated(99, page=0, size=5)

    @pytest.mark.asyncio
    async def test_genre_filter(self, book_service, genre_service, fiction, owner, book_request):
        poetry = await genre_service.register("Poetry", owner.id)
        await book_service.register(book_request(isbn="1111111111", genre_id=fiction.id))
        await book_service.register(book_request(isbn="2222222222", genre_id=poetry.id, title="Odes"))

        page = await book_service.find_by_genre_and_user(poetry.id, owner.id, page=0, size=5)

        assert [book.isbn for book in page.content] == ["2222222222"]
        assert page.content[0].genre == "Poetry"

    @pytest.mark.asyncio
    async def test_empty_genre_gives_empty_page(self, book_service, fiction, owner):
        """Test that a genre without books is not an error."""
        page = await book_service.find_by_genre_and_user(fiction.id, owner.id, page=0, size=5)

        assert page.empty
        assert page.total_elements == 0

    @pytest.mark.asyncio
    async def test_genre_filter_unknown_genre(self, book_service, owner):
        with pytest.raises(NotFoundError):
            await book_service.find_by_genre_and_user(5, owner.id, page=0, size=5)


class TestCovers:
    """Test cases for cover upload and retrieval."""

    @pytest_asyncio.fixture
    async def book(self, book_service, owner, fiction, book_request):
        return await book_service.register(book_request(genre_id=fiction.id, user_id=owner.id))

    @pytest.mark.asyncio
    async def test_upload_records_path(self, book_service, image_storage, owner, book):
        view = await book_service.update_cover_image(book.isbn, owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))

        assert view.cover_image_path == "1234567890/cover.png"
        assert (image_storage.base_dir / "1234567890" / "cover.png").read_bytes() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_reupload_replaces_cover(self, book_service, image_storage, owner, book):
        await book_service.update_cover_image(book.isbn, owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))
        view = await book_service.update_cover_image(book.isbn, owner.id, JPEG_BYTES, "image/jpeg", len(JPEG_BYTES))

        assert view.cover_image_path == "1234567890/cover.jpg"
        assert [p.name for p in (image_storage.base_dir / "1234567890").iterdir()] == ["cover.jpg"]

    @pytest.mark.asyncio
    async def test_empty_file(self, book_service, owner, book):
        with pytest.raises(ValidationFailedError) as exc_info:
            await book_service.update_cover_image(book.isbn, owner.id, b"", "image/png", 0)

        assert exc_info.value.message == "File is empty"

    @pytest.mark.asyncio
    async def test_wrong_type(self, book_service, owner, book):
        with pytest.raises(ValidationFailedError) as exc_info:
            await book_service.update_cover_image(book.isbn, owner.id, b"GIF89a", "image/gif", 6)

        assert exc_info.value.message == "Only JPG or PNG images are allowed"

    @pytest.mark.asyncio
    async def test_too_large_writes_nothing(self, book_service, image_storage, owner, book):
        """Test that a 6 MiB upload is refused before touching the disk."""
        content = b"\x00" * (6 * 1024 * 1024)

        with pytest.raises(ValidationFailedError) as exc_info:
            await book_service.update_cover_image(book.isbn, owner.id, content, "image/jpeg", len(content))

        assert exc_info.value.message == "Maximum allowed file size is 5MB"
        assert not (image_storage.base_dir / "1234567890").exists()
        assert (await book_service.find_by_isbn_and_user(book.isbn, owner.id)).cover_image_path is None

    @pytest.mark.asyncio
    async def test_upload_for_other_users_book(self, book_service, other_owner, book):
        with pytest.raises(NotFoundError):
            await book_service.update_cover_image(book.isbn, other_owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))

    @pytest.mark.asyncio
    async def test_get_cover(self, book_service, owner, book):
        await book_service.update_cover_image(book.isbn, owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))

        cover = await book_service.get_cover_image(owner.id, "1234567890/cover.png")

        assert cover.content_type == "image/png"
        assert cover.filename == "cover.png"
        assert cover.path.read_bytes() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_get_cover_of_other_user(self, book_service, owner, other_owner, book):
        """Test that another user's cover is forbidden, not streamed."""
        await book_service.update_cover_image(book.isbn, owner.id, PNG_BYTES, "image/png", len(PNG_BYTES))

        with pytest.raises(ForbiddenError) as exc_info:
            await book_service.get_cover_image(other_owner.id, "1234567890/cover.png")

        assert exc_info.value.message == "Not authorized to view this image"

    @pytest.mark.asyncio
    async def test_get_missing_cover(self, book_service, owner, book):
        with pytest.raises(NotFoundError) as exc_info:
            await book_service.get_cover_image(owner.id, "1234567890/cover.png")

        assert exc_info.value.message == "Image not found"

    @pytest.mark.asyncio
    async def test_get_cover_rejects_traversal(self, book_service, owner, book):
        for path in ("../etc/passwd", "/etc/passwd", "cover.png"):
            with pytest.raises(ValidationFailedError):
                await book_service.get_cover_image(owner.id, path)
