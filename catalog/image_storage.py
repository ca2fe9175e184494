"""
Filesystem storage for book cover images.

Layout: ``{base_dir}/{isbn}/cover.{jpg|png}``, or
``{base_dir}/{isbn}/{user_id}/cover.{jpg|png}`` when ISBNs are only unique per
user. Exactly one cover file is kept per cover directory; a new upload is
written next to the old one, renamed over the target name, and only then are
the leftovers removed.
"""

import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Tuple, Union

import structlog

from catalog.exceptions import StorageError, ValidationFailedError

logger = structlog.get_logger(__name__)

COVER_BASENAME = "cover"


def cover_extension(content_type: str) -> str:
    """``.png`` for PNG uploads, ``.jpg`` for everything else."""
    return ".png" if "png" in (content_type or "").lower() else ".jpg"


class ImageStorage:
    """Stores, resolves and removes cover images under a base directory."""

    def __init__(self, base_dir: Union[str, Path], per_owner: bool = False):
        self.base_dir = Path(base_dir).resolve()
        self.per_owner = per_owner

    @staticmethod
    def _check_isbn(isbn: str) -> None:
        if not isbn or isbn in (".", "..") or "/" in isbn or "\\" in isbn:
            raise ValidationFailedError(f"Invalid ISBN for cover storage: {isbn!r}")

    def cover_dir_parts(self, isbn: str, user_id: int) -> Tuple[str, ...]:
        """Relative path segments of the directory holding a book's cover."""
        self._check_isbn(isbn)
        return (isbn, str(user_id)) if self.per_owner else (isbn,)

    def store_cover_image(self, content: bytes, content_type: str, isbn: str, user_id: int) -> str:
        """
        Save ``content`` as the cover of ``isbn``, replacing any previous cover.

        Args:
            content: Raw image bytes
            content_type: Uploaded MIME type, decides the file extension
            isbn: Book identifier, names the directory
            user_id: Book owner, names a subdirectory when covers are kept per owner

        Returns:
            Path of the stored file relative to the base directory

        Raises:
            StorageError: If any filesystem operation fails
        """
        parts = self.cover_dir_parts(isbn, user_id)
        upload_dir = self.base_dir.joinpath(*parts)
        file_name = COVER_BASENAME + cover_extension(content_type)
        target = upload_dir / file_name

        try:
            upload_dir.mkdir(parents=True, exist_ok=True)

            fd, tmp_name = tempfile.mkstemp(dir=upload_dir, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as tmp_file:
                    tmp_file.write(content)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            for existing in upload_dir.iterdir():
                if existing.name != file_name:
                    if existing.is_dir():
                        shutil.rmtree(existing)
                    else:
                        existing.unlink()

        except OSError as e:
            logger.error("Failed to store cover image", isbn=isbn, error=str(e))
            raise StorageError("Error saving the image") from e

        logger.info("Stored cover image", isbn=isbn, file=file_name, size=len(content))
        return "/".join(parts + (file_name,))

    def resolve(self, relative_path: str) -> Path:
        """
        Map a stored relative path to an absolute path inside the base directory.

        Raises:
            ValidationFailedError: If the path is absolute or escapes the base directory
        """
        pure = PurePosixPath(relative_path)
        if pure.is_absolute() or ".." in pure.parts:
            raise ValidationFailedError("Invalid cover path")

        resolved = (self.base_dir / pure).resolve()
        if not resolved.is_relative_to(self.base_dir):
            raise ValidationFailedError("Invalid cover path")
        return resolved

    def delete_cover_images(self, isbn: str, user_id: int) -> None:
        """Remove the stored cover of one book; a missing directory is fine."""
        upload_dir = self.base_dir.joinpath(*self.cover_dir_parts(isbn, user_id))
        try:
            shutil.rmtree(upload_dir)
            if self.per_owner:
                isbn_dir = upload_dir.parent
                if isbn_dir.is_dir() and not any(isbn_dir.iterdir()):
                    isbn_dir.rmdir()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Failed to delete cover images", isbn=isbn, user_id=user_id, error=str(e))
            raise StorageError("Error deleting the image") from e
        logger.info("Deleted cover images", isbn=isbn, user_id=user_id)
