"""
Exception hierarchy raised by the catalog services.

Each exception carries the HTTP status the API maps it to, so the
exception handler in ``api.main`` needs a single lookup.
"""


class CatalogError(Exception):
    """Base class for all catalog errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CatalogError):
    """A user, genre, book or image does not exist for the caller."""

    status_code = 404


class AlreadyExistsError(CatalogError):
    """A unique value (email, username, ISBN, genre name) is already taken."""

    status_code = 409


class ValidationFailedError(CatalogError):
    """Input violates a business rule that request parsing cannot check."""

    status_code = 400


class ForbiddenError(CatalogError):
    """The caller is authenticated but may not touch the resource."""

    status_code = 403


class UnauthorizedError(CatalogError):
    """Authentication is missing or invalid."""

    status_code = 401


class InvalidCredentialsError(UnauthorizedError):
    """Login failed; deliberately silent about which part was wrong."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class StorageError(CatalogError):
    """Cover image could not be written, read or removed."""

    status_code = 500
