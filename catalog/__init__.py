"""
Catalog domain package.

This package contains:
- Stored entities (users, genres, books) and their API views
- MongoDB connection management and repositories
- User, genre, book and authentication services
- Filesystem storage for book cover images
"""

__version__ = "1.0.0"
