"""
FastAPI RESTful API for the Book Catalog.

This module provides a REST API for:
- User registration and token-based login
- Per-user genres and books with pagination
- Cover image upload and retrieval
- Bearer token authentication middleware
"""
