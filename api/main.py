"""
FastAPI main application for the Book Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

import structlog
from fastapi import (
    APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import JWTAuthenticationMiddleware, ensure_same_user, get_identity
from api.config import config as api_config
from api.models import ErrorMessage, HealthResponse
from catalog.auth_service import AuthService
from catalog.book_service import BookService
from catalog.database import MongoDBManager
from catalog.exceptions import CatalogError
from catalog.genre_service import GenreService
from catalog.image_storage import ImageStorage
from catalog.models import AuthenticatedUser
from catalog.schemas import (
    BookPage, BookRegisterRequest, BookUpdateRequest, BookView, GenreRegisterRequest,
    GenreView, LoginRequest, LoginResponse, UserRegisterRequest, UserView
)
from catalog.security import PasswordHasher, TokenService
from catalog.user_service import UserService
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

API_PREFIX = api_config.api_prefix
MAX_PAGE_NUMBER = 10_000_000
PUBLIC_PATHS = (
    f"{API_PREFIX}/auth/login",
    f"{API_PREFIX}/users/register",
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Catalog API")

    db_manager = MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        isbn_unique_per_user=config.isbn_unique_per_user()
    )
    try:
        await db_manager.connect()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise
    app.state.db_manager = db_manager

    yield

    logger.info("Shutting down Book Catalog API")
    await db_manager.disconnect()
    app.state.db_manager = None


app = FastAPI(
    title=api_config.api_title,
    description="""
    REST API for personal book catalogs.

    ## Features

    * **Accounts**: register and log in to receive a bearer token
    * **Genres**: each user keeps their own genre list
    * **Books**: register, update, page through and delete books per genre
    * **Covers**: upload one JPG or PNG cover per book and fetch it back

    ## Authentication

    Every endpoint except login and registration requires a token:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

app.state.db_manager = None
app.state.catalog_config = config
app.state.image_storage = ImageStorage(config.get_upload_path(), per_owner=config.isbn_unique_per_user())
app.state.password_hasher = PasswordHasher()
app.state.token_service = TokenService(
    secret_key=api_config.secret_key,
    algorithm=api_config.algorithm,
    expire_minutes=api_config.access_token_expire_minutes
)

# Added first so CORS wraps it and answers preflights without a token
app.add_middleware(JWTAuthenticationMiddleware, public_paths=PUBLIC_PATHS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Map catalog errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error("Catalog operation failed", error=exc.message, cause=str(exc.__cause__))
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorMessage(message=exc.message).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return a field -> message map for invalid requests."""
    errors = {}
    for error in exc.errors():
        if error.get("type") == "json_invalid":
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=ErrorMessage(message="Malformed request body").model_dump()
            )
        loc = error.get("loc") or ("request",)
        cause = (error.get("ctx") or {}).get("error")
        errors[str(loc[-1])] = str(cause) if cause else error.get("msg")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorMessage(message=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    message = str(exc) if api_config.debug else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorMessage(message=message).model_dump()
    )


# Dependencies
def get_db_manager(request: Request) -> MongoDBManager:
    db_manager = request.app.state.db_manager
    if db_manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service not available"
        )
    return db_manager


def get_user_service(request: Request, db_manager: MongoDBManager = Depends(get_db_manager)) -> UserService:
    return UserService(db_manager, request.app.state.password_hasher)


def get_auth_service(request: Request, db_manager: MongoDBManager = Depends(get_db_manager)) -> AuthService:
    return AuthService(db_manager, request.app.state.password_hasher, request.app.state.token_service)


def get_genre_service(request: Request, db_manager: MongoDBManager = Depends(get_db_manager)) -> GenreService:
    return GenreService(db_manager, request.app.state.image_storage)


def get_book_service(request: Request, db_manager: MongoDBManager = Depends(get_db_manager)) -> BookService:
    return BookService(db_manager, request.app.state.image_storage, request.app.state.catalog_config)


router = APIRouter(prefix=API_PREFIX)


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_status = "unavailable"
    db_manager = request.app.state.db_manager
    if db_manager is not None:
        health_info = await db_manager.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status
    )


# Authentication and accounts
@router.post("/auth/login", response_model=LoginResponse, tags=["Auth"])
async def login(payload: LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    """Exchange email and password for a bearer token."""
    return await auth_service.login(payload.email, payload.password)


@router.post("/users/register", response_model=UserView, status_code=status.HTTP_201_CREATED, tags=["Users"])
async def register_user(payload: UserRegisterRequest, user_service: UserService = Depends(get_user_service)):
    """Create an account."""
    return await user_service.register(payload.username, payload.email, payload.password)


# Genres
@router.post("/genres", response_model=GenreView, status_code=status.HTTP_201_CREATED, tags=["Genres"])
async def register_genre(
    payload: GenreRegisterRequest,
    identity: AuthenticatedUser = Depends(get_identity),
    genre_service: GenreService = Depends(get_genre_service)
):
    """Create a genre; ``userId`` defaults to the caller."""
    user_id = ensure_same_user(payload.user_id or identity.id, identity)
    return await genre_service.register(payload.name, user_id)


@router.get("/genres/user/{user_id}", response_model=List[GenreView], tags=["Genres"])
async def list_genres(
    user_id: int,
    identity: AuthenticatedUser = Depends(get_identity),
    genre_service: GenreService = Depends(get_genre_service)
):
    """All genres of a user."""
    ensure_same_user(user_id, identity)
    return await genre_service.list_by_user(user_id)


@router.delete("/genres/{genre_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Genres"])
async def delete_genre(
    genre_id: int,
    user_id: int = Query(..., alias="userId", ge=1),
    identity: AuthenticatedUser = Depends(get_identity),
    genre_service: GenreService = Depends(get_genre_service)
):
    """Delete a genre and every book filed under it."""
    ensure_same_user(user_id, identity)
    await genre_service.delete(genre_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Books
@router.post("/books", response_model=BookView, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def register_book(
    payload: BookRegisterRequest,
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Register a book."""
    ensure_same_user(payload.user_id, identity)
    return await book_service.register(payload)


@router.api_route("/books", methods=["PATCH", "PUT"], response_model=BookView, tags=["Books"])
async def update_book(
    payload: BookUpdateRequest,
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Partially update a book; omitted or null fields stay as they are."""
    ensure_same_user(payload.user_id, identity)
    return await book_service.update(payload)


@router.get("/books", response_model=BookPage, tags=["Books"])
async def list_books(
    user_id: int = Query(..., alias="userId", ge=1),
    page: int = Query(0, ge=0, le=MAX_PAGE_NUMBER),
    size: int = Query(config.default_page_size, ge=1, le=config.max_page_size),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """
    Page through a user's books ordered by title.

    - **userId**: Owner of the books
    - **page**: Page number (starts from 0)
    - **size**: Items per page
    """
    ensure_same_user(user_id, identity)
    return await book_service.find_paginated(user_id, page, size)


@router.get("/books/user/{user_id}/genre/{genre_id}", response_model=BookPage, tags=["Books"])
async def list_books_by_genre(
    user_id: int,
    genre_id: int,
    page: int = Query(0, ge=0, le=MAX_PAGE_NUMBER),
    size: int = Query(config.default_page_size, ge=1, le=config.max_page_size),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Page through a user's books in one genre."""
    ensure_same_user(user_id, identity)
    return await book_service.find_by_genre_and_user(genre_id, user_id, page, size)


# Declared before /books/{isbn} so "cover" is not taken for an ISBN
@router.get("/books/cover", response_class=FileResponse, tags=["Books"])
async def get_cover_image(
    user_id: int = Query(..., alias="userId", ge=1),
    path: str = Query(..., min_length=1),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Stream a cover image, e.g. ``path=9876543210/cover.png``."""
    ensure_same_user(user_id, identity)
    cover = await book_service.get_cover_image(user_id, path)
    return FileResponse(
        cover.path,
        media_type=cover.content_type,
        headers={"Content-Disposition": f'inline; filename="{cover.filename}"'}
    )


@router.get("/books/{isbn}", response_model=BookView, tags=["Books"])
async def get_book(
    isbn: str,
    user_id: int = Query(..., alias="userId", ge=1),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Get one of the user's books by ISBN."""
    ensure_same_user(user_id, identity)
    return await book_service.find_by_isbn_and_user(isbn, user_id)


@router.delete("/books/{isbn}", status_code=status.HTTP_204_NO_CONTENT, tags=["Books"])
async def delete_book(
    isbn: str,
    user_id: int = Query(..., alias="userId", ge=1),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Delete a book and its cover."""
    ensure_same_user(user_id, identity)
    await book_service.delete(isbn, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/books/{isbn}/cover", response_model=BookView, tags=["Books"])
async def update_cover_image(
    isbn: str,
    user_id: int = Query(..., alias="userId", ge=1),
    file: UploadFile = File(...),
    identity: AuthenticatedUser = Depends(get_identity),
    book_service: BookService = Depends(get_book_service)
):
    """Upload a JPG or PNG cover of at most 5MB, replacing the previous one."""
    ensure_same_user(user_id, identity)
    content = await file.read()
    size = file.size if file.size is not None else len(content)
    return await book_service.update_cover_image(isbn, user_id, content, file.content_type, size)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=config.log_level.lower()
    )
