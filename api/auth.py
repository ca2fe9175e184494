"""
Bearer token authentication for the FastAPI API.

``JWTAuthenticationMiddleware`` validates the token of every request except
the public endpoints and binds the caller to ``request.state.identity``.
Routes read that identity through ``get_identity``; nothing is kept in
global or thread-local state.
"""

from typing import Iterable, Optional

import jwt
import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from catalog.exceptions import ForbiddenError
from catalog.models import AuthenticatedUser
from utilities.logger import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": message},
    )


class JWTAuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Validates ``Authorization: Bearer <token>`` on protected paths.

    Token failures answer 401 directly. A valid token whose user can no
    longer be loaded leaves the request anonymous; ``get_identity`` then
    refuses it at the route.
    """

    def __init__(self, app, public_paths: Iterable[str] = ()):
        super().__init__(app)
        self.public_paths = frozenset(public_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        clear_request_context()
        bind_request_context(method=request.method, path=request.url.path)

        if request.url.path in self.public_paths:
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if auth_header is None:
            return _unauthorized("Token is required")

        if not auth_header.startswith(BEARER_PREFIX):
            return _unauthorized("Invalid or malformed token")

        token = auth_header[len(BEARER_PREFIX):]
        token_service = request.app.state.token_service

        try:
            user_email = token_service.extract_subject(token)
        except jwt.ExpiredSignatureError:
            logger.warning("Rejected expired token")
            return _unauthorized("Token has expired")
        except jwt.InvalidSignatureError:
            logger.warning("Rejected token with invalid signature")
            return _unauthorized("Invalid token signature")
        except jwt.DecodeError:
            logger.warning("Rejected malformed token")
            return _unauthorized("Malformed token")
        except jwt.InvalidTokenError as e:
            logger.warning("Rejected token", error=str(e))
            return _unauthorized("Invalid token or unknown error")

        if user_email and getattr(request.state, "identity", None) is None:
            db_manager = request.app.state.db_manager
            if db_manager is None:
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={"status": "error", "message": "Database service not available"},
                )

            user = await db_manager.users.find_by_email(user_email)
            if user is not None and token_service.is_token_valid(token, user):
                request.state.identity = AuthenticatedUser(
                    id=user.id, email=user.email, username=user.username
                )
                bind_request_context(user_id=user.id)
            else:
                logger.warning("Token subject has no matching user")

        return await call_next(request)


def get_identity(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        ForbiddenError: If the middleware bound no identity to the request
    """
    identity: Optional[AuthenticatedUser] = getattr(request.state, "identity", None)
    if identity is None:
        raise ForbiddenError("Access denied")
    return identity


def ensure_same_user(user_id: int, identity: AuthenticatedUser) -> int:
    """
    Check that a ``userId`` sent by the client is the caller's own id.

    Raises:
        ForbiddenError: If it names another user
    """
    if user_id != identity.id:
        logger.warning("Caller tried to act for another user", requested_user_id=user_id)
        raise ForbiddenError("Not allowed to access another user's catalog")
    return user_id
