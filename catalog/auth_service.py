"""
Credential check and token issuance.
"""

import structlog

from catalog.database import MongoDBManager
from catalog.exceptions import InvalidCredentialsError
from catalog.schemas import LoginResponse
from catalog.security import PasswordHasher, TokenService

logger = structlog.get_logger(__name__)


class AuthService:
    """Exchanges an email/password pair for a signed bearer token."""

    def __init__(self, db_manager: MongoDBManager, password_hasher: PasswordHasher, token_service: TokenService):
        self.users = db_manager.users
        self.password_hasher = password_hasher
        self.token_service = token_service

    async def login(self, email: str, password: str) -> LoginResponse:
        """
        Verify the credentials and sign a token carrying the ``userId`` claim.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password does not match
        """
        user = await self.users.find_by_email(email)
        if user is None or not self.password_hasher.verify(password, user.password):
            logger.warning("Login failed")
            raise InvalidCredentialsError()

        token = self.token_service.generate_token(user.email, {"userId": user.id})
        logger.info("User logged in", user_id=user.id)
        return LoginResponse(token=token)
