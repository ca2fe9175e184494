"""
User registration.
"""

import structlog
from pymongo.errors import DuplicateKeyError

from catalog.database import MongoDBManager
from catalog.exceptions import AlreadyExistsError
from catalog.schemas import UserView, to_user_view
from catalog.security import PasswordHasher

logger = structlog.get_logger(__name__)


class UserService:
    """Creates accounts. Users are never updated or deleted."""

    def __init__(self, db_manager: MongoDBManager, password_hasher: PasswordHasher):
        self.users = db_manager.users
        self.password_hasher = password_hasher

    async def register(self, username: str, email: str, password: str) -> UserView:
        """
        Register a new user with a hashed password.

        Raises:
            AlreadyExistsError: If the email or the username is taken
        """
        email = email.lower()
        if await self.users.exists_by_email(email):
            logger.warning("Registration rejected, email taken")
            raise AlreadyExistsError("email already exists")
        if await self.users.exists_by_username(username):
            logger.warning("Registration rejected, username taken", username=username)
            raise AlreadyExistsError("username already exists")

        try:
            user = await self.users.insert(username, email, self.password_hasher.hash(password))
        except DuplicateKeyError as e:
            raise AlreadyExistsError("email or username already exists") from e

        logger.info("User registered", user_id=user.id, username=user.username)
        return to_user_view(user)
