"""
Password hashing and JWT issuance/verification.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from catalog.models import User


class PasswordHasher:
    """Salted password hashing backed by werkzeug."""

    def __init__(self, method: str = "pbkdf2:sha256"):
        self.method = method

    def hash(self, password: str) -> str:
        return generate_password_hash(password, method=self.method)

    def verify(self, password: str, password_hash: str) -> bool:
        return check_password_hash(password_hash, password)


class TokenService:
    """
    Signs and reads bearer tokens.

    The subject is the user's email; extra claims (``userId``) are added by
    the caller. Decoding errors are PyJWT's own exceptions, left for the
    authentication middleware to translate.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def generate_token(
        self,
        subject: str,
        extra_claims: Optional[Dict[str, Any]] = None,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(extra_claims or {})
        payload.update({
            "sub": subject,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else timedelta(minutes=self.expire_minutes)),
        })
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Verify signature and expiry and return the claims."""
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"require": ["sub", "exp"]},
        )

    def extract_subject(self, token: str) -> str:
        return self.decode(token)["sub"]

    def is_token_valid(self, token: str, user: User) -> bool:
        """True when the token verifies and was issued for this user."""
        try:
            claims = self.decode(token)
        except jwt.InvalidTokenError:
            return False
        return claims.get("sub") == user.email
