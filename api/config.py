"""
API configuration settings.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Catalog API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False

    # Security Settings
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # CORS Settings
    cors_origins: list = ["*"]  # Configure appropriately for production
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    model_config = {
        "env_file": ".env",
        "env_prefix": "API_",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator('access_token_expire_minutes')
    @classmethod
    def validate_token_lifetime(cls, v):
        """Tokens must expire."""
        if v < 1:
            raise ValueError('access_token_expire_minutes must be positive')
        return v


# Global config instance
config = APIConfig()
