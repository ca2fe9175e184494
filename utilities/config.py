"""
Configuration management using environment variables.
Handles catalog storage settings with proper validation and defaults.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ISBN_UNIQUENESS_POLICIES = ("global", "per_user")


class CatalogConfig(BaseSettings):
    """
    Configuration class for catalog settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="book_catalog")

    # Cover image storage
    upload_dir: str = Field(default="uploads/books")
    max_cover_size_bytes: int = Field(default=5 * 1024 * 1024)
    allowed_cover_types: List[str] = Field(default=["image/jpeg", "image/jpg", "image/png"])

    # Catalog rules
    isbn_uniqueness: str = Field(default="global")
    default_page_size: int = Field(default=5)
    max_page_size: int = Field(default=100)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('max_cover_size_bytes', 'default_page_size', 'max_page_size')
    @classmethod
    def validate_positive(cls, v):
        """Ensure sizes are positive."""
        if v < 1:
            raise ValueError('value must be positive')
        return v

    @field_validator('isbn_uniqueness')
    @classmethod
    def validate_isbn_uniqueness(cls, v):
        """Ensure the ISBN uniqueness policy is known."""
        if v.lower() not in ISBN_UNIQUENESS_POLICIES:
            raise ValueError(f'isbn_uniqueness must be one of: {list(ISBN_UNIQUENESS_POLICIES)}')
        return v.lower()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    def get_upload_path(self) -> Path:
        """Get the cover upload directory as a Path object."""
        return Path(self.upload_dir)

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def isbn_unique_per_user(self) -> bool:
        """Whether the same ISBN may be registered once per user."""
        return self.isbn_uniqueness == "per_user"


# Global configuration instance
config = CatalogConfig()
