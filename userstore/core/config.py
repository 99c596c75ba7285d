"""
userstore/core/config.py

Purpose: Library configuration

- Loads environment variables
- Centralizes config values (DB URI, collection name, query limits)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    """
    Settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="userstore",
        description="MongoDB database name"
    )
    MONGODB_MAX_POOL_SIZE: int = Field(
        default=50,
        description="Maximum connections kept by the Motor pool"
    )
    MONGODB_MIN_POOL_SIZE: int = Field(
        default=10,
        description="Minimum connections kept by the Motor pool"
    )
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(
        default=5000,
        description="How long the driver waits for a reachable server"
    )
    MONGODB_CONNECT_RETRIES: int = Field(
        default=3,
        description="Connection attempts made by connect_to_mongo()"
    )

    # Users collection
    USERS_COLLECTION: str = Field(
        default="users",
        description="Collection holding user documents"
    )
    BATCH_QUERY_CHUNK_SIZE: int = Field(
        default=10,
        description="Maximum ids per membership ('in') query"
    )
    DEFAULT_SEARCH_LIMIT: int = Field(
        default=20,
        description="Result cap for username search"
    )
    DEFAULT_PREMIUM_LIMIT: int = Field(
        default=100,
        description="Result cap for premium user listing"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("BATCH_QUERY_CHUNK_SIZE")
    @classmethod
    def validate_chunk_size(cls, v):
        """Membership queries accept between 1 and 30 values."""
        if v < 1 or v > 30:
            raise ValueError("BATCH_QUERY_CHUNK_SIZE must be between 1 and 30")
        return v

    @field_validator("MONGODB_URL")
    @classmethod
    def validate_mongodb_url(cls, v, info: ValidationInfo):
        """Refuse a localhost database in production."""
        if info.data.get("ENVIRONMENT") == "production" and "localhost" in v:
            raise ValueError("MONGODB_URL must point to a real cluster in production")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()


def validate_settings(config: Settings = None):
    """
    Validates critical settings on startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    config = config or settings
    errors = []

    if not config.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not config.MONGODB_DB_NAME:
        errors.append("MONGODB_DB_NAME is required")

    if not config.USERS_COLLECTION:
        errors.append("USERS_COLLECTION is required")

    if config.MONGODB_MIN_POOL_SIZE > config.MONGODB_MAX_POOL_SIZE:
        errors.append("MONGODB_MIN_POOL_SIZE cannot exceed MONGODB_MAX_POOL_SIZE")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
