"""
Configuration settings for the Store Ratings API.

Loads environment variables from .env file and provides typed configuration.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    APP_TITLE: str = "Store Ratings API"
    APP_VERSION: str = "2.1.0"
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"],
        description="Allowed CORS origins",
    )

    # Security Configuration
    SECRET_KEY: str = Field(
        default="09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7",
        description="Secret key for JWT",
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=7 * 24 * 60, description="Access token expiration time in minutes"
    )
    BCRYPT_ROUNDS: int = Field(
        default=12, description="bcrypt cost factor for password hashes"
    )
    ADMIN_BOOTSTRAP_SECRET: str = Field(
        default="CREATE_FIRST_ADMIN_2025",
        description="Shared secret required to create the first admin",
    )

    # Database Configuration
    DATABASE_URL: str = Field(
        default="sqlite:///./data/ratings.db", description="SQLAlchemy database URL"
    )
    DATABASE_ECHO: bool = Field(
        default=False, description="Echo SQL queries (for debugging)"
    )

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(
        default=True, description="Enable slowapi rate limiting"
    )
    LOGIN_RATE_LIMIT: str = Field(
        default="5/minute", description="Rate limit applied to login endpoints"
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    ENABLE_FILE_LOGGING: bool = Field(
        default=False, description="Enable logging to file"
    )
    LOG_FILE: Optional[str] = Field(
        default="./logs/ratings.log", description="Log file path when file logging is on"
    )

    # Error reporting
    EXPOSE_ERROR_DETAILS: bool = Field(
        default=False, description="Include exception text in 500 responses"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
