from functools import lru_cache
import os

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """mongokit settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Service information
    SERVICE_NAME: str = "mongokit"
    ENVIRONMENT: str = "development"

    # Database configuration
    MONGO_URL: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "mongokit"
    MONGO_CONTEXT_TIMEOUT: float = 10
    MONGO_MAX_POOL_SIZE: int = 100

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    @field_validator("MONGO_URL")
    @classmethod
    def validate_mongo_url(cls, v: str) -> str:
        """Validate that the MongoDB URL is properly formatted."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError("MONGO_URL must be a mongodb:// or mongodb+srv:// connection string")
        return v

    @field_validator("MONGO_CONTEXT_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("MONGO_CONTEXT_TIMEOUT must be positive")
        return v


def load_env_file() -> None:
    """Load environment variables from .env file if it exists."""
    env_path = os.path.join(os.getcwd(), ".env")
    if os.path.exists(env_path):
        load_dotenv(dotenv_path=env_path)


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache mongokit settings.

    Returns:
        Settings: Settings instance
    """
    load_env_file()
    return Settings()
