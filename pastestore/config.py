"""
Configuration module for pastestore.
Loads environment variables and provides config objects.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_PREFIX: str = os.getenv("REDIS_PREFIX", "pastestore")
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "redis").lower()
    MEMORY_FALLBACK: bool = _flag("MEMORY_FALLBACK", "True")
    DEBUG: bool = _flag("DEBUG", "True")
    APP_DOMAIN: str = os.getenv("APP_DOMAIN", "http://localhost:8000")
    TEST_MODE: bool = _flag("TEST_MODE", "0")
    ID_LENGTH: int = int(os.getenv("ID_LENGTH", "10"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def __init__(self, **overrides):
        """Apply explicit overrides on top of the environment defaults."""
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown setting: {name}")
            setattr(self, name, value)


settings = Settings()
