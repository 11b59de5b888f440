import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # Storage
    database_backend: str = os.getenv("BOOKSHELF_BACKEND", "sqlite").lower()
    database_file: str = os.getenv("BOOKSHELF_DB_FILE", "bookshelf.db")
    database_pool_size: int = int(os.getenv("BOOKSHELF_DB_POOL_SIZE", "5"))

    # Redis document store
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "bookshelf:")
    redis_timeout: float = float(os.getenv("REDIS_TIMEOUT", "5"))

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("PORT", "8080"))

    # Application
    app_name: str = os.getenv("APP_NAME", "Bookshelf API")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once; later calls only adjust the level."""
    level = (level or settings.log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
