"""Settings loaded from the environment (and a .env file if present)."""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv

from .embed import EMBEDDING_DIMENSIONS


@dataclass
class Settings:
    """Runtime configuration for the pipeline, store and CLI."""
    database_url: str
    openai_api_key: Optional[str] = None
    db_backend: str = "postgres"
    embed_model: str = "text-embedding-ada-002"
    embed_dimensions: int = 1536
    chat_model: str = "gpt-3.5-turbo"
    chunk_size: int = 800
    use_pool: bool = True
    retry_attempts: int = 3
    retry_delay: float = 1.0
    log_level: str = "INFO"
    json_logs: bool = False


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def database_url_from_env() -> str:
    """DATABASE_URL if set, otherwise built from the DB_* variables."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "postgres")

    auth = quote(user, safe="")
    if password:
        auth += ":" + quote(password, safe="")
    return f"postgresql://{auth}@{host}:{port}/{name}"


def load_settings(dotenv: bool = True) -> Settings:
    """Build Settings from environment variables."""
    if dotenv:
        load_dotenv()

    embed_model = os.getenv("EMBED_MODEL", "text-embedding-ada-002")
    dimensions = os.getenv("EMBED_DIMENSIONS")

    return Settings(
        database_url=database_url_from_env(),
        db_backend=os.getenv("DB_BACKEND", "postgres").strip().lower(),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        embed_model=embed_model,
        embed_dimensions=int(dimensions) if dimensions else EMBEDDING_DIMENSIONS.get(embed_model, 1536),
        chat_model=os.getenv("CHAT_MODEL", "gpt-3.5-turbo"),
        chunk_size=int(os.getenv("CHUNK_SIZE", "800")),
        use_pool=_env_bool("DB_POOL", True),
        retry_attempts=int(os.getenv("RETRY_ATTEMPTS", "3")),
        retry_delay=float(os.getenv("RETRY_DELAY", "1.0")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_logs=_env_bool("JSON_LOGS", False),
    )
