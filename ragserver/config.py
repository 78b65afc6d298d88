"""Runtime configuration for the conversation RAG server.

Architectural role:
    Centralizes backend selection, connection settings, timeouts and search
    bounds for the composition root in `ragserver.api.main`. Nothing here is
    read by the orchestrator directly; values reach it through constructor
    arguments.

Resolution:
    `.env` is loaded via `load_dotenv()` on import, then every value is read
    from the process environment with a default. `Settings.from_env()` returns
    an immutable snapshot, so tests can build their own `Settings` without
    touching the environment.

Failure behavior:
    Malformed integers/floats fall back to defaults. Missing key material is
    represented as `None`; the composition root decides whether that is fatal.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


EMBEDDING_PROVIDERS = ("openai", "local")
VECTOR_BACKENDS = ("qdrant", "faiss")


def _env(key: str, default: str) -> str:
    value = os.getenv(key)
    return default if value is None else value


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, ""))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, ""))
    except ValueError:
        return default


def load_key(path: Optional[str]) -> Optional[str]:
    """Load an API key from environment override or key file.

    Resolution order:
        1. Environment variable inferred from file stem (for example
           `config/openai.key` -> `OPENAI_API_KEY`).
        2. Raw file contents at `path`.

    Args:
        path: Configured key file path or `None`.

    Returns:
        Key string or `None` when not available.
    """
    if not path:
        return None
    key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    env_value = os.getenv(key_name)
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return f.read().strip() or None


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration snapshot."""

    port: int = 8080
    environment: str = "development"
    log_level: str = "INFO"

    # Relational store
    database_url: str = "postgresql+psycopg://postgres:@localhost:5432/rag_db?sslmode=disable"
    db_pool_size: int = 5
    db_max_overflow: int = 20
    db_pool_timeout: float = 30.0

    # Vector index
    vector_backend: str = "qdrant"
    qdrant_url: str = "http://localhost:6333"
    qdrant_collection: str = "conversations"
    faiss_index_dir: str = "faiss_index"

    # Embeddings
    embedding_provider: str = "openai"
    openai_api_key: Optional[str] = field(default=None, repr=False)
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "text-embedding-3-large"
    local_embed_model: str = "intfloat/multilingual-e5-small"
    embedding_dim: int = 3072

    # Timeouts (seconds)
    request_timeout: float = 30.0
    vector_timeout: float = 10.0
    embedding_timeout: float = 20.0
    health_timeout: float = 5.0

    # Search bounds
    search_default_limit: int = 10
    search_max_limit: int = 100

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            port=_env_int("PORT", 8080),
            environment=_env("ENVIRONMENT", "development"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            database_url=_env("DATABASE_URL", "") or _postgres_url_from_env(),
            db_pool_size=_env_int("DB_POOL_SIZE", 5),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 20),
            db_pool_timeout=_env_float("DB_POOL_TIMEOUT", 30.0),
            vector_backend=_env("VECTOR_BACKEND", "qdrant").lower(),
            qdrant_url=_env("QDRANT_URL", "") or "http://{}:{}".format(
                _env("QDRANT_HOST", "localhost"), _env_int("QDRANT_PORT", 6333)
            ),
            qdrant_collection=_env("QDRANT_COLLECTION", "conversations"),
            faiss_index_dir=_env("FAISS_INDEX_DIR", "faiss_index"),
            embedding_provider=_env("EMBEDDING_PROVIDER", "openai").lower(),
            openai_api_key=load_key(_env("OPENAI_KEY_FILE", "config/openai.key")),
            openai_base_url=_env("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            openai_model=_env("OPENAI_MODEL", "text-embedding-3-large"),
            local_embed_model=_env("LOCAL_EMBED_MODEL", "intfloat/multilingual-e5-small"),
            embedding_dim=_env_int("EMBEDDING_DIM", 3072),
            request_timeout=_env_float("REQUEST_TIMEOUT", 30.0),
            vector_timeout=_env_float("VECTOR_TIMEOUT", 10.0),
            embedding_timeout=_env_float("EMBEDDING_TIMEOUT", 20.0),
            health_timeout=_env_float("HEALTH_TIMEOUT", 5.0),
            search_default_limit=_env_int("SEARCH_DEFAULT_LIMIT", 10),
            search_max_limit=_env_int("SEARCH_MAX_LIMIT", 100),
        )


def _postgres_url_from_env() -> str:
    """Assemble a SQLAlchemy PostgreSQL URL from the discrete POSTGRES_* variables."""
    from sqlalchemy.engine import URL

    url = URL.create(
        "postgresql+psycopg",
        username=_env("POSTGRES_USER", "postgres"),
        password=_env("POSTGRES_PASSWORD", "") or None,
        host=_env("POSTGRES_HOST", "localhost"),
        port=_env_int("POSTGRES_PORT", 5432),
        database=_env("POSTGRES_DB", "rag_db"),
        query={"sslmode": _env("POSTGRES_SSLMODE", "disable")},
    )
    return url.render_as_string(hide_password=False)
