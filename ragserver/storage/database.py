"""SQLAlchemy engine factory and relational schema.

Architectural role:
    Owns the table definitions shared by `conversation_store` and
    `personal_info_store`, builds the pooled engine, and provisions the schema.

Connection pool:
    PostgreSQL engines use a `QueuePool` with a small idle floor
    (`pool_size`) and a bounded burst (`max_overflow`). Exhaustion blocks for
    up to `pool_timeout` seconds before raising. SQLite URLs (tests, local
    runs) keep SQLAlchemy's default pool; in-memory SQLite shares one
    connection through `StaticPool`.
"""

import logging

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ragserver.errors import ConfigurationError, RelationalStoreError


logger = logging.getLogger(__name__)


metadata = MetaData()

# JSONB on PostgreSQL, generic JSON elsewhere.
_JsonType = JSON().with_variant(JSONB(), "postgresql")

conversations = Table(
    "conversations",
    metadata,
    Column("id", String(255), primary_key=True),
    Column("user_id", String(255), nullable=False, default=""),
    Column("question", Text, nullable=False),
    Column("answer", Text, nullable=True),
    Column("metadata", _JsonType, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("idx_conversations_user_id", "user_id"),
    Index("idx_conversations_created_at", "created_at"),
)

personal_info = Table(
    "personal_info",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("category", String(50), nullable=False),
    Column("importance", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("idx_personal_info_user_id", "user_id"),
    Index("idx_personal_info_category", "category"),
)


def create_db_engine(
    url: str,
    pool_size: int = 5,
    max_overflow: int = 20,
    pool_timeout: float = 30.0,
) -> Engine:
    """Create the shared engine for all relational stores.

    Args:
        url: SQLAlchemy database URL.
        pool_size: Connections kept open while idle.
        max_overflow: Extra connections allowed above `pool_size`.
        pool_timeout: Seconds to wait for a free connection.

    Returns:
        Configured `Engine`. No connection is opened yet.

    Raises:
        ConfigurationError: When the URL cannot be parsed.
    """
    try:
        parsed = make_url(url)
    except Exception as err:
        raise ConfigurationError(f"invalid DATABASE_URL: {err}") from err

    if parsed.get_backend_name() == "sqlite":
        if parsed.database in (None, "", ":memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )


def migrate(engine: Engine) -> None:
    """Create the relational tables and indexes when missing."""
    logger.info("Running database migrations...")
    try:
        metadata.create_all(engine)
    except SQLAlchemyError as err:
        raise RelationalStoreError(f"failed to run migrations: {err}", operation="migrate") from err
    logger.info("Database migrations completed")
