"""Relational conversation store (source of truth).

Architectural role:
    Persists exact conversation content keyed by the opaque conversation id.
    The vector index only ever holds a derived copy; this store is what search
    hydration reads and what `GET /conversation/{id}` serves.

Upsert semantics:
    Writing an existing id updates content, owner, metadata and `updated_at`
    in place; `created_at` keeps its first value. PostgreSQL and SQLite use a
    native `INSERT ... ON CONFLICT DO UPDATE`; other dialects fall back to a
    transactional update-then-insert.

Failure modes:
    Every `SQLAlchemyError` is re-raised as `RelationalStoreError` naming the
    operation.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ragserver.errors import RelationalStoreError
from ragserver.models import ConversationRecord, utcnow
from ragserver.storage.database import conversations


logger = logging.getLogger(__name__)


def _aware(value):
    """SQLite drops tzinfo on read; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_record(row) -> ConversationRecord:
    data = row._mapping
    return ConversationRecord(
        id=data["id"],
        user_id=data["user_id"] or "",
        question=data["question"] or "",
        answer=data["answer"] or "",
        metadata=dict(data["metadata"] or {}),
        created_at=_aware(data["created_at"]),
        updated_at=_aware(data["updated_at"]),
    )


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


class SqlConversationStore:
    """SQLAlchemy Core implementation of the `RelationalStore` protocol."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._insert = _dialect_insert(engine.dialect.name)

    def upsert(self, record: ConversationRecord) -> datetime:
        """Insert or update one conversation row.

        Missing timestamps are filled with the current UTC time before writing.

        Returns:
            The row's persisted `created_at`, which keeps the first save's
            value when the id already existed.
        """
        now = utcnow()
        values = {
            "id": record.id,
            "user_id": record.user_id or "",
            "question": record.question,
            "answer": record.answer,
            "metadata": record.metadata or {},
            "created_at": record.created_at or now,
            "updated_at": record.updated_at or now,
        }
        mutable = ("user_id", "question", "answer", "metadata", "updated_at")

        try:
            with self._engine.begin() as conn:
                if self._insert is not None:
                    stmt = self._insert(conversations).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[conversations.c.id],
                        set_={name: stmt.excluded[name] for name in mutable},
                    )
                    conn.execute(stmt)
                else:
                    result = conn.execute(
                        conversations.update()
                        .where(conversations.c.id == record.id)
                        .values(**{name: values[name] for name in mutable})
                    )
                    if result.rowcount == 0:
                        conn.execute(conversations.insert().values(**values))
                created_at = conn.execute(
                    select(conversations.c.created_at).where(conversations.c.id == record.id)
                ).scalar_one()
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to save conversation {record.id}: {err}", operation="upsert"
            ) from err
        return _aware(created_at)

    def fetch_one(self, conversation_id: str) -> Optional[ConversationRecord]:
        """Return the conversation or `None` when absent."""
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(conversations).where(conversations.c.id == conversation_id)
                ).first()
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to get conversation: {err}", operation="fetch_one"
            ) from err

        if row is None:
            return None
        return _row_to_record(row)

    def fetch_many(self, conversation_ids: Sequence[str]) -> List[ConversationRecord]:
        """Return existing conversations for `conversation_ids`, newest first.

        Absent ids are omitted. The recency order is the store default and is
        unrelated to similarity rank.
        """
        ids = list(dict.fromkeys(conversation_ids))
        if not ids:
            return []

        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(conversations)
                    .where(conversations.c.id.in_(ids))
                    .order_by(conversations.c.created_at.desc())
                ).all()
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to query conversations: {err}", operation="fetch_many"
            ) from err

        return [_row_to_record(row) for row in rows]

    def ping(self) -> None:
        """Round-trip a trivial query; raises `RelationalStoreError` on failure."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as err:
            raise RelationalStoreError(f"ping failed: {err}", operation="ping") from err

    def pool_status(self) -> dict:
        """Report pool counters when the engine pool exposes them."""
        pool = self._engine.pool
        status = {}
        for name in ("size", "checkedout", "overflow"):
            fn = getattr(pool, name, None)
            if callable(fn):
                status[name] = fn()
        return status

    def close(self) -> None:
        self._engine.dispose()
