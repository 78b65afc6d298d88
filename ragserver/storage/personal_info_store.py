"""Relational store for guardian-provided personal information.

Personal information lives only in the relational database; it is never
embedded or indexed. Shares the engine (and therefore the connection pool)
with `SqlConversationStore`.
"""

import logging
from datetime import timezone
from typing import List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ragserver.errors import NotFoundError, RelationalStoreError
from ragserver.models import PersonalInfo
from ragserver.storage.database import personal_info


logger = logging.getLogger(__name__)


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_info(row) -> PersonalInfo:
    data = row._mapping
    return PersonalInfo(
        id=data["id"],
        user_id=data["user_id"],
        content=data["content"],
        category=data["category"],
        importance=data["importance"],
        created_at=_aware(data["created_at"]),
        updated_at=_aware(data["updated_at"]),
    )


class SqlPersonalInfoStore:
    """CRUD over the `personal_info` table."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def save(self, info: PersonalInfo) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    insert(personal_info).values(
                        id=info.id,
                        user_id=info.user_id,
                        content=info.content,
                        category=info.category,
                        importance=info.importance,
                        created_at=info.created_at,
                        updated_at=info.updated_at,
                    )
                )
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to save personal info: {err}", operation="save_personal_info"
            ) from err

    def get(self, info_id: str) -> Optional[PersonalInfo]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(personal_info).where(personal_info.c.id == info_id)
                ).first()
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to get personal info: {err}", operation="get_personal_info"
            ) from err
        return _row_to_info(row) if row is not None else None

    def list_by_user(self, user_id: str) -> List[PersonalInfo]:
        """Return all entries for `user_id`, newest first."""
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(personal_info)
                    .where(personal_info.c.user_id == user_id)
                    .order_by(personal_info.c.created_at.desc())
                ).all()
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to query personal info: {err}", operation="list_personal_info"
            ) from err
        return [_row_to_info(row) for row in rows]

    def update(self, info: PersonalInfo) -> None:
        """Overwrite content, category, importance and `updated_at`.

        Raises:
            NotFoundError: When no row has `info.id`.
        """
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(personal_info)
                    .where(personal_info.c.id == info.id)
                    .values(
                        content=info.content,
                        category=info.category,
                        importance=info.importance,
                        updated_at=info.updated_at,
                    )
                )
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to update personal info: {err}", operation="update_personal_info"
            ) from err

        if result.rowcount == 0:
            raise NotFoundError("personal info not found", resource="personal_info", resource_id=info.id)

    def delete(self, info_id: str) -> None:
        """Delete one entry.

        Raises:
            NotFoundError: When no row has `info_id`.
        """
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(personal_info).where(personal_info.c.id == info_id))
        except SQLAlchemyError as err:
            raise RelationalStoreError(
                f"failed to delete personal info: {err}", operation="delete_personal_info"
            ) from err

        if result.rowcount == 0:
            raise NotFoundError("personal info not found", resource="personal_info", resource_id=info_id)
