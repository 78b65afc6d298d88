"""Collaborator protocols for the relational store and the vector index.

The orchestrator depends only on these shapes, so tests can substitute fakes
and deployments can switch backends without touching orchestration code.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from ragserver.models import ConversationRecord, ScoredPoint


@runtime_checkable
class RelationalStore(Protocol):
    """Authoritative conversation storage keyed by string id.

    Failures raise `RelationalStoreError`.
    """

    def upsert(self, record: ConversationRecord) -> datetime:
        """Write the row and return its persisted `created_at`."""
        ...

    def fetch_one(self, conversation_id: str) -> Optional[ConversationRecord]: ...

    def fetch_many(self, conversation_ids: Sequence[str]) -> List[ConversationRecord]:
        """Return the rows that exist; absent ids are silently omitted.

        Row order is store-defined and carries no ranking meaning.
        """
        ...

    def ping(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class VectorIndex(Protocol):
    """Approximate nearest-neighbor index keyed by uint64 point id.

    Failures raise `VectorIndexError`.
    """

    name: str

    def upsert(
        self,
        point_id: int,
        vector: Sequence[float],
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> None: ...

    def top_k(
        self,
        vector: Sequence[float],
        k: int,
        timeout: Optional[float] = None,
    ) -> List[ScoredPoint]: ...

    def delete(self, point_id: int, timeout: Optional[float] = None) -> None: ...

    def collection_exists(self, timeout: Optional[float] = None) -> bool: ...

    def ensure_collection(self, dimension: int) -> None: ...

    def count(self, timeout: Optional[float] = None) -> int: ...

    def close(self) -> None: ...
