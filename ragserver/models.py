"""Data contracts shared by the orchestration, storage, and API layers.

Architectural role:
    Defines the structural records that travel between `core.orchestrator`,
    the storage backends, and the HTTP adapter. Classes are state-free data
    holders; behavior lives in the layers that produce and consume them.

Determinism:
    Serialization helpers (`to_dict`) are deterministic for identical inputs.
    Timestamps are always timezone-aware UTC.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
VALID_ROLES = (ROLE_USER, ROLE_ASSISTANT)

IMPORTANCE_LEVELS = ("high", "medium", "low")


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as RFC 3339 UTC with second precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class Message:
    """One role-tagged conversation turn."""

    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationRecord:
    """Authoritative conversation row owned by the relational store.

    Attributes:
        id: Opaque, globally unique conversation identifier (cross-store join key).
        question: User-side text (flat question or joined user turns).
        answer: Assistant-side text, possibly empty.
        user_id: Optional owner tag; empty when the caller supplies none.
        metadata: Opaque key-value bag, stored and returned verbatim.
        created_at: First write time (preserved across upserts).
        updated_at: Last write time.
    """

    id: str
    question: str
    answer: str = ""
    user_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def messages(self) -> List[Message]:
        """Rebuild the role-tagged view: a user turn, then an assistant turn."""
        turns = []
        if self.question:
            turns.append(Message(ROLE_USER, self.question))
        if self.answer:
            turns.append(Message(ROLE_ASSISTANT, self.answer))
        return turns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "question": self.question,
            "answer": self.answer,
            "metadata": self.metadata,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
        }


@dataclass
class SaveRequest:
    """Input for `ConversationService.save`.

    Either `messages` or the flat `question`/`answer` pair carries content.
    When both are present, `messages` wins.
    """

    conversation_id: Optional[str] = None
    messages: List[Message] = field(default_factory=list)
    question: str = ""
    answer: str = ""
    user_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SaveResult:
    """Summary of a completed save.

    `vectors_created` reflects the real outcome of the vector-index write:
    `0` when that best-effort write was absorbed as a soft failure.
    """

    conversation_id: str
    vectors_created: int
    messages_stored: int
    stored_at: datetime
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "vectors_created": self.vectors_created,
            "messages_stored": self.messages_stored,
            "stored_at": isoformat_utc(self.stored_at),
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass
class ScoredPoint:
    """One raw hit returned by a vector index."""

    point_id: int
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """A vector hit merged with its hydrated conversation record."""

    conversation_id: str
    score: float
    timestamp: Optional[datetime]
    messages: List[Message] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "score": self.score,
            "timestamp": isoformat_utc(self.timestamp),
            "messages": [m.to_dict() for m in self.messages],
            "metadata": self.metadata,
        }


@dataclass
class SearchMetadata:
    """Observability fields attached to a search response."""

    embedding_model: str
    vector_db: str
    search_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "embedding_model": self.embedding_model,
            "vector_db": self.vector_db,
            "search_time_ms": self.search_time_ms,
        }


@dataclass
class SearchResult:
    """Ranked search output, ordered by score descending."""

    query: str
    results: List[SearchHit]
    search_metadata: SearchMetadata

    @property
    def total_results(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "results": [hit.to_dict() for hit in self.results],
            "total_results": self.total_results,
            "search_metadata": self.search_metadata.to_dict(),
        }


@dataclass
class PersonalInfo:
    """Guardian-provided personal information entry (relational only)."""

    id: str
    user_id: str
    content: str
    category: str
    importance: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "category": self.category,
            "importance": self.importance,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
        }
