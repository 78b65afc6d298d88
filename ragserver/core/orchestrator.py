"""Conversation orchestration: dual-store save and search-hydrate-merge.

Architectural role:
    `ConversationService` is the only component that talks to all three
    collaborators (embedding provider, relational store, vector index). The
    HTTP adapter and CLI delegate here; collaborators never call each other.

Save lifecycle:
1. Validate content and resolve the id (generate a UUID4 when absent).
2. Embed the derived text. Failure aborts the save with nothing persisted.
3. Upsert the record into the relational store. Failure aborts the save.
4. Upsert the vector point under the hashed point id. Failure is logged as a
   `SoftDependencyWarning` and absorbed; the save still succeeds, and the
   result reports `vectors_created=0`.

Search lifecycle:
1. Validate the query and clamp the result count.
2. Embed the query.
3. Top-k vector search; hits whose payload lacks `conversation_id` are dropped.
4. Build an id -> score map (last write wins).
5. Batch-fetch records from the relational store.
6. Rebuild role-tagged messages and attach scores.
7. Re-sort by score descending (ties by id), since the relational store
   returns rows in its own order.

Deadlines:
    Callers may pass a `time.monotonic()` deadline. Each collaborator call
    gets the smaller of the remaining budget and its configured per-call
    timeout; an exhausted budget fails the call before it is made.

Error handling strategy:
    `ValidationError` is raised before any collaborator call. Collaborator
    errors (`UpstreamDependencyError` subclasses) propagate unchanged, except
    for the vector upsert during save.
"""

import logging
import time
import uuid
from typing import Dict, List, Optional, Tuple

from ragserver.embedding.base import EmbeddingProvider
from ragserver.errors import (
    EmbeddingProviderError,
    NotFoundError,
    SoftDependencyWarning,
    ValidationError,
    VectorIndexError,
)
from ragserver.models import (
    VALID_ROLES,
    ROLE_USER,
    ConversationRecord,
    SaveRequest,
    SaveResult,
    SearchHit,
    SearchMetadata,
    SearchResult,
    utcnow,
)
from ragserver.storage.base import RelationalStore, VectorIndex
from ragserver.storage.point_id import point_id_for


logger = logging.getLogger(__name__)


PAYLOAD_ID_KEY = "conversation_id"
PAYLOAD_CREATED_AT_KEY = "created_at"

MIN_LIMIT = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ConversationService:
    """Coordinates embedding, relational persistence and vector indexing.

    Args:
        store: Relational source of truth.
        index: Best-effort vector index.
        embedder: Embedding provider whose dimension matches the index.
        default_limit: Result count used when the caller gives none (or <= 0).
        max_limit: Upper clamp for the result count.
        embedding_timeout: Per-call timeout for embedding requests.
        vector_timeout: Per-call timeout for vector-index requests.
    """

    def __init__(
        self,
        store: RelationalStore,
        index: VectorIndex,
        embedder: EmbeddingProvider,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        embedding_timeout: float = 20.0,
        vector_timeout: float = 10.0,
    ):
        self._store = store
        self._index = index
        self._embedder = embedder
        self.max_limit = max(MIN_LIMIT, max_limit)
        self.default_limit = min(max(MIN_LIMIT, default_limit), self.max_limit)
        self._embedding_timeout = embedding_timeout
        self._vector_timeout = vector_timeout

    # =========================================================================
    # Helpers
    # =========================================================================

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Clamp a requested result count into `[1, max_limit]`.

        Missing or non-positive values fall back to `default_limit`.
        """
        if limit is None or limit <= 0:
            return self.default_limit
        return min(limit, self.max_limit)

    @staticmethod
    def _budget(deadline: Optional[float], per_call: float, error_cls, operation: str) -> float:
        if deadline is None:
            return per_call
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise error_cls("request deadline exceeded before call", operation=operation)
        return min(remaining, per_call)

    @staticmethod
    def _derive_content(request: SaveRequest) -> Tuple[str, str, str, int]:
        """Return `(question, answer, text_to_embed, units_stored)`.

        Raises:
            ValidationError: For missing content, bad roles or empty messages.
        """
        if request.messages:
            user_turns: List[str] = []
            assistant_turns: List[str] = []
            for i, msg in enumerate(request.messages):
                if not msg.content or not msg.content.strip():
                    raise ValidationError(
                        "message content cannot be empty",
                        field="messages",
                        details={"message_index": i, "reason": "message content is required"},
                    )
                if msg.role not in VALID_ROLES:
                    raise ValidationError(
                        "invalid message role",
                        field="messages",
                        details={
                            "message_index": i,
                            "valid_roles": list(VALID_ROLES),
                            "provided_role": msg.role,
                        },
                    )
                (user_turns if msg.role == ROLE_USER else assistant_turns).append(msg.content)

            text = " ".join(msg.content for msg in request.messages)
            return "\n".join(user_turns), "\n".join(assistant_turns), text, len(request.messages)

        question = request.question or ""
        answer = request.answer or ""
        if not question.strip() and not answer.strip():
            raise ValidationError(
                "conversation content is required",
                field="messages",
                details={"fields": ["messages", "question"], "reason": "required fields missing"},
            )

        parts = [p for p in (question, answer) if p.strip()]
        return question, answer, " ".join(parts), len(parts)

    # =========================================================================
    # Save
    # =========================================================================

    def save(self, request: SaveRequest, deadline: Optional[float] = None) -> SaveResult:
        """Persist a conversation to both stores.

        Returns:
            `SaveResult` whose `vectors_created` is `1` only when the vector
            point was actually written.

        Raises:
            ValidationError: Before any collaborator call.
            EmbeddingProviderError: Embedding failed; nothing was persisted.
            RelationalStoreError: Relational write failed.
        """
        start = time.perf_counter()

        question, answer, text_to_embed, units = self._derive_content(request)
        conversation_id = (request.conversation_id or "").strip() or str(uuid.uuid4())

        vector = self._embedder.embed(
            text_to_embed,
            is_query=False,
            timeout=self._budget(deadline, self._embedding_timeout, EmbeddingProviderError, "embed"),
        )

        now = utcnow()
        record = ConversationRecord(
            id=conversation_id,
            user_id=request.user_id or "",
            question=question,
            answer=answer,
            metadata=dict(request.metadata or {}),
            created_at=now,
            updated_at=now,
        )
        created_at = self._store.upsert(record) or now

        point_id = point_id_for(conversation_id)
        payload = {
            PAYLOAD_ID_KEY: conversation_id,
            PAYLOAD_CREATED_AT_KEY: int(created_at.timestamp()),
        }

        vectors_created = 0
        try:
            timeout = self._budget(deadline, self._vector_timeout, VectorIndexError, "upsert")
            self._index.upsert(point_id, vector, payload, timeout=timeout)
            vectors_created = 1
        except Exception as err:
            warning = SoftDependencyWarning(conversation_id, point_id, err)
            logger.warning("%s", warning, exc_info=True)

        logger.info(
            "Saved conversation %s (units=%d, vectors=%d)",
            conversation_id,
            units,
            vectors_created,
        )

        return SaveResult(
            conversation_id=conversation_id,
            vectors_created=vectors_created,
            messages_stored=units,
            stored_at=now,
            processing_time_ms=_elapsed_ms(start),
        )

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> SearchResult:
        """Embed `query`, find similar conversations, hydrate and rank them.

        Returns:
            `SearchResult` ordered by score descending; empty when the index
            has no hits.

        Raises:
            ValidationError: Empty query.
            UpstreamDependencyError: Any collaborator failure.
        """
        start = time.perf_counter()

        query = (query or "").strip()
        if not query:
            raise ValidationError("Query text cannot be empty", field="query",
                                  details={"field": "query", "reason": "required field missing"})
        k = self.clamp_limit(limit)

        vector = self._embedder.embed(
            query,
            is_query=True,
            timeout=self._budget(deadline, self._embedding_timeout, EmbeddingProviderError, "embed"),
        )

        points = self._index.top_k(
            vector,
            k,
            timeout=self._budget(deadline, self._vector_timeout, VectorIndexError, "top_k"),
        )

        scores: Dict[str, float] = {}
        for point in points:
            conversation_id = point.payload.get(PAYLOAD_ID_KEY)
            if not isinstance(conversation_id, str) or not conversation_id:
                logger.debug("Skipping point %s without conversation id", point.point_id)
                continue
            scores[conversation_id] = point.score

        hits: List[SearchHit] = []
        if scores:
            records = self._store.fetch_many(list(scores))
            for record in records:
                score = scores.get(record.id)
                if score is None:
                    continue
                hits.append(
                    SearchHit(
                        conversation_id=record.id,
                        score=score,
                        timestamp=record.created_at,
                        messages=record.messages(),
                        metadata=record.metadata,
                    )
                )
            hits.sort(key=lambda hit: (-hit.score, hit.conversation_id))

        elapsed = _elapsed_ms(start)
        logger.info(
            "Search returned %d hit(s) from %d point(s) in %dms (query: %s...)",
            len(hits),
            len(points),
            elapsed,
            query[:50],
        )

        return SearchResult(
            query=query,
            results=hits,
            search_metadata=SearchMetadata(
                embedding_model=self._embedder.model_name,
                vector_db=self._index.name,
                search_time_ms=elapsed,
            ),
        )

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, conversation_id: str) -> ConversationRecord:
        """Return one stored conversation.

        Raises:
            ValidationError: Empty id.
            NotFoundError: No row with that id.
        """
        conversation_id = (conversation_id or "").strip()
        if not conversation_id:
            raise ValidationError("conversation_id is required", field="conversation_id")

        record = self._store.fetch_one(conversation_id)
        if record is None:
            raise NotFoundError(
                "conversation not found",
                resource="conversation",
                resource_id=conversation_id,
            )
        return record
