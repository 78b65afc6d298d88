"""
Shared test fixtures and collaborator fakes for pytest.
"""

import logging
import math
import re

import pytest

from ragserver.core.orchestrator import ConversationService
from ragserver.errors import EmbeddingProviderError, VectorIndexError
from ragserver.models import ScoredPoint
from ragserver.storage.conversation_store import SqlConversationStore
from ragserver.storage.database import create_db_engine, migrate
from ragserver.storage.personal_info_store import SqlPersonalInfoStore
from ragserver.storage.point_id import fnv1a_64


logger = logging.getLogger(__name__)


# ============================================================================
# Fakes
# ============================================================================

class FakeEmbedder:
    """Deterministic bag-of-words embedder.

    Each lowercase word is hashed into one of `dimension` buckets, so texts
    sharing words get a higher cosine similarity.
    """

    model_name = "fake-embedding"

    def __init__(self, dimension: int = 64):
        self._dimension = dimension
        self.calls = []
        self.fail = False

    @property
    def dimension(self):
        return self._dimension

    def _vector(self, text):
        vec = [0.0] * self._dimension
        for word in re.findall(r"\w+", text.lower()):
            vec[fnv1a_64(word.encode("utf-8")) % self._dimension] += 1.0
        norm = math.sqrt(sum(x * x for x in vec)) or 1.0
        return [x / norm for x in vec]

    def embed(self, text, is_query=False, timeout=None):
        self.calls.append({"text": text, "is_query": is_query, "timeout": timeout})
        if self.fail:
            raise EmbeddingProviderError("embedding service unavailable", operation="embed", status_code=503)
        return self._vector(text)

    def embed_batch(self, texts, timeout=None):
        return [self.embed(t, timeout=timeout) for t in texts]


class InMemoryVectorIndex:
    """Brute-force cosine index keyed by point id."""

    name = "memory"

    def __init__(self):
        self.points = {}
        self.fail_upsert = False
        self.fail_search = False
        self.forced_hits = None
        self.upsert_timeouts = []

    def upsert(self, point_id, vector, payload, timeout=None):
        self.upsert_timeouts.append(timeout)
        if self.fail_upsert:
            raise VectorIndexError("connection refused", operation="upsert")
        self.points[point_id] = (list(vector), dict(payload))

    def top_k(self, vector, k, timeout=None):
        if self.fail_search:
            raise VectorIndexError("connection refused", operation="top_k")
        if self.forced_hits is not None:
            return list(self.forced_hits)[:k]

        hits = []
        for point_id, (stored, payload) in self.points.items():
            score = sum(a * b for a, b in zip(vector, stored))
            hits.append(ScoredPoint(point_id=point_id, score=score, payload=dict(payload)))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:k]

    def delete(self, point_id, timeout=None):
        self.points.pop(point_id, None)

    def collection_exists(self, timeout=None):
        return True

    def ensure_collection(self, dimension):
        pass

    def count(self, timeout=None):
        return len(self.points)

    def close(self):
        pass


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine with the schema applied."""
    eng = create_db_engine("sqlite://")
    migrate(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return SqlConversationStore(engine)


@pytest.fixture
def personal_store(engine):
    return SqlPersonalInfoStore(engine)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def index():
    return InMemoryVectorIndex()


@pytest.fixture
def service(store, index, embedder):
    return ConversationService(store, index, embedder)
