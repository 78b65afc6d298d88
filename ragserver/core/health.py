"""Dependency health probes for `GET /api/rag/health`.

Each probe runs in a worker thread bounded by its own short timeout so a
hung dependency cannot stall the whole check. The overall status is
`healthy` only when the relational store and the vector index both are;
the embedding entry reports configuration only and never flips the result.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from ragserver import __version__
from ragserver.models import isoformat_utc, utcnow


logger = logging.getLogger(__name__)


HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class HealthChecker:
    """Probe the collaborators of one `ConversationService` wiring.

    Args:
        store: Relational store exposing `ping()` (and optionally `pool_status()`).
        index: Vector index exposing `collection_exists()` and `count()`.
        embedder: Embedding provider; only `model_name` is read.
        timeout: Seconds allowed per probe.
        version: Version string reported in the response.
    """

    def __init__(self, store, index, embedder, timeout: float = 5.0, version: str = __version__):
        self._store = store
        self._index = index
        self._embedder = embedder
        self.timeout = timeout
        self.version = version

    async def _probe(self, fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            details = await asyncio.wait_for(asyncio.to_thread(fn), self.timeout)
        except asyncio.TimeoutError:
            return {"status": UNHEALTHY, "error": f"timed out after {self.timeout}s"}
        except Exception as err:
            logger.warning("Health probe failed: %s", err)
            return {"status": UNHEALTHY, "error": str(err)}

        result = {"status": HEALTHY, "response_time_ms": int((time.perf_counter() - start) * 1000)}
        result.update(details or {})
        return result

    def _check_relational(self) -> Dict[str, Any]:
        self._store.ping()
        pool_status = getattr(self._store, "pool_status", None)
        return {"connections": pool_status()} if callable(pool_status) else {}

    def _check_vector(self) -> Dict[str, Any]:
        if not self._index.collection_exists(timeout=self.timeout):
            raise RuntimeError("collection does not exist")
        return {
            "backend": self._index.name,
            "total_vectors": self._index.count(timeout=self.timeout),
        }

    def _check_embedding(self) -> Optional[Dict[str, Any]]:
        return {
            "model": self._embedder.model_name,
            "last_check": isoformat_utc(utcnow()),
        }

    async def check(self) -> Dict[str, Any]:
        """Run all probes and return the health report."""
        relational = await self._probe(self._check_relational)
        vector = await self._probe(self._check_vector)
        embedding = await self._probe(self._check_embedding)

        healthy = relational["status"] == HEALTHY and vector["status"] == HEALTHY
        if not healthy:
            logger.warning(
                "Health check unhealthy (relational=%s, vector=%s)",
                relational["status"],
                vector["status"],
            )

        return {
            "status": HEALTHY if healthy else UNHEALTHY,
            "timestamp": isoformat_utc(utcnow()),
            "version": self.version,
            "dependencies": {
                "relational_store": relational,
                "vector_index": vector,
                "embedding_provider": embedding,
            },
        }
