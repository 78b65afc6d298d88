"""Qdrant vector index over the REST API.

Architectural role:
    Stores one point per conversation (`point_id`, vector, payload) and serves
    top-k cosine similarity search for the orchestrator.

Transport:
    Synchronous `requests` calls through one shared `Session`. Every call is
    bounded by a timeout: the caller's remaining request budget when given,
    otherwise the configured per-call default. No retries.

Payload contract:
    `conversation_id` (the original string id, verbatim) plus small
    denormalized fields such as `created_at` epoch seconds. Search results
    are returned with payloads so the string id can be recovered.

Failure modes:
    Transport errors, non-2xx statuses and undecodable bodies raise
    `VectorIndexError` with operation name and status code.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from ragserver.errors import ConfigurationError, VectorIndexError
from ragserver.models import ScoredPoint


logger = logging.getLogger(__name__)


DISTANCE = "Cosine"


class QdrantVectorIndex:
    """`VectorIndex` implementation backed by a Qdrant collection."""

    name = "qdrant"

    def __init__(
        self,
        base_url: str,
        collection: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self._timeout = timeout
        self._session = session or requests.Session()

    # =========================================================================
    # Transport
    # =========================================================================

    def _call(
        self,
        method: str,
        path: str,
        operation: str,
        timeout: Optional[float] = None,
        ok_statuses=(200,),
        **kwargs,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                timeout=timeout if timeout is not None else self._timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as err:
            raise VectorIndexError(
                f"failed to execute request: {err}", operation=operation
            ) from err

        if response.status_code not in ok_statuses:
            raise VectorIndexError(
                f"qdrant returned status {response.status_code}: {response.text[:500]}",
                operation=operation,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as err:
            raise VectorIndexError(
                "failed to decode response", operation=operation,
                status_code=response.status_code,
            ) from err

    # =========================================================================
    # Collection Operations
    # =========================================================================

    def collection_exists(self, timeout: Optional[float] = None) -> bool:
        """Return whether the configured collection is present."""
        data = self._call("GET", "/collections", "collection_exists", timeout)
        collections = (data.get("result") or {}).get("collections") or []
        return any(col.get("name") == self.collection for col in collections)

    def collection_info(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        data = self._call("GET", f"/collections/{self.collection}", "collection_info", timeout)
        return data.get("result") or {}

    def count(self, timeout: Optional[float] = None) -> int:
        """Return the number of stored points."""
        info = self.collection_info(timeout)
        return int(info.get("points_count") or 0)

    def ensure_collection(self, dimension: int) -> None:
        """Create the collection when missing; verify its vector size otherwise.

        Raises:
            ConfigurationError: When an existing collection has a different size.
            VectorIndexError: When Qdrant cannot be reached.
        """
        if self.collection_exists():
            size = self._configured_size(self.collection_info())
            if size is not None and size != dimension:
                raise ConfigurationError(
                    f"collection '{self.collection}' has vector size {size}, "
                    f"but embeddings have dimension {dimension}"
                )
            logger.info("Collection '%s' already exists, skipping creation", self.collection)
            return

        self._call(
            "PUT",
            f"/collections/{self.collection}",
            "create_collection",
            ok_statuses=(200, 201),
            json={"vectors": {"size": dimension, "distance": DISTANCE}},
        )
        logger.info("Successfully created collection '%s'", self.collection)

    @staticmethod
    def _configured_size(info: Dict[str, Any]) -> Optional[int]:
        vectors = ((info.get("config") or {}).get("params") or {}).get("vectors")
        if isinstance(vectors, dict) and "size" in vectors:
            return int(vectors["size"])
        return None

    # =========================================================================
    # Point Operations
    # =========================================================================

    def upsert(
        self,
        point_id: int,
        vector: Sequence[float],
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> None:
        point = {"id": point_id, "vector": list(vector), "payload": dict(payload)}
        self._call(
            "PUT",
            f"/collections/{self.collection}/points",
            "upsert",
            timeout,
            ok_statuses=(200, 201),
            params={"wait": "true"},
            json={"points": [point]},
        )

    def top_k(
        self,
        vector: Sequence[float],
        k: int,
        timeout: Optional[float] = None,
    ) -> List[ScoredPoint]:
        data = self._call(
            "POST",
            f"/collections/{self.collection}/points/search",
            "top_k",
            timeout,
            json={"vector": list(vector), "limit": k, "with_payload": True},
        )

        hits = []
        for item in data.get("result") or []:
            if not isinstance(item, dict):
                raise VectorIndexError(f"malformed search hit: {item!r}", operation="top_k")

            # UUID point ids come from other writers; this index only writes uint64 ids.
            point_id = item.get("id")
            if isinstance(point_id, bool) or not isinstance(point_id, int):
                logger.debug("Skipping hit with non-integer point id %r", point_id)
                continue

            try:
                score = float(item.get("score"))
            except (TypeError, ValueError) as err:
                raise VectorIndexError(
                    f"invalid score for point {point_id}: {item.get('score')!r}",
                    operation="top_k",
                ) from err

            payload = item.get("payload")
            hits.append(
                ScoredPoint(
                    point_id=point_id,
                    score=score,
                    payload=payload if isinstance(payload, dict) else {},
                )
            )
        return hits

    def delete(self, point_id: int, timeout: Optional[float] = None) -> None:
        self._call(
            "POST",
            f"/collections/{self.collection}/points/delete",
            "delete",
            timeout,
            params={"wait": "true"},
            json={"points": [point_id]},
        )

    def close(self) -> None:
        self._session.close()
