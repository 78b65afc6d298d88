"""Local FAISS vector index with JSON payload sidecar.

Architectural role:
    Single-process alternative to Qdrant for development and small
    deployments. Implements the same `VectorIndex` protocol so the
    orchestrator cannot tell the backends apart.

Index lifecycle:
    - `vectors.index` holds an `IndexIDMap2(IndexFlatIP)`; vectors are L2
      normalized, so inner product equals cosine similarity.
    - `payloads.json` maps point id (decimal string) to payload.
    - Both files are written to temporaries and swapped in with `os.replace`
      after every mutation.
    - Mutations run on a clone of the index; memory only switches to the
      clone after both files are written. A failed write leaves the in-memory
      index and payloads untouched.
    - A dimension mismatch between the stored index and the configured
      embedding dimension is fatal (`ConfigurationError`).

Point ids:
    FAISS labels are signed 64-bit. Unsigned point ids are stored in their
    two's-complement form and converted back on search.

Concurrency:
    All index and payload access is serialized by one lock.
"""

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np

from ragserver.errors import ConfigurationError, VectorIndexError
from ragserver.models import ScoredPoint


logger = logging.getLogger(__name__)


INDEX_FILE = "vectors.index"
PAYLOAD_FILE = "payloads.json"

_TWO_64 = 1 << 64
_TWO_63 = 1 << 63


def to_faiss_label(point_id: int) -> int:
    """Map an unsigned 64-bit point id onto FAISS's signed label space."""
    return point_id - _TWO_64 if point_id >= _TWO_63 else point_id


def from_faiss_label(label: int) -> int:
    """Inverse of `to_faiss_label`."""
    return label + _TWO_64 if label < 0 else label


def atomic_json_save(path, data):
    """Persist JSON data atomically via temporary file replacement."""
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
    os.replace(tmp, path)


def _as_matrix(vector: Sequence[float]) -> np.ndarray:
    vec = np.asarray([vector], dtype="float32")
    faiss.normalize_L2(vec)
    return vec


class FaissVectorIndex:
    """`VectorIndex` implementation over an on-disk FAISS index."""

    name = "faiss"

    def __init__(self, index_dir: str):
        self.index_dir = index_dir
        self._index_path = os.path.join(index_dir, INDEX_FILE)
        self._payload_path = os.path.join(index_dir, PAYLOAD_FILE)
        self._lock = threading.Lock()
        self._index = None
        self._payloads: Dict[str, Dict[str, Any]] = {}

    # =========================================================================
    # Collection Operations
    # =========================================================================

    def collection_exists(self, timeout: Optional[float] = None) -> bool:
        return self._index is not None or os.path.exists(self._index_path)

    def ensure_collection(self, dimension: int) -> None:
        """Load the on-disk index or create an empty one.

        Raises:
            ConfigurationError: When the stored index has another dimension.
        """
        with self._lock:
            os.makedirs(self.index_dir, exist_ok=True)

            if os.path.exists(self._index_path):
                try:
                    index = faiss.read_index(self._index_path)
                except Exception as err:
                    raise VectorIndexError(
                        f"failed to load FAISS index from {self._index_path}: {err}",
                        operation="ensure_collection",
                    ) from err
                if index.d != dimension:
                    raise ConfigurationError(
                        f"FAISS index dimension {index.d} does not match "
                        f"embedding dimension {dimension}"
                    )
                self._index = index
                self._payloads = self._load_payloads()
                if index.ntotal != len(self._payloads):
                    logger.warning(
                        "FAISS index/payload count mismatch (index=%s, payloads=%s)",
                        index.ntotal,
                        len(self._payloads),
                    )
                logger.info("Loaded FAISS index with %d vectors", index.ntotal)
                return

            self._commit(faiss.IndexIDMap2(faiss.IndexFlatIP(dimension)), {})
            logger.info("Created empty FAISS index (dimension=%d) in %s", dimension, self.index_dir)

    def count(self, timeout: Optional[float] = None) -> int:
        with self._lock:
            return int(self._require_index("count").ntotal)

    def _load_payloads(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self._payload_path):
            return {}
        try:
            with open(self._payload_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except Exception:
            logger.exception("Failed to load FAISS payloads from %s", self._payload_path)
            return {}
        return data if isinstance(data, dict) else {}

    def _require_index(self, operation: str):
        if self._index is None:
            raise VectorIndexError("FAISS index is not initialized", operation=operation)
        return self._index

    def _persist(self, index, payloads: Dict[str, Dict[str, Any]]) -> None:
        index_tmp = self._index_path + ".tmp"
        faiss.write_index(index, index_tmp)
        os.replace(index_tmp, self._index_path)
        atomic_json_save(self._payload_path, payloads)

    def _commit(self, index, payloads: Dict[str, Dict[str, Any]]) -> None:
        """Persist a mutated copy, then make it the live state."""
        self._persist(index, payloads)
        self._index = index
        self._payloads = payloads

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
        with self._lock:
            index = self._require_index("upsert")
            if len(vector) != index.d:
                raise VectorIndexError(
                    f"vector has dimension {len(vector)}, index expects {index.d}",
                    operation="upsert",
                )
            label = np.asarray([to_faiss_label(point_id)], dtype="int64")
            # Mutate a copy; the live index only changes once the write lands.
            try:
                candidate = faiss.clone_index(index)
                candidate.remove_ids(label)
                candidate.add_with_ids(_as_matrix(vector), label)
                payloads = dict(self._payloads)
                payloads[str(point_id)] = dict(payload)
                self._commit(candidate, payloads)
            except Exception as err:
                raise VectorIndexError(f"FAISS upsert failed: {err}", operation="upsert") from err

    def top_k(
        self,
        vector: Sequence[float],
        k: int,
        timeout: Optional[float] = None,
    ) -> List[ScoredPoint]:
        with self._lock:
            index = self._require_index("top_k")
            if index.ntotal == 0:
                return []
            try:
                scores, labels = index.search(_as_matrix(vector), min(k, index.ntotal))
            except Exception as err:
                raise VectorIndexError(f"FAISS search failed: {err}", operation="top_k") from err

            hits = []
            for score, label in zip(scores[0], labels[0]):
                if label < 0:
                    continue
                point_id = from_faiss_label(int(label))
                hits.append(
                    ScoredPoint(
                        point_id=point_id,
                        score=float(score),
                        payload=dict(self._payloads.get(str(point_id), {})),
                    )
                )
            return hits

    def delete(self, point_id: int, timeout: Optional[float] = None) -> None:
        with self._lock:
            index = self._require_index("delete")
            try:
                candidate = faiss.clone_index(index)
                candidate.remove_ids(np.asarray([to_faiss_label(point_id)], dtype="int64"))
                payloads = dict(self._payloads)
                payloads.pop(str(point_id), None)
                self._commit(candidate, payloads)
            except Exception as err:
                raise VectorIndexError(f"FAISS delete failed: {err}", operation="delete") from err

    def close(self) -> None:
        pass
