"""
Unit tests for the file-backed FAISS vector index.
"""

import json
import os

import pytest

from ragserver.errors import ConfigurationError, VectorIndexError
from ragserver.storage.faiss_index import (
    INDEX_FILE,
    PAYLOAD_FILE,
    FaissVectorIndex,
    from_faiss_label,
    to_faiss_label,
)
from ragserver.storage.point_id import point_id_for


@pytest.fixture
def faiss_index(tmp_path):
    index = FaissVectorIndex(str(tmp_path / "idx"))
    index.ensure_collection(3)
    return index


class TestLabels:
    """Tests for signed/unsigned label conversion."""

    @pytest.mark.parametrize("point_id", [1, 2 ** 63 - 1, 2 ** 63, 2 ** 64 - 1, point_id_for("conv-1")])
    def test_round_trip(self, point_id):
        label = to_faiss_label(point_id)

        assert -(2 ** 63) <= label < 2 ** 63
        assert from_faiss_label(label) == point_id


class TestFaissVectorIndex:
    """Tests for FaissVectorIndex."""

    def test_requires_collection(self, tmp_path):
        index = FaissVectorIndex(str(tmp_path / "idx"))

        assert index.collection_exists() is False
        with pytest.raises(VectorIndexError):
            index.top_k([1.0, 0.0, 0.0], 1)

    def test_ensure_collection_writes_files(self, faiss_index):
        assert os.path.exists(os.path.join(faiss_index.index_dir, INDEX_FILE))
        assert os.path.exists(os.path.join(faiss_index.index_dir, PAYLOAD_FILE))
        assert faiss_index.count() == 0

    def test_empty_search(self, faiss_index):
        assert faiss_index.top_k([1.0, 0.0, 0.0], 5) == []

    def test_upsert_and_search(self, faiss_index):
        """Test nearest points come back with payloads and cosine scores."""
        near = point_id_for("near")
        far = point_id_for("far")
        faiss_index.upsert(near, [1.0, 0.1, 0.0], {"conversation_id": "near"})
        faiss_index.upsert(far, [0.0, 0.0, 1.0], {"conversation_id": "far"})

        hits = faiss_index.top_k([1.0, 0.0, 0.0], 10)

        assert [h.point_id for h in hits] == [near, far]
        assert hits[0].payload == {"conversation_id": "near"}
        assert hits[0].score == pytest.approx(0.995, abs=1e-3)
        assert hits[1].score == pytest.approx(0.0, abs=1e-6)

    def test_upsert_overwrites_point(self, faiss_index):
        """Test re-upserting a point id replaces vector and payload."""
        pid = point_id_for("conv-1")
        faiss_index.upsert(pid, [1.0, 0.0, 0.0], {"conversation_id": "conv-1", "v": 1})
        faiss_index.upsert(pid, [0.0, 1.0, 0.0], {"conversation_id": "conv-1", "v": 2})

        hits = faiss_index.top_k([0.0, 1.0, 0.0], 5)

        assert faiss_index.count() == 1
        assert hits[0].payload["v"] == 2
        assert hits[0].score == pytest.approx(1.0, abs=1e-6)

    def test_dimension_mismatch_on_upsert(self, faiss_index):
        with pytest.raises(VectorIndexError):
            faiss_index.upsert(1, [1.0, 0.0], {})

    def test_delete(self, faiss_index):
        faiss_index.upsert(5, [1.0, 0.0, 0.0], {"conversation_id": "c"})

        faiss_index.delete(5)

        assert faiss_index.count() == 0
        assert faiss_index.top_k([1.0, 0.0, 0.0], 1) == []

    def test_failed_persist_leaves_state_unchanged(self, faiss_index, monkeypatch):
        """Test a failed write leaves vectors and payloads as they were."""
        pid = point_id_for("conv-1")
        faiss_index.upsert(pid, [1.0, 0.0, 0.0], {"conversation_id": "conv-1", "v": 1})

        def disk_full(index, payloads):
            raise OSError("No space left on device")

        monkeypatch.setattr(faiss_index, "_persist", disk_full)

        with pytest.raises(VectorIndexError) as exc_info:
            faiss_index.upsert(pid, [0.0, 1.0, 0.0], {"conversation_id": "conv-1", "v": 2})
        assert exc_info.value.operation == "upsert"

        with pytest.raises(VectorIndexError):
            faiss_index.upsert(point_id_for("conv-2"), [0.0, 0.0, 1.0], {"conversation_id": "conv-2"})

        with pytest.raises(VectorIndexError) as exc_info:
            faiss_index.delete(pid)
        assert exc_info.value.operation == "delete"

        assert faiss_index.count() == 1
        hits = faiss_index.top_k([1.0, 0.0, 0.0], 5)
        assert [(h.point_id, h.payload["v"]) for h in hits] == [(pid, 1)]
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    def test_reload_from_disk(self, faiss_index):
        """Test a new instance loads persisted vectors and payloads."""
        pid = point_id_for("persisted")
        faiss_index.upsert(pid, [0.0, 1.0, 0.0], {"conversation_id": "persisted"})

        reloaded = FaissVectorIndex(faiss_index.index_dir)
        reloaded.ensure_collection(3)
        hits = reloaded.top_k([0.0, 1.0, 0.0], 1)

        assert hits[0].point_id == pid
        assert hits[0].payload == {"conversation_id": "persisted"}
        with open(os.path.join(faiss_index.index_dir, PAYLOAD_FILE), encoding="utf-8") as f:
            assert str(pid) in json.load(f)

    def test_reload_dimension_mismatch(self, faiss_index):
        reloaded = FaissVectorIndex(faiss_index.index_dir)

        with pytest.raises(ConfigurationError):
            reloaded.ensure_collection(4)
