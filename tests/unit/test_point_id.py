"""
Unit tests for conversation id -> point id hashing.
"""

import pytest

from ragserver.storage import point_id
from ragserver.storage.point_id import fnv1a_64, point_id_for


class TestFnv1a64:
    """Tests for the FNV-1a 64-bit hash."""

    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"", 0xCBF29CE484222325),
            (b"a", 0xAF63DC4C8601EC8C),
            (b"foobar", 0x85944171F73967E8),
        ],
    )
    def test_reference_vectors(self, data, expected):
        """Test published FNV-1a 64 reference values."""
        assert fnv1a_64(data) == expected

    def test_result_fits_uint64(self):
        assert 0 <= fnv1a_64("x".encode("utf-8") * 1000) < 2 ** 64


class TestPointIdFor:
    """Tests for the point id mapping."""

    def test_deterministic(self):
        """Test the same id always maps to the same point id."""
        assert point_id_for("conv-123") == point_id_for("conv-123")

    def test_distinct_ids_differ(self):
        assert point_id_for("conv-1") != point_id_for("conv-2")

    def test_hashes_utf8_bytes(self):
        """Test non-ASCII ids hash their UTF-8 encoding."""
        assert point_id_for("대화-1") == fnv1a_64("대화-1".encode("utf-8"))

    def test_zero_is_remapped(self, monkeypatch):
        """Test a zero hash never becomes the reserved point id."""
        monkeypatch.setattr(point_id, "fnv1a_64", lambda data: 0)

        assert point_id.point_id_for("anything") == 1
