"""Deterministic mapping from conversation ids to vector-index point ids.

The vector index keys points by an unsigned 64-bit integer while the domain
key is an opaque string. FNV-1a 64 over the UTF-8 bytes gives a stable point
id, so re-saving a conversation overwrites its own point without a mapping
table.

Two distinct ids can collide on 64 bits; the later save then overwrites the
earlier point while both relational rows survive. This is accepted and not
detected here.
"""

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

# The index reserves 0 for "unset".
RESERVED_POINT_ID = 0


def fnv1a_64(data: bytes) -> int:
    """Return the 64-bit FNV-1a hash of `data`."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK64
    return h


def point_id_for(conversation_id: str) -> int:
    """Map a conversation id to its uint64 point id, never returning 0."""
    h = fnv1a_64(conversation_id.encode("utf-8"))
    if h == RESERVED_POINT_ID:
        h = 1
    return h
