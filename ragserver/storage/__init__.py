"""Persistence package.

Architectural role:
    Groups the two heterogeneous stores the orchestrator writes to, plus the
    identifier translation between them:
    - `database`: SQLAlchemy engine factory, table definitions, schema setup.
    - `conversation_store`: authoritative conversation rows (source of truth).
    - `personal_info_store`: guardian-provided personal information rows.
    - `qdrant_index` / `faiss_index`: vector index backends.
    - `point_id`: string id -> uint64 point id hashing.
    - `base`: collaborator protocols for the relational store and vector index.
"""
