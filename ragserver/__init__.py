"""Conversation RAG server package.

Architectural role:
    Stores conversational records in a relational source of truth, indexes
    their embeddings in a vector index, and serves semantic search that
    hydrates vector hits back into full conversations.

Package layout:
    - `config`: environment-driven runtime settings.
    - `errors`: exception taxonomy shared by all layers.
    - `models`: data contracts passed between layers.
    - `embedding`: embedding providers (OpenAI-compatible HTTP, local model).
    - `storage`: relational store, vector indexes, point-id hashing.
    - `core`: orchestration (`ConversationService`) and health probes.
    - `api`: FastAPI adapter, composition root, interactive CLI.
"""

__version__ = "1.0.0"
