"""Embedding provider package.

Architectural role:
    Turns text into fixed-dimension float vectors for the orchestrator.

Module split:
    - `base`: the `EmbeddingProvider` protocol every provider satisfies.
    - `openai_client`: OpenAI-compatible `/embeddings` HTTP transport.
    - `local_model`: in-process `SentenceTransformer` provider.
"""

from ragserver.embedding.base import EmbeddingProvider

__all__ = ["EmbeddingProvider"]
