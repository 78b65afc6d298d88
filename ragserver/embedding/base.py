"""Embedding provider contract consumed by `ragserver.core.orchestrator`."""

from typing import List, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Text-to-vector provider with a fixed output dimension.

    `embed_batch` must return vectors in input order. `is_query` is a hint for
    asymmetric models that embed queries and passages differently; symmetric
    providers ignore it. Failures raise `EmbeddingProviderError`.
    """

    model_name: str

    @property
    def dimension(self) -> int: ...

    def embed(self, text: str, is_query: bool = False, timeout: Optional[float] = None) -> List[float]: ...

    def embed_batch(self, texts: Sequence[str], timeout: Optional[float] = None) -> List[List[float]]: ...
