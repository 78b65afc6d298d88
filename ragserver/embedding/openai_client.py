"""OpenAI-compatible embedding transport.

Architectural role:
    Executes `/embeddings` HTTP requests against OpenAI or any compatible
    endpoint and returns plain float lists to the orchestrator.

Invocation flow:
    `embed(text)` / `embed_batch(texts)` -> `_request(texts)` -> POST
    `{base_url}/embeddings` -> vectors re-sorted by their positional `index`.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once with the
    caller-supplied timeout (or the configured default).

Failure handling model:
    Transport errors, HTTP error statuses and malformed bodies are raised as
    `EmbeddingProviderError` carrying the operation name and status code.
"""

import logging
from typing import List, Optional, Sequence

import requests

from ragserver.errors import ConfigurationError, EmbeddingProviderError


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Models that accept the `dimensions` request field.
_SHORTENABLE_PREFIX = "text-embedding-3"


class OpenAIEmbeddingProvider:
    """Embedding provider backed by an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-large",
        dimension: int = 3072,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: Bearer token for the endpoint.
            model: Embedding model name.
            dimension: Configured vector dimension `D`.
            base_url: API root, without trailing `/embeddings`.
            timeout: Default per-call timeout in seconds.
            session: Shared `requests.Session`; one is created when omitted.

        Raises:
            ConfigurationError: When `api_key` is empty.
        """
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")

        self.model_name = model
        self._dimension = dimension
        self._url = base_url.rstrip("/") + "/embeddings"
        self._timeout = timeout
        self._session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str, is_query: bool = False, timeout: Optional[float] = None) -> List[float]:
        """Embed one text. `is_query` is ignored; OpenAI models are symmetric."""
        vectors = self._request([text], timeout, operation="embed")
        return vectors[0]

    def embed_batch(self, texts: Sequence[str], timeout: Optional[float] = None) -> List[List[float]]:
        """Embed many texts, returning vectors aligned with the input order."""
        texts = list(texts)
        if not texts:
            return []
        return self._request(texts, timeout, operation="embed_batch")

    def close(self) -> None:
        self._session.close()

    def _request(self, texts: List[str], timeout: Optional[float], operation: str) -> List[List[float]]:
        payload = {"model": self.model_name, "input": texts}
        if self.model_name.startswith(_SHORTENABLE_PREFIX):
            payload["dimensions"] = self._dimension

        try:
            response = self._session.post(
                self._url,
                headers=self._headers,
                json=payload,
                timeout=timeout if timeout is not None else self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as err:
            status_code = None
            if getattr(err, "response", None) is not None:
                status_code = getattr(err.response, "status_code", None)
            raise EmbeddingProviderError(
                f"embedding request failed: {err}",
                operation=operation,
                status_code=status_code,
            ) from err
        except ValueError as err:
            raise EmbeddingProviderError(
                "embedding response is not valid JSON", operation=operation
            ) from err

        items = data.get("data") if isinstance(data, dict) else None
        if not items:
            raise EmbeddingProviderError("no embedding data returned", operation=operation)

        # Wire order is not guaranteed to match input order; trust `index` only.
        vectors: List[Optional[List[float]]] = [None] * len(texts)
        for position, item in enumerate(items):
            if not isinstance(item, dict) or not isinstance(item.get("embedding"), list):
                raise EmbeddingProviderError(
                    f"malformed embedding item at position {position}", operation=operation
                )
            index = item.get("index", position)
            if not isinstance(index, int) or not 0 <= index < len(vectors):
                raise EmbeddingProviderError(
                    f"embedding index {index!r} out of range", operation=operation
                )
            try:
                vectors[index] = [float(x) for x in item["embedding"]]
            except (KeyError, TypeError, ValueError) as err:
                raise EmbeddingProviderError(
                    f"embedding at index {index} is not numeric: {err}", operation=operation
                ) from err

        missing = [i for i, vec in enumerate(vectors) if vec is None]
        if missing:
            raise EmbeddingProviderError(
                f"embedding response missing inputs {missing}", operation=operation
            )

        logger.debug("Embedded %d text(s) with %s", len(texts), self.model_name)
        return vectors
