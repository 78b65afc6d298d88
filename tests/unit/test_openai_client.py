"""
Unit tests for the OpenAI-compatible embedding provider.

The HTTP session is mocked; no network calls are made.
"""

from unittest.mock import MagicMock

import pytest
import requests

from ragserver.embedding.openai_client import OpenAIEmbeddingProvider
from ragserver.errors import ConfigurationError, EmbeddingProviderError


class FakeResponse:
    """Minimal stand-in for `requests.Response`."""

    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


def _provider(response, **kwargs):
    session = MagicMock()
    session.post.return_value = response
    provider = OpenAIEmbeddingProvider("sk-test", dimension=3, session=session, **kwargs)
    return provider, session


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            OpenAIEmbeddingProvider("", session=MagicMock())

    def test_embed_builds_request(self):
        """Test the request carries model, input, dimensions and auth header."""
        provider, session = _provider(FakeResponse({"data": [{"index": 0, "embedding": [0.1, 0.2, 0.3]}]}))

        vector = provider.embed("hello", timeout=4.5)

        assert vector == [0.1, 0.2, 0.3]
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.openai.com/v1/embeddings"
        assert kwargs["json"] == {"model": "text-embedding-3-large", "input": ["hello"], "dimensions": 3}
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["timeout"] == 4.5

    def test_default_timeout_used(self):
        provider, session = _provider(
            FakeResponse({"data": [{"index": 0, "embedding": [1, 0, 0]}]}), timeout=7.0
        )

        provider.embed("hello")

        assert session.post.call_args[1]["timeout"] == 7.0

    def test_legacy_model_omits_dimensions(self):
        provider, session = _provider(
            FakeResponse({"data": [{"index": 0, "embedding": [1, 0, 0]}]}),
            model="text-embedding-ada-002",
        )

        provider.embed("hello")

        assert "dimensions" not in session.post.call_args[1]["json"]

    def test_batch_resorted_by_index(self):
        """Test batch results follow the response index, not wire order."""
        provider, _ = _provider(
            FakeResponse({
                "data": [
                    {"index": 2, "embedding": [0, 0, 1]},
                    {"index": 0, "embedding": [1, 0, 0]},
                    {"index": 1, "embedding": [0, 1, 0]},
                ]
            })
        )

        vectors = provider.embed_batch(["a", "b", "c"])

        assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]

    def test_empty_batch_skips_request(self):
        provider, session = _provider(FakeResponse({"data": []}))

        assert provider.embed_batch([]) == []
        session.post.assert_not_called()

    def test_http_error_carries_status(self):
        provider, _ = _provider(FakeResponse({"error": "rate limited"}, status_code=429))

        with pytest.raises(EmbeddingProviderError) as exc_info:
            provider.embed("hello")

        assert exc_info.value.status_code == 429
        assert exc_info.value.operation == "embed"
        assert exc_info.value.collaborator == "embedding_provider"

    def test_transport_error(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        provider = OpenAIEmbeddingProvider("sk-test", session=session)

        with pytest.raises(EmbeddingProviderError):
            provider.embed("hello")

    def test_empty_data_raises(self):
        provider, _ = _provider(FakeResponse({"data": []}))

        with pytest.raises(EmbeddingProviderError, match="no embedding data"):
            provider.embed("hello")

    @pytest.mark.parametrize(
        "items",
        [
            [{"index": 0}],
            [{"index": 0, "embedding": None}],
            [{"index": 0, "embedding": ["a", "b", "c"]}],
            [{"index": 0, "embedding": [0.1, None, 0.3]}],
            ["not-an-object"],
        ],
    )
    def test_malformed_items_raise(self, items):
        """Test malformed embedding items surface as EmbeddingProviderError."""
        provider, _ = _provider(FakeResponse({"data": items}))

        with pytest.raises(EmbeddingProviderError) as exc_info:
            provider.embed("hello")
        assert exc_info.value.operation == "embed"

    def test_invalid_json_raises(self):
        provider, _ = _provider(FakeResponse(None))

        with pytest.raises(EmbeddingProviderError):
            provider.embed("hello")
