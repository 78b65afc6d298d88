"""
Unit tests for the FastAPI adapter using TestClient and in-process fakes.
"""

import pytest
from fastapi.testclient import TestClient

from ragserver.api.http_api import create_app
from ragserver.api.main import build_service
from ragserver.config import Settings


@pytest.fixture
def container(embedder, index):
    settings = Settings(database_url="sqlite://", embedding_provider="fake", vector_backend="memory")
    container = build_service(settings, embedder=embedder, index=index)
    yield container
    container.close()


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


def _store(client, **body):
    return client.post("/api/rag/conversation/store", json=body)


class TestConversationRoutes:
    """Tests for conversation store/search/get routes."""

    def test_store_returns_201_envelope(self, client):
        response = _store(
            client,
            conversation_id="conv-1",
            messages=[
                {"role": "user", "content": "Where is the library?"},
                {"role": "assistant", "content": "Next to the park."},
            ],
            metadata={"channel": "kiosk"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["error"] is None
        assert body["data"]["conversation_id"] == "conv-1"
        assert body["data"]["vectors_created"] == 1
        assert body["data"]["messages_stored"] == 2
        assert body["data"]["stored_at"].endswith("Z")
        assert "request_id" in body["metadata"]

    def test_store_with_flat_fields(self, client):
        response = _store(client, question="What time is it?", answer="Noon.")

        assert response.status_code == 201
        assert len(response.json()["data"]["conversation_id"]) == 36

    def test_store_soft_failure_still_201(self, client, index):
        index.fail_upsert = True

        response = _store(client, conversation_id="conv-soft", question="q", answer="a")

        assert response.status_code == 201
        assert response.json()["data"]["vectors_created"] == 0

    def test_store_invalid_role(self, client):
        response = _store(client, messages=[{"role": "system", "content": "x"}])

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "INVALID_REQUEST"
        assert body["error"]["details"]["provided_role"] == "system"

    def test_store_without_content(self, client):
        response = _store(client, conversation_id="conv-empty")

        assert response.status_code == 400

    def test_store_malformed_body(self, client):
        response = _store(client, messages="not a list")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_store_embedding_failure_is_502(self, client, embedder):
        embedder.fail = True

        response = _store(client, question="q", answer="a")

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "UPSTREAM_ERROR"
        assert error["details"] == {"collaborator": "embedding_provider", "operation": "embed"}

    def test_search(self, client):
        """Test store-then-search returns hydrated messages and metadata."""
        _store(client, conversation_id="conv-a", question="Where is the nearest pharmacy?", answer="Corner of 5th.")
        _store(client, conversation_id="conv-b", question="How do I cook rice?", answer="Boil water first.")

        response = client.get("/api/rag/conversation/search", params={"query": "nearest pharmacy", "top_k": 5})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["query"] == "nearest pharmacy"
        assert data["total_results"] == len(data["results"])
        assert data["results"][0]["conversation_id"] == "conv-a"
        assert data["results"][0]["messages"][0] == {"role": "user", "content": "Where is the nearest pharmacy?"}
        assert data["search_metadata"]["embedding_model"] == "fake-embedding"
        assert data["search_metadata"]["vector_db"] == "memory"

    def test_search_empty_index(self, client):
        response = client.get("/api/rag/conversation/search", params={"query": "anything"})

        assert response.status_code == 200
        assert response.json()["data"]["results"] == []
        assert response.json()["data"]["total_results"] == 0

    @pytest.mark.parametrize("params", [{}, {"query": "   "}, {"query": "x", "top_k": "many"}])
    def test_search_invalid(self, client, params):
        response = client.get("/api/rag/conversation/search", params=params)

        assert response.status_code == 400

    def test_search_index_failure_is_502(self, client, index):
        index.fail_search = True

        response = client.get("/api/rag/conversation/search", params={"query": "q"})

        assert response.status_code == 502
        assert response.json()["error"]["details"]["collaborator"] == "vector_index"

    def test_get_conversation(self, client):
        _store(client, conversation_id="conv-1", question="q", answer="a", metadata={"x": 1})

        response = client.get("/api/rag/conversation/conv-1")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == "conv-1"
        assert data["metadata"] == {"x": 1}
        assert data["messages"] == [{"role": "user", "content": "q"}, {"role": "assistant", "content": "a"}]

    def test_get_missing_conversation(self, client):
        response = client.get("/api/rag/conversation/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestHealthRoute:
    """Tests for the health route."""

    def test_healthy(self, client):
        response = client.get("/api/rag/health")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"

    def test_unhealthy_is_503(self, client, index):
        index.collection_exists = lambda timeout=None: False

        response = client.get("/api/rag/health")

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert response.json()["data"]["status"] == "unhealthy"


class TestPersonalInfoRoutes:
    """Tests for personal info CRUD routes."""

    def _create(self, client, **overrides):
        body = {"user_id": "guardian-1", "content": "Takes insulin", "category": "medical", "importance": "high"}
        body.update(overrides)
        return client.post("/api/rag/personal-info", json=body)

    def test_create_and_get(self, client):
        created = self._create(client)

        assert created.status_code == 201
        info = created.json()["data"]["personal_info"]

        fetched = client.get(f"/api/rag/personal-info/{info['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["personal_info"]["content"] == "Takes insulin"

    def test_create_invalid_importance(self, client):
        response = self._create(client, importance="urgent")

        assert response.status_code == 400
        assert response.json()["error"]["details"]["valid_values"] == ["high", "medium", "low"]

    def test_create_missing_field(self, client):
        response = client.post("/api/rag/personal-info", json={"user_id": "g", "content": "c"})

        assert response.status_code == 400

    def test_list_by_user(self, client):
        self._create(client)
        self._create(client, content="Emergency contact: 555-0100", category="contact")
        self._create(client, user_id="someone-else")

        response = client.get("/api/rag/personal-info/user/guardian-1")

        listing = response.json()["data"]["personal_info_list"]
        assert listing["total"] == 2
        assert listing["user_id"] == "guardian-1"

    def test_update_partial(self, client):
        info_id = self._create(client).json()["data"]["personal_info"]["id"]

        response = client.put(f"/api/rag/personal-info/{info_id}", json={"importance": "low"})

        assert response.status_code == 200
        info = response.json()["data"]["personal_info"]
        assert info["importance"] == "low"
        assert info["content"] == "Takes insulin"

    def test_update_missing(self, client):
        response = client.put("/api/rag/personal-info/ghost", json={"content": "x"})

        assert response.status_code == 404

    def test_delete(self, client):
        info_id = self._create(client).json()["data"]["personal_info"]["id"]

        response = client.delete(f"/api/rag/personal-info/{info_id}")

        assert response.status_code == 200
        assert response.json()["data"]["deleted_info_id"] == info_id
        assert client.get(f"/api/rag/personal-info/{info_id}").status_code == 404

    def test_delete_missing(self, client):
        assert client.delete("/api/rag/personal-info/ghost").status_code == 404
