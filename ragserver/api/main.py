"""
Composition root and HTTP server entrypoint.

Architectural role:
- Builds every collaborator once from `Settings` and injects them into
  `ConversationService`; nothing else in the package constructs clients.
- Provisions the relational schema and the vector collection at startup.
- Runs the FastAPI app with `uvicorn`.

Startup sequence (`build_service`):
1. Select and construct the embedding provider (OpenAI-compatible or local).
2. Create the pooled SQLAlchemy engine and run schema migration.
3. Select the vector backend and ensure its collection exists with the
   provider's dimension.
4. Wire stores, index and provider into the service and health checker.

Error handling strategy:
- Any `ConfigurationError` (missing API key, unknown backend, dimension
  mismatch) aborts startup.
- Resources created before a failing step are released before re-raising.
"""

import logging
from dataclasses import dataclass

from ragserver.config import EMBEDDING_PROVIDERS, VECTOR_BACKENDS, Settings
from ragserver.core.health import HealthChecker
from ragserver.core.orchestrator import ConversationService
from ragserver.errors import ConfigurationError
from ragserver.logging_setup import configure_logging
from ragserver.storage.conversation_store import SqlConversationStore
from ragserver.storage.database import create_db_engine, migrate
from ragserver.storage.personal_info_store import SqlPersonalInfoStore


logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Long-lived collaborators shared by the HTTP adapter and the CLI."""

    settings: Settings
    engine: object
    conversations: SqlConversationStore
    personal_info: SqlPersonalInfoStore
    index: object
    embedder: object
    service: ConversationService
    health: HealthChecker

    def close(self) -> None:
        """Release network sessions and the connection pool."""
        self.index.close()
        close_embedder = getattr(self.embedder, "close", None)
        if callable(close_embedder):
            close_embedder()
        self.conversations.close()


# =========================================================
# COLLABORATOR FACTORIES
# =========================================================

def build_embedder(settings: Settings):
    """Return the configured embedding provider."""
    if settings.embedding_provider == "openai":
        from ragserver.embedding.openai_client import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            dimension=settings.embedding_dim,
            base_url=settings.openai_base_url,
            timeout=settings.embedding_timeout,
        )

    if settings.embedding_provider == "local":
        from ragserver.embedding.local_model import SentenceTransformerEmbeddingProvider

        return SentenceTransformerEmbeddingProvider(settings.local_embed_model)

    raise ConfigurationError(
        f"unknown EMBEDDING_PROVIDER '{settings.embedding_provider}' "
        f"(expected one of {', '.join(EMBEDDING_PROVIDERS)})"
    )


def build_index(settings: Settings):
    """Return the configured vector index (collection not yet ensured)."""
    if settings.vector_backend == "qdrant":
        from ragserver.storage.qdrant_index import QdrantVectorIndex

        return QdrantVectorIndex(
            settings.qdrant_url,
            settings.qdrant_collection,
            timeout=settings.vector_timeout,
        )

    if settings.vector_backend == "faiss":
        from ragserver.storage.faiss_index import FaissVectorIndex

        return FaissVectorIndex(settings.faiss_index_dir)

    raise ConfigurationError(
        f"unknown VECTOR_BACKEND '{settings.vector_backend}' "
        f"(expected one of {', '.join(VECTOR_BACKENDS)})"
    )


def build_service(settings: Settings, embedder=None, index=None) -> Container:
    """
    Construct and provision all collaborators.

    `embedder` and `index` may be passed in pre-built (tests, tooling);
    otherwise they are created from `settings`.

    Raises:
        ConfigurationError: Invalid configuration or dimension mismatch.
        UpstreamDependencyError: A dependency is unreachable during provisioning.
    """
    embedder = embedder or build_embedder(settings)
    dimension = embedder.dimension
    logger.info("Embedding provider ready: %s (dimension=%d)", embedder.model_name, dimension)

    engine = create_db_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    try:
        migrate(engine)

        index = index or build_index(settings)
        index.ensure_collection(dimension)
    except Exception:
        engine.dispose()
        raise

    conversations = SqlConversationStore(engine)
    service = ConversationService(
        conversations,
        index,
        embedder,
        default_limit=settings.search_default_limit,
        max_limit=settings.search_max_limit,
        embedding_timeout=settings.embedding_timeout,
        vector_timeout=settings.vector_timeout,
    )

    logger.info("Vector backend ready: %s", index.name)

    return Container(
        settings=settings,
        engine=engine,
        conversations=conversations,
        personal_info=SqlPersonalInfoStore(engine),
        index=index,
        embedder=embedder,
        service=service,
        health=HealthChecker(conversations, index, embedder, timeout=settings.health_timeout),
    )


# =========================================================
# MAIN
# =========================================================

def main():
    """Load settings, build the service and serve HTTP until interrupted."""
    import uvicorn

    from ragserver.api.http_api import create_app

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logger.info("Starting RAG server (environment=%s)", settings.environment)
    container = build_service(settings)
    app = create_app(container)

    try:
        uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
    finally:
        logger.info("Shutting down server...")
        container.close()
        logger.info("Server exited")


if __name__ == "__main__":
    main()
