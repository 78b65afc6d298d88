"""Exception taxonomy for the conversation RAG server.

Architectural role:
    Gives every layer a shared vocabulary for failures so the HTTP adapter can
    map them to status codes without inspecting collaborator internals.

Failure classes:
    - `ValidationError`: malformed input, detected before any collaborator call.
    - `UpstreamDependencyError`: a collaborator (embedding provider, relational
      store, vector index) failed. Collaborators raise the specific subclasses
      directly; the orchestrator lets them propagate unchanged.
    - `SoftDependencyWarning`: vector-index failure during save. Logged only.
    - `NotFoundError`: requested id absent in the relational store.
    - `ConfigurationError`: fatal startup problem (missing key, dimension
      mismatch).
"""


class RAGError(Exception):
    """Base exception for all conversation RAG server errors."""
    pass


class ValidationError(RAGError):
    """
    Malformed or missing request input.

    Raised when:
    - Search query is empty after trimming
    - Save request carries no content
    - A message has an unsupported role or empty content
    """

    def __init__(self, message: str, field: str = None, details: dict = None):
        super().__init__(message)
        self.field = field
        self.details = details or {}


class UpstreamDependencyError(RAGError):
    """
    A collaborator call failed on the request path.

    Carries which collaborator failed and during which operation so the
    failure can be diagnosed without a retry.
    """

    collaborator = "upstream"

    def __init__(self, message: str, operation: str = None, collaborator: str = None):
        super().__init__(message)
        if collaborator is not None:
            self.collaborator = collaborator
        self.operation = operation

    def __str__(self):
        base = super().__str__()
        if self.operation:
            return f"{self.collaborator}.{self.operation}: {base}"
        return f"{self.collaborator}: {base}"


class EmbeddingProviderError(UpstreamDependencyError):
    """
    Error communicating with an embedding provider.

    Raised when:
    - Provider is unreachable or times out
    - Provider returns an error response
    - Response carries no embedding data
    """

    collaborator = "embedding_provider"

    def __init__(self, message: str, operation: str = None, status_code: int = None):
        super().__init__(message, operation=operation)
        self.status_code = status_code


class RelationalStoreError(UpstreamDependencyError):
    """Error reading from or writing to the relational store."""

    collaborator = "relational_store"


class VectorIndexError(UpstreamDependencyError):
    """Error talking to the vector index."""

    collaborator = "vector_index"

    def __init__(self, message: str, operation: str = None, status_code: int = None):
        super().__init__(message, operation=operation)
        self.status_code = status_code


class SoftDependencyWarning(RAGError, UserWarning):
    """
    Vector-index failure absorbed during save.

    Never raised to callers. Instances are built from the swallowed error and
    written to the log so operators can see which records are stored but not
    yet discoverable by similarity search.
    """

    def __init__(self, conversation_id: str, point_id: int, cause: BaseException):
        super().__init__(
            f"vector upsert failed for conversation {conversation_id} "
            f"(point {point_id}): {cause}"
        )
        self.conversation_id = conversation_id
        self.point_id = point_id
        self.cause = cause


class NotFoundError(RAGError):
    """Requested record does not exist in the relational store."""

    def __init__(self, message: str, resource: str = None, resource_id: str = None):
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConfigurationError(RAGError):
    """
    Error in runtime configuration.

    Raised when:
    - A required key (for example the OpenAI API key) is not set
    - Embedding dimension differs between provider and vector index
    - An unknown backend name is configured
    """
    pass
