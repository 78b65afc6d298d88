"""
HTTP API adapter for the conversation RAG server.

Architectural role:
- Expose the `/api/rag` HTTP surface over one `Container`.
- Translate JSON bodies and query strings into service calls.
- Map the exception taxonomy to status codes and a uniform envelope.

Endpoint responsibilities:
- `POST /conversation/store`: validate and save a conversation (201).
- `GET /conversation/search`: semantic search with optional `top_k`.
- `GET /conversation/{conversation_id}`: fetch one stored conversation.
- `GET /health`: per-dependency probe report (200 healthy, 503 otherwise).
- `/personal-info` routes: relational-only CRUD for guardian-provided entries.

Response envelope:
    `{"success": bool, "data": ..., "error": {"code", "message", "details"} | None,
    "metadata": {"request_id", "timestamp"}}`

Error mapping:
- `ValidationError` and malformed bodies/query params -> 400 `INVALID_REQUEST`.
- `NotFoundError` -> 404 `NOT_FOUND`.
- `UpstreamDependencyError` -> 502 `UPSTREAM_ERROR` naming collaborator and operation.
- Any other `RAGError` -> 500 `INTERNAL_ERROR`.

Deadlines:
    Conversation routes derive a monotonic deadline from `REQUEST_TIMEOUT`
    and pass it to the service, which bounds each collaborator call by the
    remaining budget.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ragserver import __version__
from ragserver.errors import (
    NotFoundError,
    RAGError,
    UpstreamDependencyError,
    ValidationError,
)
from ragserver.models import (
    IMPORTANCE_LEVELS,
    Message,
    PersonalInfo,
    SaveRequest,
    isoformat_utc,
    utcnow,
)


logger = logging.getLogger(__name__)


API_PREFIX = "/api/rag"


# ============================================================
# Request Schemas
# ============================================================

class MessageIn(BaseModel):
    role: str
    content: str


class ConversationStoreRequest(BaseModel):
    """Body of `POST /conversation/store`; `messages` wins over `question`/`answer`."""
    conversation_id: Optional[str] = None
    messages: List[MessageIn] = Field(default_factory=list)
    question: str = ""
    answer: str = ""
    user_id: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PersonalInfoCreateRequest(BaseModel):
    user_id: str
    content: str
    category: str
    importance: str


class PersonalInfoUpdateRequest(BaseModel):
    """Partial update; empty fields keep their stored value."""
    content: str = ""
    category: str = ""
    importance: str = ""


# ============================================================
# Envelope Helpers
# ============================================================

def envelope(data=None, error=None) -> Dict[str, Any]:
    return {
        "success": error is None,
        "data": data,
        "error": error,
        "metadata": {
            "request_id": str(uuid.uuid4()),
            "timestamp": isoformat_utc(utcnow()),
        },
    }


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(error={"code": code, "message": message, "details": details or {}}),
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _validate_importance(value: str) -> None:
    if value not in IMPORTANCE_LEVELS:
        raise ValidationError(
            "invalid importance",
            field="importance",
            details={"valid_values": list(IMPORTANCE_LEVELS), "provided_value": value},
        )


# ============================================================
# Application Factory
# ============================================================

def create_app(container) -> FastAPI:
    """Build the FastAPI application bound to `container`."""
    app = FastAPI(title="Conversation RAG Server", version=__version__)
    app.state.container = container

    service = container.service
    personal_store = container.personal_info
    request_timeout = container.settings.request_timeout

    def deadline() -> float:
        return time.monotonic() + request_timeout

    # --------------------------------------------------------
    # Exception mapping
    # --------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def on_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return error_response(400, "INVALID_REQUEST", "Invalid request", {"errors": errors})

    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError):
        details = dict(exc.details)
        if exc.field and "field" not in details:
            details["field"] = exc.field
        return error_response(400, "INVALID_REQUEST", str(exc), details)

    @app.exception_handler(NotFoundError)
    async def on_not_found(request: Request, exc: NotFoundError):
        return error_response(
            404, "NOT_FOUND", str(exc),
            {"resource": exc.resource, "id": exc.resource_id},
        )

    @app.exception_handler(UpstreamDependencyError)
    async def on_upstream_error(request: Request, exc: UpstreamDependencyError):
        logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc)
        return error_response(
            502, "UPSTREAM_ERROR", str(exc),
            {"collaborator": exc.collaborator, "operation": exc.operation},
        )

    @app.exception_handler(RAGError)
    async def on_internal_error(request: Request, exc: RAGError):
        logger.exception("Unhandled server error on %s %s", request.method, request.url.path)
        return error_response(500, "INTERNAL_ERROR", str(exc))

    # --------------------------------------------------------
    # Conversations
    # --------------------------------------------------------

    @app.post(API_PREFIX + "/conversation/store", status_code=201)
    def store_conversation(body: ConversationStoreRequest):
        request = SaveRequest(
            conversation_id=body.conversation_id,
            messages=[Message(m.role, m.content) for m in body.messages],
            question=body.question,
            answer=body.answer,
            user_id=body.user_id,
            metadata=body.metadata,
        )
        result = service.save(request, deadline=deadline())
        return envelope(result.to_dict())

    @app.get(API_PREFIX + "/conversation/search")
    def search_conversations(query: Optional[str] = None, top_k: Optional[int] = None):
        result = service.search(query or "", limit=top_k, deadline=deadline())
        return envelope(result.to_dict())

    @app.get(API_PREFIX + "/conversation/{conversation_id}")
    def get_conversation(conversation_id: str):
        record = service.get(conversation_id)
        data = record.to_dict()
        data["messages"] = [m.to_dict() for m in record.messages()]
        return envelope(data)

    # --------------------------------------------------------
    # Health
    # --------------------------------------------------------

    @app.get(API_PREFIX + "/health")
    async def health():
        report = await container.health.check()
        healthy = report["status"] == "healthy"
        content = envelope(report)
        content["success"] = healthy
        return JSONResponse(status_code=200 if healthy else 503, content=content)

    # --------------------------------------------------------
    # Personal info
    # --------------------------------------------------------

    @app.post(API_PREFIX + "/personal-info", status_code=201)
    def create_personal_info(body: PersonalInfoCreateRequest):
        start = time.perf_counter()
        for name in ("user_id", "content", "category"):
            if not getattr(body, name).strip():
                raise ValidationError(
                    f"{name} is required", field=name,
                    details={"reason": "required field missing"},
                )
        _validate_importance(body.importance)

        now = utcnow()
        info = PersonalInfo(
            id=str(uuid.uuid4()),
            user_id=body.user_id,
            content=body.content,
            category=body.category,
            importance=body.importance,
            created_at=now,
            updated_at=now,
        )
        personal_store.save(info)
        logger.info("Created personal info %s for user %s", info.id, info.user_id)
        return envelope({"personal_info": info.to_dict(), "processing_time_ms": _elapsed_ms(start)})

    @app.get(API_PREFIX + "/personal-info/user/{user_id}")
    def list_personal_info(user_id: str):
        start = time.perf_counter()
        items = [info.to_dict() for info in personal_store.list_by_user(user_id)]
        return envelope({
            "personal_info_list": {"items": items, "total": len(items), "user_id": user_id},
            "processing_time_ms": _elapsed_ms(start),
        })

    @app.get(API_PREFIX + "/personal-info/{info_id}")
    def get_personal_info(info_id: str):
        start = time.perf_counter()
        info = personal_store.get(info_id)
        if info is None:
            raise NotFoundError("personal information not found", resource="personal_info", resource_id=info_id)
        return envelope({"personal_info": info.to_dict(), "processing_time_ms": _elapsed_ms(start)})

    @app.put(API_PREFIX + "/personal-info/{info_id}")
    def update_personal_info(info_id: str, body: PersonalInfoUpdateRequest):
        start = time.perf_counter()
        if body.importance:
            _validate_importance(body.importance)

        info = personal_store.get(info_id)
        if info is None:
            raise NotFoundError("personal information not found", resource="personal_info", resource_id=info_id)

        if body.content:
            info.content = body.content
        if body.category:
            info.category = body.category
        if body.importance:
            info.importance = body.importance
        info.updated_at = utcnow()

        personal_store.update(info)
        return envelope({"personal_info": info.to_dict(), "processing_time_ms": _elapsed_ms(start)})

    @app.delete(API_PREFIX + "/personal-info/{info_id}")
    def delete_personal_info(info_id: str):
        start = time.perf_counter()
        personal_store.delete(info_id)
        logger.info("Deleted personal info %s", info_id)
        return envelope({"deleted_info_id": info_id, "processing_time_ms": _elapsed_ms(start)})

    return app
