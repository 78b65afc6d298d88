"""Orchestration core: `ConversationService` and dependency health probes."""

from ragserver.core.orchestrator import ConversationService

__all__ = ["ConversationService"]
