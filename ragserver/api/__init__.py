"""Adapters over `ConversationService`: FastAPI app, composition root and CLI."""
