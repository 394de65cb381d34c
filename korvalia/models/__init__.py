"""SQLAlchemy models for Korvalia."""
from korvalia.models.chat_model import ChatConversation, ChatMessage

__all__ = [
    "ChatConversation",
    "ChatMessage",
]
