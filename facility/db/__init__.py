from facility.db.models import (
    Base, User, UserRole, Plan, MessageSender,
    Agent, ChatMessage,
    # Knowledge base
    KnowledgeDocument, KnowledgeChunk,
)
from facility.db.database import get_db, init_db, drop_db, async_session_maker, engine

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Plan",
    "MessageSender",
    "Agent",
    "ChatMessage",
    # Knowledge base
    "KnowledgeDocument",
    "KnowledgeChunk",
    # Database
    "get_db",
    "init_db",
    "drop_db",
    "async_session_maker",
    "engine",
]
