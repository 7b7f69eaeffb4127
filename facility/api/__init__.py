from facility.api.auth import get_current_user, require_admin
from facility.api.chat import router as chat_router
from facility.api.agents import router as agents_router
from facility.api.knowledge import router as knowledge_router
from facility.api.user import router as user_router
from facility.api.admin import router as admin_router

__all__ = [
    "chat_router",
    "agents_router",
    "knowledge_router",
    "user_router",
    "admin_router",
    "get_current_user",
    "require_admin",
]
