from facility.services.auth_service import (
    create_access_token, decode_access_token,
    create_user, get_user_by_id, get_user_by_email,
)
from facility.services.llm_service import (
    LLMResponse, OpenAILLMService, OfflineLLMService,
    create_llm_service, get_llm_service,
)
from facility.services.knowledge_index import KnowledgeIndex, VectorMatch, VectorRecord
from facility.services.context_builder import ContextBuilder
from facility.services.chat_service import ChatService, ChatResult, ChatOutcome
from facility.services.knowledge_service import KnowledgeService, KnowledgeIngestionError
from facility.services.plan_policy import PlanLimitError, QuotaDecision, admit

__all__ = [
    "create_access_token",
    "decode_access_token",
    "create_user",
    "get_user_by_id",
    "get_user_by_email",
    # LLM provider
    "LLMResponse",
    "OpenAILLMService",
    "OfflineLLMService",
    "create_llm_service",
    "get_llm_service",
    # Retrieval
    "KnowledgeIndex",
    "VectorMatch",
    "VectorRecord",
    "ContextBuilder",
    # Chat
    "ChatService",
    "ChatResult",
    "ChatOutcome",
    # Knowledge ingestion
    "KnowledgeService",
    "KnowledgeIngestionError",
    # Plans
    "PlanLimitError",
    "QuotaDecision",
    "admit",
]
