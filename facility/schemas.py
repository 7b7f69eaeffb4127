"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


# ============ User Schemas ============

class UserProfileResponse(BaseModel):
    name: str
    email: str
    plan: Optional[str]
    role: str
    subscription_cycle: Optional[str] = None
    used_tokens_current_month: int = 0

    class Config:
        from_attributes = True


class UserProfileUpdate(BaseModel):
    name: str = Field(max_length=255)


class UserProfileUpdateResponse(BaseModel):
    message: str
    name: str
    email: str


# ============ Agent Schemas ============

class AgentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    prompt: str = Field(min_length=1)


class AgentResponse(BaseModel):
    id: str
    name: str
    specialty: str
    system_instruction: str
    creator_id: Optional[str] = None

    class Config:
        from_attributes = True


class AgentCreatedResponse(BaseModel):
    message: str = "Agent created!"
    id: str


# ============ Chat Schemas ============

class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=20000)
    agent_id: str = Field(min_length=1, max_length=255)


class ChatResponse(BaseModel):
    response: str
    tokens_used: int
    outcome: str


class ChatMessageResponse(BaseModel):
    id: str
    agent_id: str
    sender: str
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


class ChatHistoryResponse(BaseModel):
    agent_id: str
    messages: List[ChatMessageResponse]


# ============ Knowledge Schemas ============

class IngestTextRequest(BaseModel):
    text: str
    profession: str


class KnowledgeDocumentResponse(BaseModel):
    id: str
    file_name: str
    agent_name: str
    chunk_count: int
    uploaded_at: datetime

    class Config:
        from_attributes = True


class IngestResponse(BaseModel):
    message: str
    document: KnowledgeDocumentResponse


# ============ Admin Schemas ============

class AdminUpdateUserRequest(BaseModel):
    user_id: str
    new_plan: str = ""
    new_cycle: str = "Mensal"
    reset_tokens: bool = False


class AdminUpdatePromptRequest(BaseModel):
    agent_name: str
    new_prompt: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str
