"""
Database models for the Facility.IA platform

Relational records for users, agents, chat history and the knowledge base:
- Users carry their plan and the monthly token counter
- Agents are personas, either official (no creator) or user-created
- Chat messages reference agents by name
- Knowledge chunks hold the vectorized passages used for retrieval
"""

from datetime import datetime
from typing import Optional, List
from enum import Enum
import uuid

from sqlalchemy import (
    Column, String, Text, DateTime, Integer, BigInteger, Boolean,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship, Mapped, mapped_column, declarative_base
from pgvector.sqlalchemy import Vector

from facility.config import settings

Base = declarative_base()


class Plan(str, Enum):
    """Subscription tiers. Stored as plain text on the user row."""
    FREE = "Free"
    INICIANTE = "Iniciante"  # Legacy name of the free tier
    PLUS = "Plus"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"


class UserRole(str, Enum):
    """User roles for access control"""
    ADMIN = "admin"  # Plan changes, agent prompts, knowledge cleanup
    USER = "user"


class MessageSender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class User(Base):
    """Platform account with its plan and monthly token usage"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value, index=True)

    # Subscription
    plan: Mapped[Optional[str]] = mapped_column(String(50), default=Plan.FREE.value)
    subscription_cycle: Mapped[Optional[str]] = mapped_column(String(20), default="Mensal")  # Mensal | Trimestral | Anual

    # Monthly quota
    used_tokens_current_month: Mapped[int] = mapped_column(BigInteger, default=0)
    last_reset_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    agents: Mapped[List["Agent"]] = relationship("Agent", back_populates="creator")


class Agent(Base):
    """
    AI persona. Agents without a creator are official agents visible to
    everyone; user-created agents count against the creator's plan cap.
    """
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), index=True)
    specialty: Mapped[str] = mapped_column(String(255), default="")
    system_instruction: Mapped[str] = mapped_column(
        Text, default=lambda: settings.default_agent_instruction
    )
    creator_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    creator: Mapped[Optional["User"]] = relationship("User", back_populates="agents")

    __table_args__ = (
        Index("ix_agents_creator_name", "creator_id", "name"),
    )


class ChatMessage(Base):
    """
    A single chat turn. agent_id holds the agent *name*, which is what the
    stored history has always used as the join key.
    """
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    agent_id: Mapped[str] = mapped_column(String(255), index=True)
    sender: Mapped[str] = mapped_column(String(20))  # "user" | "assistant"
    text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_chat_messages_user_agent", "user_id", "agent_id", "created_at"),
    )


class KnowledgeDocument(Base):
    """Manifest of an ingested file or text. The passages live in knowledge_chunks."""
    __tablename__ = "knowledge_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_name: Mapped[str] = mapped_column(String(255))  # e.g. lei_123.pdf
    agent_name: Mapped[str] = mapped_column(String(255), index=True)  # Domain tag, e.g. Advogado
    chunk_count: Mapped[int] = mapped_column(Integer, default=0)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    chunks: Mapped[List["KnowledgeChunk"]] = relationship(
        "KnowledgeChunk", back_populates="document", cascade="all, delete-orphan"
    )


class KnowledgeChunk(Base):
    """
    A vectorized passage in the knowledge index.
    metadata_json carries the passage text under "text" and the domain tag.
    """
    __tablename__ = "knowledge_chunks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("knowledge_documents.id"), nullable=True, index=True
    )
    domain: Mapped[str] = mapped_column(String(255), index=True)
    chunk_index: Mapped[int] = mapped_column(Integer, default=0)
    content: Mapped[str] = mapped_column(Text)

    # Embedding stored as JSON array (SQLite compatibility)
    embedding_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Native pgvector column
    embedding = Column(Vector(settings.embedding_dimension), nullable=True)

    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    document: Mapped[Optional["KnowledgeDocument"]] = relationship(
        "KnowledgeDocument", back_populates="chunks"
    )

    __table_args__ = (
        Index("ix_knowledge_chunks_doc_index", "document_id", "chunk_index"),
    )
