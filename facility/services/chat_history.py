"""Stored chat history per user and agent"""

from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db.models import ChatMessage, MessageSender


async def get_recent_messages(
    db: AsyncSession,
    user_id: str,
    agent_id: str,
    limit: int = 20,
) -> List[ChatMessage]:
    """The newest `limit` messages of a conversation, returned oldest first."""
    if limit <= 0:
        return []
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.user_id == user_id, ChatMessage.agent_id == agent_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return messages


async def record_turn(
    db: AsyncSession,
    user_id: str,
    agent_id: str,
    user_text: str,
    reply_text: str,
) -> List[ChatMessage]:
    """Store the user's message and the assistant's reply."""
    # Distinct timestamps keep the pair ordered when read back
    now = datetime.utcnow()
    question = ChatMessage(
        user_id=user_id,
        agent_id=agent_id,
        sender=MessageSender.USER.value,
        text=user_text,
        created_at=now,
    )
    answer = ChatMessage(
        user_id=user_id,
        agent_id=agent_id,
        sender=MessageSender.ASSISTANT.value,
        text=reply_text,
        created_at=now + timedelta(microseconds=1),
    )
    db.add_all([question, answer])
    await db.commit()
    return [question, answer]
