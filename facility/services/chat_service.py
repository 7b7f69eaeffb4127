"""
Chat Service - Quota-aware chat orchestration

A chat turn runs through:
1. User lookup
2. Quota check (with the monthly reset)
3. System prompt assembly (persona + knowledge base)
4. Message history assembly
5. LLM completion
6. Usage commit

Every outcome is returned as a ChatResult; provider failures never raise
out of respond().
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db.models import MessageSender, User
from facility.services.context_builder import ContextBuilder
from facility.services.llm_service import LLMService, OfflineLLMService
from facility.services.plan_policy import admit

logger = logging.getLogger(__name__)

USER_NOT_FOUND_MESSAGE = "Error: user not found."
OFFLINE_MESSAGE = (
    "[OFFLINE MODE] The AI is not responding. "
    "Check that the API key (OPENAI_API_KEY) is configured for this deployment."
)
NO_RESPONSE_MESSAGE = "The AI returned no response."
PROVIDER_ERROR_MESSAGE = "AI communication error: {detail}"


class ChatOutcome(str, Enum):
    """Terminal states of a chat turn"""
    COMPLETED = "completed"
    USER_NOT_FOUND = "user_not_found"
    DENIED = "denied"
    OFFLINE = "offline"
    NO_RESPONSE = "no_response"
    PROVIDER_ERROR = "provider_error"


@dataclass
class ChatResult:
    """Reply text and tokens consumed. Unpacks as (text, tokens)."""
    text: str
    tokens: int
    outcome: ChatOutcome

    def __iter__(self):
        return iter((self.text, self.tokens))


def build_messages(
    system_instruction: str,
    history: Iterable,
    user_message: str,
) -> List[Dict[str, str]]:
    """
    System message, then the history in the given order, then the new
    user message. Anything not sent by the user is replayed as assistant.
    """
    messages = [{"role": "system", "content": system_instruction}]
    for msg in history:
        role = "user" if msg.sender == MessageSender.USER.value else "assistant"
        messages.append({"role": role, "content": msg.text})
    messages.append({"role": "user", "content": user_message})
    return messages


class ChatService:
    """
    Orchestrates one chat turn for a user and an agent.

    History is supplied by the caller, oldest first; it is neither
    reordered nor truncated here.
    """

    def __init__(
        self,
        db: AsyncSession,
        llm_service: LLMService,
        context_builder: ContextBuilder,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.llm_service = llm_service
        self.context_builder = context_builder
        self.clock = clock

    async def respond(
        self,
        user_message: str,
        agent_id: str,
        history: Iterable,
        user_id: str,
    ) -> ChatResult:
        now = self.clock()

        user = await self.db.get(User, user_id)
        if user is None:
            logger.warning(f"User {user_id} not found when starting a chat")
            return ChatResult(USER_NOT_FOUND_MESSAGE, 0, ChatOutcome.USER_NOT_FOUND)

        seen_reset_date = user.last_reset_date
        decision = admit(user, now)

        if not decision.allowed:
            await self._persist(user, seen_reset_date, decision.reset_applied, None, now)
            return ChatResult(decision.reason, 0, ChatOutcome.DENIED)

        system_instruction = await self.context_builder.build_system_prompt(
            agent_id, user_message, user_id=user_id
        )
        messages = build_messages(system_instruction, history, user_message)

        result = await self._generate(messages, agent_id, user_id)

        tokens = result.tokens if result.outcome == ChatOutcome.COMPLETED else None
        await self._persist(user, seen_reset_date, decision.reset_applied, tokens, now)
        return result

    async def _generate(
        self,
        messages: List[Dict[str, str]],
        agent_id: str,
        user_id: str,
    ) -> ChatResult:
        if isinstance(self.llm_service, OfflineLLMService):
            logger.info(f"Offline reply for agent {agent_id} ({self.llm_service.reason})")
            return ChatResult(OFFLINE_MESSAGE, 0, ChatOutcome.OFFLINE)

        try:
            response = await self.llm_service.complete(messages=messages)
        except Exception as e:
            logger.error(f"LLM completion failed for user {user_id}: {e}", exc_info=True)
            return ChatResult(
                PROVIDER_ERROR_MESSAGE.format(detail=e), 0, ChatOutcome.PROVIDER_ERROR
            )

        if response is None or not response.content:
            return ChatResult(NO_RESPONSE_MESSAGE, 0, ChatOutcome.NO_RESPONSE)

        return ChatResult(response.content, response.tokens_total or 0, ChatOutcome.COMPLETED)

    async def _persist(
        self,
        user: User,
        seen_reset_date: Optional[datetime],
        reset_applied: bool,
        tokens: Optional[int],
        now: datetime,
    ) -> None:
        """
        Write the turn's effect on the user row in one transaction.

        tokens is None for turns that produced no real completion; those
        only persist a pending monthly reset. The counter is updated in SQL
        so concurrent turns of the same user cannot overwrite each other.
        """
        record_usage = tokens is not None
        if not reset_applied and not record_usage:
            return

        # Read before a rollback can expire the instance
        user_id = user.id

        # The in-memory reset is replaced by the statements below
        self.db.expire(user, ["used_tokens_current_month", "last_reset_date"])

        login_values = {"last_login": now} if record_usage else {}
        try:
            reset_written = False
            if reset_applied:
                if seen_reset_date is None:
                    unchanged = User.last_reset_date.is_(None)
                else:
                    unchanged = User.last_reset_date == seen_reset_date
                result = await self.db.execute(
                    update(User)
                    .where(User.id == user_id, unchanged)
                    .values(
                        used_tokens_current_month=tokens or 0,
                        last_reset_date=now,
                        **login_values,
                    )
                    .execution_options(synchronize_session=False)
                )
                # Another turn may have reset the window first
                reset_written = result.rowcount == 1

            if record_usage and not reset_written:
                await self.db.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(
                        used_tokens_current_month=User.used_tokens_current_month + tokens,
                        **login_values,
                    )
                    .execution_options(synchronize_session=False)
                )

            await self.db.commit()
            await self.db.refresh(user)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Could not record token usage for user {user_id}: {e}", exc_info=True)
            return

        if record_usage:
            logger.info(
                f"User {user_id} consumed {tokens} tokens "
                f"({user.used_tokens_current_month} this month)"
            )
