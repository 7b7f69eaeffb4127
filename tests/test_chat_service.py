"""
Tests for the chat orchestrator - quota gating, provider outcomes, usage accounting
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from unittest.mock import AsyncMock, MagicMock, patch

from facility.db import async_session_maker
from facility.db.models import Agent, ChatMessage, User
from facility.services import (
    ChatService, ChatOutcome, ContextBuilder, KnowledgeIndex, LLMResponse, OfflineLLMService,
)
from facility.services.chat_service import (
    OFFLINE_MESSAGE, NO_RESPONSE_MESSAGE, USER_NOT_FOUND_MESSAGE, build_messages,
)

from conftest import FakeLLMService


def _service(db, llm):
    return ChatService(db, llm, ContextBuilder(db, llm, KnowledgeIndex(db)))


async def _reload(db, user_id):
    db.expire_all()
    return await db.get(User, user_id)


def _months_ago(months):
    return datetime.utcnow() - timedelta(days=31 * months)


# ============ Successful turns ============

@pytest.mark.asyncio
async def test_completed_turn_adds_tokens(db_session, make_user):
    user = await make_user(plan="Free", used_tokens=4999)
    llm = FakeLLMService(content="Olá!", tokens=50)

    text, tokens = await _service(db_session, llm).respond("Oi", "Advogado", [], user.id)

    assert text == "Olá!"
    assert tokens == 50
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 5049
    assert stored.last_login is not None


@pytest.mark.asyncio
async def test_result_reports_outcome(db_session, make_user, fake_llm):
    user = await make_user()

    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.COMPLETED
    assert result.text == "Hello from the assistant"


@pytest.mark.asyncio
async def test_missing_usage_counts_as_zero(db_session, make_user):
    user = await make_user(used_tokens=10)
    llm = FakeLLMService(content="Reply", tokens=None)

    result = await _service(db_session, llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.COMPLETED
    assert result.tokens == 0
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 10


@pytest.mark.asyncio
async def test_increment_is_applied_in_sql(db_session, make_user, fake_llm):
    """A stale in-memory counter does not overwrite usage recorded elsewhere."""
    user = await make_user(used_tokens=100)

    await db_session.execute(
        update(User)
        .where(User.id == user.id)
        .values(used_tokens_current_month=1000)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()

    await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 1050


@pytest.mark.asyncio
async def test_consecutive_turns_accumulate(db_session, make_user, fake_llm):
    user = await make_user(used_tokens=0)
    service = _service(db_session, fake_llm)

    await service.respond("one", "Advogado", [], user.id)
    await service.respond("two", "Advogado", [], user.id)

    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 100


@pytest.mark.asyncio
async def test_enterprise_never_blocked(db_session, make_user, fake_llm):
    user = await make_user(plan="Enterprise", used_tokens=10 ** 9)

    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.COMPLETED
    fake_llm.complete.assert_awaited_once()


# ============ Quota ============

@pytest.mark.asyncio
async def test_free_user_at_limit_is_denied(db_session, make_user, fake_llm):
    user = await make_user(plan="Free", used_tokens=5000)

    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.DENIED
    assert result.tokens == 0
    assert "Free" in result.text
    fake_llm.complete.assert_not_called()
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 5000
    assert stored.last_login is None


@pytest.mark.asyncio
async def test_monthly_reset_runs_before_quota_check(db_session, make_user, fake_llm):
    user = await make_user(plan="Free", used_tokens=5000, last_reset_date=_months_ago(2))

    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.COMPLETED
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 50
    assert stored.last_reset_date > datetime.utcnow() - timedelta(minutes=5)


@pytest.mark.asyncio
async def test_unknown_plan_uses_free_ceiling(db_session, make_user, fake_llm):
    user = await make_user(plan="Legacy", used_tokens=5000)

    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.DENIED
    assert "Legacy" in result.text


# ============ Failure outcomes ============

@pytest.mark.asyncio
async def test_user_not_found(db_session, fake_llm):
    result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], "missing-id")

    assert result.outcome == ChatOutcome.USER_NOT_FOUND
    assert result.text == USER_NOT_FOUND_MESSAGE
    assert result.tokens == 0
    fake_llm.complete.assert_not_called()


@pytest.mark.asyncio
async def test_offline_mode_reply(db_session, make_user):
    user = await make_user(used_tokens=1200)

    result = await _service(db_session, OfflineLLMService()).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.OFFLINE
    assert result.text == OFFLINE_MESSAGE
    assert result.tokens == 0
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 1200
    assert stored.last_login is None


@pytest.mark.asyncio
async def test_offline_mode_persists_pending_reset(db_session, make_user):
    user = await make_user(used_tokens=1200, last_reset_date=_months_ago(2))

    result = await _service(db_session, OfflineLLMService()).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.OFFLINE
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 0
    assert stored.last_reset_date > datetime.utcnow() - timedelta(minutes=5)
    assert stored.last_login is None


@pytest.mark.asyncio
async def test_provider_error_is_returned_as_text(db_session, make_user):
    user = await make_user(used_tokens=10)
    llm = FakeLLMService()
    llm.complete = AsyncMock(side_effect=RuntimeError("connection reset"))

    result = await _service(db_session, llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.PROVIDER_ERROR
    assert result.text == "AI communication error: connection reset"
    assert result.tokens == 0
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 10


@pytest.mark.asyncio
async def test_empty_completion(db_session, make_user):
    user = await make_user(used_tokens=10)
    llm = FakeLLMService(content="", tokens=30)

    result = await _service(db_session, llm).respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.NO_RESPONSE
    assert result.text == NO_RESPONSE_MESSAGE
    assert result.tokens == 0
    stored = await _reload(db_session, user.id)
    assert stored.used_tokens_current_month == 10


@pytest.mark.asyncio
async def test_retrieval_failure_still_generates(db_session, make_user, fake_llm):
    user = await make_user()
    index = MagicMock()
    index.name = "broken"
    index.query = AsyncMock(side_effect=RuntimeError("index unavailable"))
    service = ChatService(db_session, fake_llm, ContextBuilder(db_session, fake_llm, index))

    result = await service.respond("Oi", "Advogado", [], user.id)

    assert result.outcome == ChatOutcome.COMPLETED


# ============ Message assembly ============

@pytest.mark.asyncio
async def test_history_sent_in_order(db_session, make_user, fake_llm):
    user = await make_user()
    db_session.add(Agent(name="Advogado", specialty="Law", system_instruction="You are a lawyer."))
    await db_session.commit()
    history = [
        ChatMessage(sender="user", text="first question"),
        ChatMessage(sender="assistant", text="first answer"),
        ChatMessage(sender="user", text="second question"),
    ]

    await _service(db_session, fake_llm).respond("third question", "Advogado", history, user.id)

    messages = fake_llm.complete.call_args.kwargs["messages"]
    assert len(messages) == len(history) + 2
    assert messages[0] == {"role": "system", "content": "You are a lawyer."}
    assert [m["content"] for m in messages[1:]] == [
        "first question", "first answer", "second question", "third question",
    ]
    assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user", "user"]


def test_unknown_sender_replayed_as_assistant():
    history = [ChatMessage(sender="bot", text="hi")]

    messages = build_messages("system", history, "hello")

    assert messages[1] == {"role": "assistant", "content": "hi"}
    assert messages[-1] == {"role": "user", "content": "hello"}


# ============ Persistence edge cases ============

@pytest.mark.asyncio
async def test_failed_commit_still_returns_reply(db_session, make_user, fake_llm):
    user = await make_user(used_tokens=10)
    user_id = user.id
    locked = OperationalError("UPDATE users", {}, Exception("database is locked"))

    with patch.object(db_session, "commit", AsyncMock(side_effect=locked)):
        result = await _service(db_session, fake_llm).respond("Oi", "Advogado", [], user_id)

    assert result.outcome == ChatOutcome.COMPLETED
    assert result.text == "Hello from the assistant"
    assert result.tokens == 50
    stored = await _reload(db_session, user_id)
    assert stored.used_tokens_current_month == 10


@pytest.mark.asyncio
async def test_reset_by_concurrent_turn_falls_back_to_increment(db_session, make_user):
    user = await make_user(used_tokens=4000, last_reset_date=_months_ago(2))
    user_id = user.id
    competing_reset = datetime.utcnow()

    async def complete_after_competing_turn(**kwargs):
        async with async_session_maker() as other:
            await other.execute(
                update(User)
                .where(User.id == user_id)
                .values(used_tokens_current_month=30, last_reset_date=competing_reset)
            )
            await other.commit()
        return LLMResponse(
            content="Reply",
            model="gpt-4o-mini",
            tokens_prompt=0,
            tokens_completion=0,
            tokens_total=50,
            finish_reason="stop",
        )

    llm = FakeLLMService()
    llm.complete = AsyncMock(side_effect=complete_after_competing_turn)

    result = await _service(db_session, llm).respond("Oi", "Advogado", [], user_id)

    assert result.outcome == ChatOutcome.COMPLETED
    stored = await _reload(db_session, user_id)
    assert stored.used_tokens_current_month == 80
    assert stored.last_reset_date == competing_reset
    assert stored.last_login is not None


# ============ Agent scope ============

@pytest.mark.asyncio
async def test_custom_agent_of_another_user_not_used(db_session, make_user, fake_llm):
    owner = await make_user(plan="Plus")
    caller = await make_user(plan="Pro")
    db_session.add(Agent(name="Advogado", specialty="Custom", system_instruction="Owner prompt.", creator_id=owner.id))
    db_session.add(Agent(name="Advogado", specialty="Law", system_instruction="You are a lawyer."))
    await db_session.commit()

    await _service(db_session, fake_llm).respond("Oi", "Advogado", [], caller.id)

    messages = fake_llm.complete.call_args.kwargs["messages"]
    assert messages[0]["content"] == "You are a lawyer."
