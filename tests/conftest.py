"""
Shared fixtures for the Facility.IA tests
"""

import os

# In-memory database and no provider credentials, before the app is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")

from datetime import datetime
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db import init_db, drop_db, async_session_maker, User
from facility.services import LLMResponse


class FakeLLMService:
    """Configured provider double with canned completions and embeddings."""

    is_configured = True

    def __init__(
        self,
        content: str = "Hello from the assistant",
        tokens: Optional[int] = 50,
        embedding: Optional[List[float]] = None,
    ):
        self.complete = AsyncMock(return_value=LLMResponse(
            content=content,
            model="gpt-4o-mini",
            tokens_prompt=0,
            tokens_completion=0,
            tokens_total=tokens,
            finish_reason="stop",
        ))
        self.embed = AsyncMock(return_value=embedding or [1.0, 0.0, 0.0])
        self.embed_batch = AsyncMock(side_effect=self._embed_batch)

    @staticmethod
    def _embed_batch(texts: List[str]) -> List[List[float]]:
        return [[1.0, 0.0, 0.0] for _ in texts]


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create a fresh database for each test"""
    await init_db()
    yield
    await drop_db()


@pytest_asyncio.fixture
async def db_session():
    """Get a database session"""
    async with async_session_maker() as session:
        yield session


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory for users with a given plan and usage"""
    counter = {"n": 0}

    async def _make_user(
        plan: Optional[str] = "Free",
        used_tokens: int = 0,
        last_reset_date: Optional[datetime] = None,
        role: str = "user",
    ) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=f"User {counter['n']}",
            plan=plan,
            role=role,
            used_tokens_current_month=used_tokens,
            last_reset_date=last_reset_date or datetime.utcnow(),
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def fake_llm():
    return FakeLLMService()
