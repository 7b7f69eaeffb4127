"""Agent catalogue - official and user-created personas"""

import logging
from typing import List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db.models import Agent, User
from facility.services.plan_policy import check_agent_creation

logger = logging.getLogger(__name__)

CUSTOM_SPECIALTY = "Custom"


class DuplicateAgentError(ValueError):
    """Raised when the creator already has an agent with that name."""


async def list_agents(db: AsyncSession, user_id: str) -> List[Agent]:
    """Official agents plus the ones the user created"""
    result = await db.execute(
        select(Agent)
        .where(or_(Agent.creator_id.is_(None), Agent.creator_id == user_id))
        .order_by(Agent.creator_id.is_not(None), Agent.name)
    )
    return list(result.scalars().all())


async def get_agent_by_name(
    db: AsyncSession,
    name: str,
    creator_id: Optional[str] = None,
) -> Optional[Agent]:
    """Agent with this exact name in the given creator scope (None = official)"""
    creator_filter = Agent.creator_id.is_(None) if creator_id is None else Agent.creator_id == creator_id
    result = await db.execute(
        select(Agent).where(Agent.name == name, creator_filter).order_by(Agent.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def count_custom_agents(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Agent).where(Agent.creator_id == user_id)
    )
    return result.scalar_one()


async def create_custom_agent(db: AsyncSession, user: User, name: str, prompt: str) -> Agent:
    """
    Create a user-owned agent.

    Raises PlanLimitError when the plan does not allow another agent and
    DuplicateAgentError when the name is taken in the user's scope.
    """
    check_agent_creation(user, await count_custom_agents(db, user.id))

    if await get_agent_by_name(db, name, creator_id=user.id) is not None:
        raise DuplicateAgentError(f"Agent '{name}' already exists.")

    agent = Agent(
        name=name,
        specialty=CUSTOM_SPECIALTY,
        system_instruction=prompt,
        creator_id=user.id,
    )
    db.add(agent)
    await db.commit()
    await db.refresh(agent)

    logger.info(f"User {user.id} created agent {name}")
    return agent


async def create_system_agent(
    db: AsyncSession,
    name: str,
    specialty: str,
    system_instruction: str,
) -> Agent:
    """Create or update an official agent (used by the seed script)"""
    agent = await get_agent_by_name(db, name)
    if agent is None:
        agent = Agent(name=name, creator_id=None)
        db.add(agent)
    agent.specialty = specialty
    agent.system_instruction = system_instruction
    await db.commit()
    await db.refresh(agent)
    return agent


async def update_agent_prompt(db: AsyncSession, agent_name: str, new_prompt: str) -> Optional[Agent]:
    """Replace the instruction of the official agent with this name"""
    agent = await get_agent_by_name(db, agent_name)
    if agent is None:
        return None
    agent.system_instruction = new_prompt
    await db.commit()
    return agent
