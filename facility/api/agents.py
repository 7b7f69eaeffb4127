"""Agents API - official and custom personas"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db import get_db, User
from facility.schemas import AgentCreate, AgentResponse, AgentCreatedResponse
from facility.api.auth import get_current_user
from facility.services.agent_service import list_agents, create_custom_agent, DuplicateAgentError
from facility.services.plan_policy import PlanLimitError

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=List[AgentResponse])
async def get_agents(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Official agents plus the caller's own"""
    return await list_agents(db, current_user.id)


@router.post("", response_model=AgentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def post_agent(
    body: AgentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a custom agent, within the plan's agent cap"""
    try:
        agent = await create_custom_agent(db, current_user, body.name, body.prompt)
    except PlanLimitError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DuplicateAgentError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return AgentCreatedResponse(id=agent.id)
