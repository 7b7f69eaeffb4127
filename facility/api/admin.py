"""
Admin - plan management, agent prompts and knowledge cleanup

All endpoints require the admin role.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db import get_db, User, UserRole
from facility.schemas import AdminUpdateUserRequest, AdminUpdatePromptRequest, MessageResponse
from facility.api.auth import require_admin
from facility.api.deps import get_knowledge_service
from facility.services import KnowledgeService
from facility.services.agent_service import update_agent_prompt

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_PLAN = "Admin"  # Pseudo-plan that promotes the user to the admin role


@router.post("/update-user", response_model=MessageResponse)
async def update_user(
    body: AdminUpdateUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's plan or billing cycle, optionally zeroing this month's usage"""
    user = await db.get(User, body.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    if body.new_plan:
        user.plan = body.new_plan
    if body.new_cycle:
        user.subscription_cycle = body.new_cycle

    if body.new_plan == ADMIN_PLAN:
        user.role = UserRole.ADMIN.value
    elif user.role == UserRole.ADMIN.value:
        user.role = UserRole.USER.value

    if body.reset_tokens:
        user.used_tokens_current_month = 0

    await db.commit()
    logger.info(f"Admin {admin.id} updated user {user.id} (plan={user.plan}, role={user.role})")
    return MessageResponse(message="User updated successfully!")


@router.post("/agents/prompt", response_model=MessageResponse)
async def update_prompt(
    body: AdminUpdatePromptRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace an agent's system instruction"""
    agent = await update_agent_prompt(db, body.agent_name, body.new_prompt)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found.")
    return MessageResponse(message="Prompt updated!")


@router.delete("/knowledge/{document_id}", response_model=MessageResponse)
async def delete_knowledge_document(
    document_id: str,
    admin: User = Depends(require_admin),
    knowledge_service: KnowledgeService = Depends(get_knowledge_service),
):
    """Remove an ingested document and its passages"""
    if not await knowledge_service.delete_document(document_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")
    return MessageResponse(message="File deleted.")
