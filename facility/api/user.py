"""User profile endpoints"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from facility.db import get_db, User
from facility.schemas import UserProfileResponse, UserProfileUpdate, UserProfileUpdateResponse
from facility.api.auth import get_current_user

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/profile", response_model=UserProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Current profile, plan and monthly usage"""
    return current_user


@router.put("/profile", response_model=UserProfileUpdateResponse)
async def update_profile(
    body: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update the display name"""
    if not body.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name cannot be empty.",
        )

    current_user.name = body.name.strip()
    await db.commit()

    return UserProfileUpdateResponse(
        message="Profile updated successfully!",
        name=current_user.name,
        email=current_user.email,
    )
