"""Identity helpers - JWT verification and user lookups

Tokens are issued by the external auth service with the user id in "sub";
this service shares the signing secret and only needs to verify them.
"""

from datetime import datetime, timedelta
from typing import Optional
import uuid

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from facility.config import settings
from facility.db.models import User, Plan, UserRole


def create_access_token(user_id: str, expires_minutes: int = 60) -> str:
    """Create a JWT access token (used by tooling and tests)"""
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes)
    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": datetime.utcnow(),
        "jti": str(uuid.uuid4()),  # Unique token ID
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str) -> Optional[str]:
    """Decode a JWT token and return the user ID"""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm]
        )
        user_id: str = payload.get("sub")
        if user_id is None:
            return None
        return user_id
    except JWTError:
        return None


async def create_user(
    db: AsyncSession,
    email: str,
    name: str = "",
    plan: str = Plan.FREE.value,
    role: str = UserRole.USER.value,
) -> User:
    """Create a user record"""
    user = User(
        email=email,
        name=name,
        plan=plan,
        role=role,
        used_tokens_current_month=0,
        last_reset_date=datetime.utcnow(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    """Get user by ID"""
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get user by email"""
    result = await db.execute(
        select(User).where(User.email == email)
    )
    return result.scalar_one_or_none()
