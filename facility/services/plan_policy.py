"""
Plan policy - token quotas and the plan feature matrix

Provides:
- Monthly token ceiling per plan
- Monthly usage reset
- Chat admission decision
- Upload size and custom-agent limits per plan

Unknown or empty plan values are always treated as the free tier.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from facility.db.models import Plan, User

logger = logging.getLogger(__name__)


LIMIT_FREE = 5000
LIMIT_PRO = 100000

# None = no ceiling
PLAN_TOKEN_LIMITS = {
    Plan.FREE.value: LIMIT_FREE,
    Plan.INICIANTE.value: LIMIT_FREE,
    Plan.PRO.value: LIMIT_PRO,
    Plan.ENTERPRISE.value: None,
}

MB = 1024 * 1024

PLAN_UPLOAD_LIMITS_BYTES = {
    Plan.FREE.value: 2 * MB,
    Plan.INICIANTE.value: 2 * MB,
    Plan.PLUS.value: 5 * MB,
    Plan.PRO.value: 50 * MB,
    Plan.ENTERPRISE.value: 50 * MB,
}

# None = unlimited, 0 = official agents only
PLAN_AGENT_LIMITS = {
    Plan.FREE.value: 0,
    Plan.INICIANTE.value: 0,
    Plan.PLUS.value: 5,
    Plan.PRO.value: None,
    Plan.ENTERPRISE.value: None,
}


class PlanLimitError(ValueError):
    """Raised when an operation is not allowed on the user's plan."""


@dataclass
class QuotaDecision:
    """Outcome of a chat admission check"""
    allowed: bool
    reason: Optional[str]
    limit: Optional[int]
    reset_applied: bool = False


def plan_name(user: User) -> str:
    return user.plan or Plan.FREE.value


def get_token_limit(plan: Optional[str]) -> Optional[int]:
    """Monthly token ceiling for a plan. None means unbounded."""
    if plan in PLAN_TOKEN_LIMITS:
        return PLAN_TOKEN_LIMITS[plan]
    return LIMIT_FREE


def get_upload_limit(plan: Optional[str]) -> int:
    """Maximum knowledge upload size in bytes."""
    return PLAN_UPLOAD_LIMITS_BYTES.get(plan, PLAN_UPLOAD_LIMITS_BYTES[Plan.FREE.value])


def get_agent_limit(plan: Optional[str]) -> Optional[int]:
    """Maximum number of custom agents. None means unlimited."""
    if plan in PLAN_AGENT_LIMITS:
        return PLAN_AGENT_LIMITS[plan]
    return PLAN_AGENT_LIMITS[Plan.FREE.value]


def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def reset_due(user: User, now: datetime) -> bool:
    """True when at least one calendar month has passed since the last reset."""
    if user.last_reset_date is None:
        return True
    return user.last_reset_date <= subtract_months(now, 1)


def apply_monthly_reset(user: User, now: Optional[datetime] = None) -> bool:
    """
    Zero the monthly counter if the reset window has elapsed.

    Only the in-memory instance is changed; the caller persists it.
    Returns True if a reset happened.
    """
    now = now or datetime.utcnow()
    if not reset_due(user, now):
        return False
    logger.info(
        "Monthly token reset for user %s (used %s since %s)",
        user.id, user.used_tokens_current_month, user.last_reset_date,
    )
    user.used_tokens_current_month = 0
    user.last_reset_date = now
    return True


def admit(user: User, now: Optional[datetime] = None) -> QuotaDecision:
    """
    Decide whether a chat request may proceed.

    The monthly reset runs first, so a user who hit the ceiling last month
    is admitted again on the first request of the new window.
    """
    reset_applied = apply_monthly_reset(user, now)
    limit = get_token_limit(user.plan)
    used = user.used_tokens_current_month or 0

    if limit is not None and used >= limit:
        return QuotaDecision(
            allowed=False,
            reason=f"Token limit of the {plan_name(user)} plan reached. Upgrade to keep chatting.",
            limit=limit,
            reset_applied=reset_applied,
        )

    return QuotaDecision(allowed=True, reason=None, limit=limit, reset_applied=reset_applied)


def check_upload_size(user: User, size_bytes: int) -> None:
    """Raise PlanLimitError if the upload exceeds the plan's size limit."""
    limit = get_upload_limit(user.plan)
    if size_bytes > limit:
        raise PlanLimitError(
            f"The {plan_name(user)} plan accepts files up to {limit // MB}MB. "
            "Upgrade to send larger files."
        )


def check_agent_creation(user: User, current_count: int) -> None:
    """Raise PlanLimitError if the user may not create another custom agent."""
    limit = get_agent_limit(user.plan)
    if limit is None:
        return
    if limit == 0:
        raise PlanLimitError(f"The {plan_name(user)} plan only uses official agents.")
    if current_count >= limit:
        raise PlanLimitError(f"Limit of {limit} agents reached.")
