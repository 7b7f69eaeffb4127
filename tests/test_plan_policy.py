"""
Tests for the plan policy - token ceilings, monthly reset, feature matrix

Pure logic on transient User objects; no database needed.
"""

from datetime import datetime

import pytest

from facility.db.models import User
from facility.services.plan_policy import (
    admit, apply_monthly_reset, get_token_limit, get_upload_limit, get_agent_limit,
    check_upload_size, check_agent_creation, subtract_months, reset_due,
    PlanLimitError, LIMIT_FREE, LIMIT_PRO, MB,
)

NOW = datetime(2026, 3, 15, 12, 0, 0)


def _user(plan="Free", used=0, last_reset=NOW):
    return User(
        id="u-1",
        email="u@example.com",
        plan=plan,
        used_tokens_current_month=used,
        last_reset_date=last_reset,
    )


# ============ Ceilings ============

class TestTokenLimits:

    @pytest.mark.parametrize("plan,expected", [
        ("Free", 5000),
        ("Iniciante", 5000),
        ("Pro", 100000),
        ("Enterprise", None),
        ("Platinum", 5000),
        ("", 5000),
        (None, 5000),
    ])
    def test_plan_ceiling(self, plan, expected):
        assert get_token_limit(plan) == expected

    def test_plus_uses_free_ceiling(self):
        assert get_token_limit("Plus") == LIMIT_FREE

    def test_constants(self):
        assert LIMIT_FREE == 5000
        assert LIMIT_PRO == 100000


# ============ Admission ============

class TestAdmit:

    def test_free_below_ceiling_admitted(self):
        decision = admit(_user(used=4999), NOW)
        assert decision.allowed
        assert decision.reason is None
        assert decision.limit == 5000

    def test_free_at_ceiling_denied(self):
        decision = admit(_user(used=5000), NOW)
        assert not decision.allowed
        assert "Free" in decision.reason

    def test_denial_names_current_plan(self):
        decision = admit(_user(plan="Pro", used=100000), NOW)
        assert not decision.allowed
        assert "Pro" in decision.reason

    def test_unknown_plan_denied_at_free_ceiling(self):
        decision = admit(_user(plan="Gold", used=5000), NOW)
        assert not decision.allowed
        assert "Gold" in decision.reason

    def test_missing_plan_reported_as_free(self):
        decision = admit(_user(plan=None, used=6000), NOW)
        assert not decision.allowed
        assert "Free" in decision.reason

    def test_enterprise_never_denied(self):
        decision = admit(_user(plan="Enterprise", used=10 ** 12), NOW)
        assert decision.allowed
        assert decision.limit is None

    def test_pro_between_ceilings_admitted(self):
        assert admit(_user(plan="Pro", used=50000), NOW).allowed


# ============ Monthly reset ============

class TestMonthlyReset:

    def test_subtract_months_same_day(self):
        assert subtract_months(datetime(2026, 3, 15, 8, 30), 1) == datetime(2026, 2, 15, 8, 30)

    def test_subtract_months_clamps_day(self):
        assert subtract_months(datetime(2026, 3, 31), 1) == datetime(2026, 2, 28)

    def test_subtract_months_crosses_year(self):
        assert subtract_months(datetime(2026, 1, 10), 1) == datetime(2025, 12, 10)

    def test_reset_exactly_one_month(self):
        assert reset_due(_user(last_reset=datetime(2026, 2, 15, 12, 0, 0)), NOW)

    def test_no_reset_within_month(self):
        assert not reset_due(_user(last_reset=datetime(2026, 2, 15, 12, 0, 1)), NOW)

    def test_missing_reset_date_is_due(self):
        assert reset_due(_user(last_reset=None), NOW)

    def test_reset_zeroes_counter_and_advances_date(self):
        user = _user(used=4321, last_reset=datetime(2026, 1, 1))
        assert apply_monthly_reset(user, NOW)
        assert user.used_tokens_current_month == 0
        assert user.last_reset_date == NOW

    def test_reset_not_applied_keeps_state(self):
        last = datetime(2026, 3, 1)
        user = _user(used=100, last_reset=last)
        assert not apply_monthly_reset(user, NOW)
        assert user.used_tokens_current_month == 100
        assert user.last_reset_date == last

    def test_reset_runs_before_ceiling_check(self):
        user = _user(used=5000, last_reset=datetime(2026, 1, 10))
        decision = admit(user, NOW)
        assert decision.allowed
        assert decision.reset_applied
        assert user.used_tokens_current_month == 0

    def test_denied_after_reset_not_due(self):
        decision = admit(_user(used=5000, last_reset=datetime(2026, 3, 1)), NOW)
        assert not decision.allowed
        assert not decision.reset_applied


# ============ Feature matrix ============

class TestFeatureMatrix:

    @pytest.mark.parametrize("plan,limit_mb", [
        ("Free", 2), ("Iniciante", 2), ("Plus", 5), ("Pro", 50), ("Enterprise", 50), ("Other", 2),
    ])
    def test_upload_limits(self, plan, limit_mb):
        assert get_upload_limit(plan) == limit_mb * MB

    def test_upload_within_limit(self):
        check_upload_size(_user(plan="Plus"), 5 * MB)

    def test_upload_over_limit(self):
        with pytest.raises(PlanLimitError, match="Free"):
            check_upload_size(_user(plan="Free"), 2 * MB + 1)

    @pytest.mark.parametrize("plan,expected", [
        ("Free", 0), ("Iniciante", 0), ("Plus", 5), ("Pro", None), ("Enterprise", None), ("x", 0),
    ])
    def test_agent_limits(self, plan, expected):
        assert get_agent_limit(plan) == expected

    def test_free_cannot_create_agents(self):
        with pytest.raises(PlanLimitError, match="official agents"):
            check_agent_creation(_user(plan="Free"), 0)

    def test_plus_cap(self):
        check_agent_creation(_user(plan="Plus"), 4)
        with pytest.raises(PlanLimitError, match="5 agents"):
            check_agent_creation(_user(plan="Plus"), 5)

    def test_pro_unlimited(self):
        check_agent_creation(_user(plan="Pro"), 500)
