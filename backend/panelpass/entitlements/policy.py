"""
Fixed-duration access policy.

Expiry is never taken from the provider: a Day Pass lasts three hours from
the moment it is granted, a Member period seven days.
"""

from datetime import datetime, timedelta
from typing import Optional

from panelpass.config.plans import DAYPASS_PLAN_NAME, MEMBER_PLAN_NAME
from panelpass.models.profile import SubscriptionTier

DAYPASS_DURATION = timedelta(hours=3)
MEMBER_DURATION = timedelta(days=7)

# Session cookie lifetime matches the Day Pass duration
DAYPASS_COOKIE_MAX_AGE_SECONDS = int(DAYPASS_DURATION.total_seconds())

_DURATIONS = {
    SubscriptionTier.DAYPASS: DAYPASS_DURATION,
    SubscriptionTier.MEMBER: MEMBER_DURATION,
}

_PLAN_TIERS = {
    DAYPASS_PLAN_NAME: SubscriptionTier.DAYPASS,
    MEMBER_PLAN_NAME: SubscriptionTier.MEMBER,
}


def calculate_end_date(tier: SubscriptionTier, now: datetime) -> Optional[datetime]:
    """End of the access period granted at ``now`` for ``tier``."""
    duration = _DURATIONS.get(tier)
    if duration is None:
        return None
    return now + duration


def inherited_tier(current_tier: Optional[SubscriptionTier]) -> SubscriptionTier:
    """
    Tier written when an existing subscription is (re)activated.

    Member stays member; anything else is treated as a Day Pass.
    """
    if current_tier == SubscriptionTier.MEMBER:
        return SubscriptionTier.MEMBER
    return SubscriptionTier.DAYPASS


def tier_for_plan_name(plan_name: Optional[str]) -> Optional[SubscriptionTier]:
    """Tier sold under a checkout plan name; None for names not on sale."""
    return _PLAN_TIERS.get(plan_name)
