"""
Entitlement service: read-side access checks.

Answers "may this visitor read premium comics right now?" for a signed-in
user, an anonymous Day Pass session, or both.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from panelpass.entitlements.models import Entitlement
from panelpass.models.base import utcnow
from panelpass.models.profile import SubscriptionStatus
from panelpass.repositories.profile_repository import ProfileRepository
from panelpass.services.daypass_tracker import DayPassTracker

logger = logging.getLogger(__name__)


@dataclass
class AccessResult:
    """Access decision for one request."""
    has_access: bool
    source: Optional[str] = None  # "subscription" | "daypass"
    entitlement: Optional[Entitlement] = None

    def to_dict(self) -> dict:
        return {
            "has_access": self.has_access,
            "source": self.source,
            "tier": self.entitlement.tier.value if self.entitlement else None,
            "status": self.entitlement.status.value if self.entitlement else None,
            "expires_at": (
                self.entitlement.expires_at.isoformat()
                if self.entitlement and self.entitlement.expires_at else None
            ),
        }


class EntitlementService:
    """Access checks over the entitlement store and Day Pass tracker."""

    def __init__(self, db_session: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db_session
        self.clock = clock
        self.store = ProfileRepository(db_session)
        self.tracker = DayPassTracker(db_session, clock=clock)

    def get_active_entitlement(self, user_id: str) -> Optional[Entitlement]:
        """
        Get the user's entitlement if it currently grants access.

        An active entitlement whose end date has passed is written back as
        expired, keeping tier and references.
        """
        entitlement = self.store.get_entitlement(user_id)
        if entitlement is None or entitlement.status != SubscriptionStatus.ACTIVE:
            return None

        now = self.clock()
        if entitlement.is_active_at(now):
            return entitlement

        expired = replace(entitlement, status=SubscriptionStatus.EXPIRED)
        try:
            self.store.write_entitlement(user_id, expired)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to mark entitlement expired", extra={
                "user_id": user_id,
                "error": str(e)
            })
        return None

    def has_active_subscription(self, user_id: str) -> bool:
        return self.get_active_entitlement(user_id) is not None

    def check_access(
        self,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> AccessResult:
        """
        Check access for a user and/or an anonymous session.

        The user's own subscription takes precedence over a session pass.
        """
        if user_id:
            entitlement = self.get_active_entitlement(user_id)
            if entitlement is not None:
                return AccessResult(has_access=True, source="subscription", entitlement=entitlement)

        if session_id and self.tracker.is_active(session_id):
            return AccessResult(has_access=True, source="daypass")

        return AccessResult(has_access=False)
