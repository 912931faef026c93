"""
Anonymous Day Pass tracker.

Maps a browser session id (daypass_session_id cookie) to a short-lived
entitlement before the visitor has an account.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from panelpass.entitlements.errors import EntitlementWriteError
from panelpass.entitlements.policy import calculate_end_date
from panelpass.models.anonymous_daypass import AnonymousDayPass
from panelpass.models.base import ensure_utc, utcnow
from panelpass.models.profile import PaymentProvider, SubscriptionTier
from panelpass.repositories.daypass_repository import DayPassRepository

logger = logging.getLogger(__name__)


class DayPassTracker:
    """
    Create and check anonymous Day Passes.

    A pass grants access only while it is unexpired and unmerged. After a
    merge the entitlement lives on the user's profile exclusively.
    """

    def __init__(self, db_session: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db_session
        self.repo = DayPassRepository(db_session)
        self.clock = clock

    def is_active(self, session_id: Optional[str]) -> bool:
        """
        Check whether a session currently holds an anonymous Day Pass.

        Returns False when there is no record, the pass has expired, the
        pass has been merged into an account, or the lookup fails.
        """
        if not session_id:
            return False

        try:
            daypass = self.repo.get_by_session(session_id)
        except SQLAlchemyError as e:
            logger.error("Day Pass lookup failed", extra={
                "session_id": session_id,
                "error": str(e)
            })
            return False

        if daypass is None:
            return False

        expires_at = ensure_utc(daypass.expires_at)
        if expires_at <= self.clock():
            return False

        if daypass.user_id:
            return False

        return True

    def create(
        self,
        session_id: str,
        provider: PaymentProvider,
        transaction_ref: Optional[str]
    ) -> AnonymousDayPass:
        """
        Create or refresh the Day Pass for a session.

        Re-creating an existing pass overwrites its expiry, provider and
        reference instead of failing.

        Raises:
            EntitlementWriteError: If the store write fails
        """
        if not session_id:
            raise ValueError("session_id is required")
        if provider == PaymentProvider.NONE:
            raise ValueError("provider is required")

        expires_at = calculate_end_date(SubscriptionTier.DAYPASS, self.clock())

        try:
            daypass = self.repo.upsert(
                session_id=session_id,
                expires_at=expires_at,
                payment_provider=provider.value,
                transaction_ref=transaction_ref,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EntitlementWriteError(
                f"Failed to create anonymous Day Pass: {e}"
            ) from e

        logger.info("Anonymous Day Pass created", extra={
            "session_id": session_id,
            "payment_provider": provider.value,
            "transaction_ref": transaction_ref,
            "expires_at": expires_at.isoformat()
        })
        return daypass

    def get_unmerged(self, session_id: str) -> Optional[AnonymousDayPass]:
        """Get the pass for a session unless it has already been merged."""
        return self.repo.get_unmerged(session_id)

    def mark_merged(self, session_id: str, user_id: str) -> bool:
        """Record that the session's pass now belongs to ``user_id``."""
        return self.repo.mark_merged(session_id, user_id)
