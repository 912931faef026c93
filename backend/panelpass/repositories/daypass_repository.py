"""
Anonymous Day Pass repository.

Rows are mutated forward only: created or refreshed by session id, then
marked merged. Nothing here deletes a pass.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from panelpass.models.anonymous_daypass import AnonymousDayPass

logger = logging.getLogger(__name__)


class DayPassRepository:
    """Data access for anonymous_daypasses."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_by_session(self, session_id: str) -> Optional[AnonymousDayPass]:
        return self.db.query(AnonymousDayPass).filter(
            AnonymousDayPass.session_id == session_id
        ).first()

    def get_unmerged(self, session_id: str) -> Optional[AnonymousDayPass]:
        """Get the pass for a session if it has not been merged yet."""
        return self.db.query(AnonymousDayPass).filter(
            AnonymousDayPass.session_id == session_id,
            AnonymousDayPass.user_id.is_(None)
        ).first()

    def upsert(
        self,
        session_id: str,
        expires_at: datetime,
        payment_provider: str,
        transaction_ref: Optional[str]
    ) -> AnonymousDayPass:
        """
        Create the pass for a session or overwrite its expiry and payment.

        user_id is left untouched on an existing row.
        """
        daypass = self.get_by_session(session_id)
        if daypass is None:
            daypass = AnonymousDayPass(
                session_id=session_id,
                expires_at=expires_at,
                payment_provider=payment_provider,
                transaction_ref=transaction_ref,
            )
            self.db.add(daypass)
        else:
            daypass.expires_at = expires_at
            daypass.payment_provider = payment_provider
            daypass.transaction_ref = transaction_ref

        self.db.flush()
        return daypass

    def mark_merged(self, session_id: str, user_id: str) -> bool:
        """
        Set user_id on the pass for a session.

        Returns:
            True if a row was updated
        """
        daypass = self.get_by_session(session_id)
        if daypass is None:
            return False
        daypass.user_id = user_id
        self.db.flush()
        return True
