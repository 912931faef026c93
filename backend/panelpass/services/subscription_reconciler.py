"""
Subscription reconciler.

Turns a canonical PaymentEvent into a new entitlement tuple and persists it:
- Resolves the subject (explicit user/session id, else stored correlation id)
- Computes tier, status and expiry from a fixed transition table
- Writes the full tuple, clearing the other provider's references

Writes are deterministic functions of the event, the clock and (for the
activation tier rule and cancellation) the stored tier, so re-delivered
events converge to the same tuple. There is no locking; concurrent
deliveries for one subject are last-write-wins.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from panelpass.entitlements.errors import EntitlementWriteError, SubjectResolutionError
from panelpass.entitlements.models import (
    Entitlement,
    EventKind,
    PaymentEvent,
    SessionRef,
    UserRef,
)
from panelpass.entitlements.policy import calculate_end_date, inherited_tier
from panelpass.models.base import utcnow
from panelpass.models.payment_webhook_event import WebhookOutcome
from panelpass.models.profile import PaymentProvider, SubscriptionStatus, SubscriptionTier
from panelpass.repositories.profile_repository import ProfileRepository
from panelpass.services.daypass_tracker import DayPassTracker

logger = logging.getLogger(__name__)

ACTIVATING_KINDS = frozenset({
    EventKind.CAPTURE_COMPLETED,
    EventKind.SUBSCRIPTION_CREATED,
    EventKind.SUBSCRIPTION_ACTIVATED,
})

STATUS_BY_KIND = {
    EventKind.CAPTURE_COMPLETED: SubscriptionStatus.ACTIVE,
    EventKind.SUBSCRIPTION_CREATED: SubscriptionStatus.ACTIVE,
    EventKind.SUBSCRIPTION_ACTIVATED: SubscriptionStatus.ACTIVE,
    # Suspension has no grace state of its own
    EventKind.SUBSCRIPTION_CANCELLED: SubscriptionStatus.CANCELLED,
    EventKind.SUBSCRIPTION_SUSPENDED: SubscriptionStatus.CANCELLED,
    EventKind.SUBSCRIPTION_EXPIRED: SubscriptionStatus.EXPIRED,
}


@dataclass
class ReconcileResult:
    """Result of reconciling one payment event."""
    applied: bool
    outcome: str
    message: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    entitlement: Optional[Entitlement] = None


def _target_tier(event: PaymentEvent, current: Entitlement) -> Optional[SubscriptionTier]:
    if event.kind == EventKind.SUBSCRIPTION_CREATED:
        return SubscriptionTier.MEMBER

    if event.kind == EventKind.SUBSCRIPTION_ACTIVATED:
        return inherited_tier(current.tier)

    if event.kind == EventKind.CAPTURE_COMPLETED:
        # A Paystack charge on a profile holding a subscription is a renewal
        if event.provider == PaymentProvider.PAYSTACK and current.refs.paystack_subscription_code:
            return inherited_tier(current.tier)
        # First Paystack charge of a recurring plan; subscription.create carries it
        if event.provider == PaymentProvider.PAYSTACK and event.plan_type == SubscriptionTier.MEMBER.value:
            return None
        return SubscriptionTier.DAYPASS

    return current.tier


def compute_entitlement(
    event: PaymentEvent,
    current: Optional[Entitlement],
    now: datetime
) -> Optional[Entitlement]:
    """
    Compute the entitlement written for ``event``.

    Args:
        event: Canonical payment event
        current: Entitlement currently stored for the subject
        now: Processing time

    Returns:
        The full replacement tuple, or None when the event changes nothing
    """
    current = current or Entitlement()

    status = STATUS_BY_KIND.get(event.kind)
    if status is None:
        return None

    tier = _target_tier(event, current)
    if tier is None:
        return None

    expires_at = calculate_end_date(tier, now) if event.kind in ACTIVATING_KINDS else None

    refs = current.refs.for_provider(event.provider).overlay(
        event.refs.for_provider(event.provider)
    )

    return Entitlement(
        tier=tier,
        status=status,
        expires_at=expires_at,
        payment_provider=event.provider,
        refs=refs,
    )


class SubscriptionReconciler:
    """
    Apply canonical payment events to the entitlement store.
    """

    def __init__(
        self,
        db_session: Session,
        clock: Callable[[], datetime] = utcnow,
        tracker: Optional[DayPassTracker] = None
    ):
        """
        Initialize reconciler.

        Args:
            db_session: Database session (the store handle)
            clock: Source of the processing time
            tracker: Day Pass tracker for anonymous captures
        """
        self.db = db_session
        self.clock = clock
        self.store = ProfileRepository(db_session)
        self.tracker = tracker or DayPassTracker(db_session, clock=clock)

    def resolve_user_id(self, event: PaymentEvent) -> str:
        """
        Resolve the user an event applies to.

        Order: explicit user id carried by the event (when that profile
        exists), then the stored provider correlation id.

        Raises:
            SubjectResolutionError: If neither identifies a profile
        """
        if isinstance(event.subject, UserRef):
            if self.store.get(event.subject.user_id) is not None:
                return event.subject.user_id
            logger.warning("Explicit user id has no profile", extra={
                "user_id": event.subject.user_id,
                "event_type": event.event_type
            })

        user_id = self.store.find_user_id(event.lookup) if event.lookup is not None else None
        if user_id is None:
            raise SubjectResolutionError(
                event.event_type,
                lookup=f"{event.lookup.field}={event.lookup.value}" if event.lookup else None
            )
        return user_id

    def reconcile(self, event: PaymentEvent) -> ReconcileResult:
        """
        Resolve, compute and persist the entitlement for one event.

        Subject resolution failures are logged and reported in the result;
        they never raise.

        Raises:
            EntitlementWriteError: If the store write fails
        """
        if isinstance(event.subject, SessionRef):
            return self._reconcile_session(event, event.subject)

        try:
            user_id = self.resolve_user_id(event)
        except SubjectResolutionError as e:
            logger.error("User not found for payment event", extra={
                "provider": event.provider.value,
                "event_type": event.event_type,
                "lookup": e.lookup
            })
            return ReconcileResult(
                applied=False,
                outcome=WebhookOutcome.UNRESOLVED,
                message="No matching user"
            )

        if event.kind == EventKind.PAYMENT_FAILED:
            logger.warning("Subscription payment failed; no entitlement change", extra={
                "provider": event.provider.value,
                "user_id": user_id,
                "subscription_ref": event.lookup.value if event.lookup else None
            })
            return ReconcileResult(
                applied=False,
                outcome=WebhookOutcome.LOGGED,
                message="Payment failure logged",
                user_id=user_id
            )

        current = self.store.get_entitlement(user_id)
        entitlement = compute_entitlement(event, current, self.clock())
        if entitlement is None:
            logger.info("Payment event requires no entitlement change", extra={
                "provider": event.provider.value,
                "event_type": event.event_type,
                "user_id": user_id,
                "plan_type": event.plan_type
            })
            return ReconcileResult(
                applied=False,
                outcome=WebhookOutcome.LOGGED,
                message="No entitlement change",
                user_id=user_id
            )

        try:
            self.store.write_entitlement(user_id, entitlement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EntitlementWriteError(f"Failed to update entitlement: {e}") from e

        return ReconcileResult(
            applied=True,
            outcome=WebhookOutcome.APPLIED,
            message=f"Entitlement set to {entitlement.tier.value}/{entitlement.status.value}",
            user_id=user_id,
            entitlement=entitlement
        )

    def _reconcile_session(self, event: PaymentEvent, subject: SessionRef) -> ReconcileResult:
        if event.kind != EventKind.CAPTURE_COMPLETED:
            logger.error("Session subject on non-capture event", extra={
                "event_type": event.event_type,
                "session_id": subject.session_id
            })
            return ReconcileResult(
                applied=False,
                outcome=WebhookOutcome.UNRESOLVED,
                message="Session subjects only apply to one-time payments",
                session_id=subject.session_id
            )

        self.tracker.create(
            session_id=subject.session_id,
            provider=event.provider,
            transaction_ref=event.transaction_ref
        )
        return ReconcileResult(
            applied=True,
            outcome=WebhookOutcome.APPLIED,
            message="Anonymous Day Pass granted",
            session_id=subject.session_id
        )
