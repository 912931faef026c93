"""
Payment return endpoints.

Providers redirect the payer here after checkout. Each endpoint confirms
the payment with the provider, grants the entitlement (to the signed-in
user, or to the anonymous session for a Day Pass) and redirects the browser
to the reader with a success or ?error= flag.

Error flags: no_reference, payment_failed, invalid_metadata,
verification_failed, unauthorized.
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from panelpass.api.cookies import set_session_cookie
from panelpass.auth.supabase import AuthenticatedUser, get_current_user_optional
from panelpass.config.settings import get_settings
from panelpass.database.session import get_db_session
from panelpass.entitlements.models import CorrelationRefs, EventKind, PaymentEvent, UserRef
from panelpass.entitlements.policy import tier_for_plan_name
from panelpass.integrations.payment_metadata import is_anonymous, parse_metadata
from panelpass.integrations.paypal.client import get_paypal_client
from panelpass.integrations.paystack.client import get_paystack_client
from panelpass.models.profile import PaymentProvider, SubscriptionTier
from panelpass.services.daypass_tracker import DayPassTracker
from panelpass.services.subscription_reconciler import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

PAYPAL_ACCEPTED_SUBSCRIPTION_STATUSES = ("ACTIVE", "APPROVAL_PENDING")


def _redirect(path: str) -> RedirectResponse:
    base = get_settings().app_base_url
    return RedirectResponse(url=f"{base.rstrip('/')}{path}" if base else path)


def _error_redirect(code: str) -> RedirectResponse:
    return _redirect(f"/subscription?error={code}")


def _success_path(plan_name: str, anonymous: bool = False, pending: bool = False) -> str:
    path = f"/comics?success=true&plan={quote(plan_name, safe='')}"
    if anonymous:
        path += "&anonymous=true"
    if pending:
        path += "&pending=true"
    return path


def _safe_local_path(value: Optional[str]) -> Optional[str]:
    """Accept only same-site absolute paths as post-payment redirects."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return None
    return value


def _grant_to_user(db: Session, event: PaymentEvent) -> bool:
    result = SubscriptionReconciler(db).reconcile(event)
    if not result.applied:
        logger.error("Verified payment not applied to user", extra={
            "provider": event.provider.value,
            "outcome": result.outcome,
            "detail": result.message
        })
    return result.applied


# =============================================================================
# Paystack
# =============================================================================

@router.get("/verify")
async def verify_paystack_payment(
    reference: Optional[str] = Query(None),
    trxref: Optional[str] = Query(None),
    db: Session = Depends(get_db_session),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    """
    Paystack callback_url target.

    Verifies the transaction, then grants the Day Pass to the anonymous
    session in its metadata or the plan to the signed-in user.
    """
    transaction_ref = reference or trxref
    if not transaction_ref:
        return _error_redirect("no_reference")

    try:
        async with get_paystack_client() as client:
            transaction = await client.verify_transaction(transaction_ref)

        if (transaction or {}).get("status") != "success":
            logger.warning("Paystack transaction not successful", extra={
                "reference": transaction_ref,
                "status": (transaction or {}).get("status")
            })
            return _error_redirect("payment_failed")

        metadata = parse_metadata(transaction.get("metadata"))
        plan_name = metadata.get("plan_name")
        plan_type = metadata.get("plan_type")
        if not plan_name or not plan_type:
            return _error_redirect("invalid_metadata")

        session_id = metadata.get("session_id")
        if is_anonymous(metadata) and session_id and plan_type == SubscriptionTier.DAYPASS.value:
            DayPassTracker(db).create(
                session_id=str(session_id),
                provider=PaymentProvider.PAYSTACK,
                transaction_ref=transaction_ref
            )
            target = _safe_local_path(metadata.get("redirect_url")) or _success_path(plan_name, anonymous=True)
            response = _redirect(target)
            set_session_cookie(response, str(session_id))
            return response

        if user is None:
            return _redirect("/login")

        if plan_type == SubscriptionTier.MEMBER.value:
            event = await _paystack_member_event(transaction, metadata, transaction_ref, user)
        else:
            event = PaymentEvent(
                kind=EventKind.CAPTURE_COMPLETED,
                provider=PaymentProvider.PAYSTACK,
                event_type="transaction.verify",
                subject=UserRef(user.user_id),
                refs=CorrelationRefs(paystack_transaction_ref=transaction_ref),
                plan_type=plan_type,
            )

        if not _grant_to_user(db, event):
            return _error_redirect("verification_failed")

        return _redirect(_success_path(plan_name))

    except Exception as e:
        logger.error("Paystack payment verification failed", extra={
            "reference": transaction_ref,
            "error": str(e)
        }, exc_info=True)
        return _error_redirect("verification_failed")


async def _paystack_member_event(
    transaction: dict,
    metadata: dict,
    transaction_ref: str,
    user: AuthenticatedUser
) -> PaymentEvent:
    """
    Member plan paid by card: start the subscription with the card
    authorization when the plan and customer are known. If that fails the
    subscription.create webhook still arrives for it.
    """
    customer_code = metadata.get("customer_code") or (transaction.get("customer") or {}).get("customer_code")
    authorization_code = (transaction.get("authorization") or {}).get("authorization_code")
    plan_code = metadata.get("plan_code")

    subscription_code = None
    if authorization_code and plan_code and customer_code:
        try:
            async with get_paystack_client() as client:
                subscription = await client.initialize_subscription(
                    customer_code, plan_code, authorization_code
                )
            subscription_code = (subscription or {}).get("subscription_code")
        except Exception as e:
            logger.error("Failed to create Paystack subscription", extra={
                "reference": transaction_ref,
                "error": str(e)
            })

    return PaymentEvent(
        kind=EventKind.SUBSCRIPTION_CREATED,
        provider=PaymentProvider.PAYSTACK,
        event_type="transaction.verify",
        subject=UserRef(user.user_id),
        refs=CorrelationRefs(
            paystack_transaction_ref=transaction_ref,
            paystack_subscription_code=subscription_code,
            paystack_customer_code=customer_code,
        ),
        plan_type=SubscriptionTier.MEMBER.value,
    )


# =============================================================================
# PayPal
# =============================================================================

@router.get("/paypal/verify")
async def verify_paypal_payment(
    plan: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    order_id: Optional[str] = Query(None),
    subscription_id: Optional[str] = Query(None),
    ba_token: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    redirect_url: Optional[str] = Query(None),
    db: Session = Depends(get_db_session),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    """
    PayPal return_url target.

    Captures an approved order (Day Pass) or inspects an approved
    subscription (Member), then grants the entitlement.
    """
    if user_id and user and user_id != user.user_id:
        return _error_redirect("unauthorized")

    tier = tier_for_plan_name(plan)
    if tier is None:
        return _error_redirect("invalid_metadata")

    order_ref = order_id or token
    subscription_ref = subscription_id or ba_token

    try:
        if tier == SubscriptionTier.DAYPASS and order_ref and session_id and user is None:
            if not await _capture_completed(order_ref):
                return _error_redirect("payment_failed")

            DayPassTracker(db).create(
                session_id=session_id,
                provider=PaymentProvider.PAYPAL,
                transaction_ref=order_ref
            )
            response = _redirect(_safe_local_path(redirect_url) or _success_path(plan, anonymous=True))
            set_session_cookie(response, session_id)
            return response

        if user is None:
            return _redirect("/login")

        if tier == SubscriptionTier.DAYPASS and order_ref:
            if not await _capture_completed(order_ref):
                return _error_redirect("payment_failed")

            event = PaymentEvent(
                kind=EventKind.CAPTURE_COMPLETED,
                provider=PaymentProvider.PAYPAL,
                event_type="order.capture",
                subject=UserRef(user.user_id),
                refs=CorrelationRefs(paypal_order_id=order_ref),
                plan_type=SubscriptionTier.DAYPASS.value,
            )
            if not _grant_to_user(db, event):
                return _error_redirect("verification_failed")
            return _redirect(_success_path(plan))

        if tier == SubscriptionTier.MEMBER and subscription_ref:
            async with get_paypal_client() as client:
                subscription = await client.get_subscription(subscription_ref)

            subscription_status = subscription.get("status")
            if subscription_status not in PAYPAL_ACCEPTED_SUBSCRIPTION_STATUSES:
                return _error_redirect("payment_failed")

            # Approval-pending subscriptions are granted now; the webhook follows
            event = PaymentEvent(
                kind=EventKind.SUBSCRIPTION_CREATED,
                provider=PaymentProvider.PAYPAL,
                event_type="subscription.verify",
                subject=UserRef(user.user_id),
                refs=CorrelationRefs(paypal_subscription_id=subscription_ref),
                plan_type=SubscriptionTier.MEMBER.value,
            )
            if not _grant_to_user(db, event):
                return _error_redirect("verification_failed")
            return _redirect(_success_path(plan, pending=subscription_status == "APPROVAL_PENDING"))

        if token:
            # Token-only return; the webhook applies the entitlement
            return _redirect(_success_path(plan, pending=True))

        return _error_redirect("no_reference")

    except Exception as e:
        logger.error("PayPal payment verification failed", extra={
            "order_id": order_ref,
            "subscription_id": subscription_ref,
            "error": str(e)
        }, exc_info=True)
        return _error_redirect("verification_failed")


async def _capture_completed(order_id: str) -> bool:
    async with get_paypal_client() as client:
        capture = await client.capture_order(order_id)
    completed = capture.get("status") == "COMPLETED"
    if not completed:
        logger.warning("PayPal order capture not completed", extra={
            "order_id": order_id,
            "status": capture.get("status")
        })
    return completed
