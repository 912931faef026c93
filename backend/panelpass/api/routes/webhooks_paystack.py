"""
Paystack webhook endpoint.

SECURITY: Every delivery MUST carry a valid x-paystack-signature, the
HMAC-SHA512 of the raw body keyed with the Paystack secret key.

Documentation: https://paystack.com/docs/payments/webhooks/
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from panelpass.api.webhooks import WebhookResponse, decode_envelope
from panelpass.config.settings import get_settings
from panelpass.database.session import get_db_session
from panelpass.integrations.paystack.client import PAYSTACK_SIGNATURE_HEADER, verify_signature
from panelpass.models.profile import PaymentProvider
from panelpass.services.payment_webhook_handler import get_payment_webhook_handler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["webhooks"])


@router.post("/webhook", response_model=WebhookResponse)
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db_session),
):
    """
    Handle Paystack webhook deliveries.

    Returns 200 for every delivery that passes signature and JSON checks,
    including events that are ignored or fail internally, so Paystack does
    not retry them.
    """
    signature = request.headers.get(PAYSTACK_SIGNATURE_HEADER)
    if not signature:
        logger.warning("Missing Paystack signature header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing signature"
        )

    secret_key = get_settings().paystack_secret_key
    if not secret_key:
        logger.error("PAYSTACK_SECRET_KEY not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured"
        )

    body = await request.body()

    if not verify_signature(secret_key, body, signature):
        logger.warning("Invalid Paystack webhook signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature"
        )

    envelope = decode_envelope(body, "event")

    logger.info("Received Paystack webhook", extra={"event_type": envelope.get("event")})

    handler = get_payment_webhook_handler(db)
    result = handler.handle(
        PaymentProvider.PAYSTACK,
        envelope,
        raw_body=body,
        signature_valid=True
    )

    return WebhookResponse(received=True, message=result.message, outcome=result.outcome)
