"""
PayPal webhook endpoint.

Deliveries must carry PayPal's transmission headers. When credentials and
PAYPAL_WEBHOOK_ID are configured the signature is checked through PayPal's
verify-webhook-signature API. A failed check rejects the delivery only when
PAYMENT_WEBHOOK_STRICT is on; otherwise it is logged and processed.

Documentation: https://developer.paypal.com/api/rest/webhooks/
"""

import logging
from typing import Mapping

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from panelpass.api.webhooks import WebhookResponse, decode_envelope
from panelpass.config.settings import get_settings
from panelpass.database.session import get_db_session
from panelpass.integrations.paypal.client import (
    PayPalError,
    get_paypal_client,
    has_transmission_headers,
)
from panelpass.models.profile import PaymentProvider
from panelpass.services.payment_webhook_handler import get_payment_webhook_handler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments/paypal", tags=["webhooks"])


async def verify_paypal_delivery(headers: Mapping[str, str], body: bytes) -> bool:
    """
    Check a PayPal delivery's authenticity.

    Without a configured webhook id only the presence of the transmission
    headers can be checked.
    """
    if not has_transmission_headers(headers):
        return False

    settings = get_settings()
    if not settings.paypal_webhook_id or not settings.paypal_configured:
        logger.debug("PayPal webhook id not configured; header presence check only")
        return True

    try:
        async with get_paypal_client() as client:
            return await client.verify_webhook_signature(
                headers, body, settings.paypal_webhook_id
            )
    except PayPalError as e:
        logger.warning("PayPal webhook verification unavailable", extra={"error": str(e)})
        return False


@router.post("/webhook", response_model=WebhookResponse)
async def paypal_webhook(
    request: Request,
    db: Session = Depends(get_db_session),
):
    """
    Handle PayPal webhook deliveries.

    Returns 200 for every delivery whose body parses, including events that
    are ignored or fail internally, so PayPal does not retry them.
    """
    body = await request.body()

    signature_valid = await verify_paypal_delivery(request.headers, body)
    if not signature_valid:
        if get_settings().webhook_signature_strict:
            logger.warning("Rejecting PayPal webhook with invalid signature")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid signature"
            )
        logger.warning("PayPal webhook signature verification failed; processing anyway")

    envelope = decode_envelope(body, "event_type")

    logger.info("Received PayPal webhook", extra={
        "event_type": envelope.get("event_type"),
        "event_id": envelope.get("id"),
        "signature_valid": signature_valid
    })

    handler = get_payment_webhook_handler(db)
    result = handler.handle(
        PaymentProvider.PAYPAL,
        envelope,
        raw_body=body,
        signature_valid=signature_valid
    )

    return WebhookResponse(received=True, message=result.message, outcome=result.outcome)
