"""
Anonymous Day Pass checkout.

Starts a Day Pass purchase for a visitor without an account. The visitor's
country picks the provider (Nigeria: Paystack, everyone else: PayPal) and a
fresh session id, set as the Day Pass cookie, ties the payment to the
browser.
"""

import logging
import time
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from panelpass.api.cookies import generate_session_id, set_session_cookie
from panelpass.config.plans import DAYPASS_PLAN_NAME, PlanDetails, get_plan_catalog
from panelpass.config.settings import get_settings
from panelpass.integrations.paypal.client import PayPalError, get_approval_url, get_paypal_client
from panelpass.integrations.paystack.client import PaystackError, get_paystack_client
from panelpass.models.profile import SubscriptionTier
from panelpass.services.geo import detect_country

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

ANONYMOUS_EMAIL_DOMAIN = "shattahsverse.com"


class InitializeAnonymousRequest(BaseModel):
    """Request body for anonymous checkout."""
    plan_name: str = Field(..., alias="planName")
    redirect_url: Optional[str] = Field(None, alias="redirectUrl")

    model_config = ConfigDict(populate_by_name=True)


def _base_url(request: Request) -> str:
    return (get_settings().app_base_url or str(request.base_url)).rstrip("/")


@router.post("/initialize-anonymous")
async def initialize_anonymous_payment(request: Request, body: InitializeAnonymousRequest):
    """
    Initialize an anonymous Day Pass payment.

    Returns the provider checkout URL and sets the daypass_session_id cookie.
    """
    if body.plan_name != DAYPASS_PLAN_NAME:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only Day Pass is available for anonymous purchase"
        )

    client_host = request.client.host if request.client else None
    geo = await detect_country(request.headers, client_host=client_host)

    plan = get_plan_catalog().get_plan(body.plan_name, country_code=geo.country_code)
    if plan is None or plan.tier != SubscriptionTier.DAYPASS.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid plan"
        )

    session_id = generate_session_id()

    logger.info("Initializing anonymous Day Pass payment", extra={
        "session_id": session_id,
        "country_code": geo.country_code,
        "geo_source": geo.source,
        "provider": plan.provider
    })

    try:
        if plan.provider == "paystack":
            payload = await _initialize_paystack(request, session_id, plan, body.redirect_url)
        else:
            payload = await _initialize_paypal(request, session_id, plan, body.redirect_url)
    except (PaystackError, PayPalError) as e:
        logger.error("Anonymous payment initialization failed", extra={
            "session_id": session_id,
            "provider": plan.provider,
            "error": str(e)
        })
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service is unavailable. Please try again later."
        )

    response = JSONResponse(content=payload)
    set_session_cookie(response, session_id)
    return response


async def _initialize_paystack(
    request: Request,
    session_id: str,
    plan: PlanDetails,
    redirect_url: Optional[str]
) -> dict:
    reference = f"daypass_anonymous_{session_id}_{int(time.time() * 1000)}"
    # Paystack requires an email; anonymous buyers are tracked by session id
    email = f"anonymous_{session_id}@{ANONYMOUS_EMAIL_DOMAIN}"

    async with get_paystack_client() as client:
        transaction = await client.initialize_transaction(
            email=email,
            amount=plan.amount,
            reference=reference,
            callback_url=f"{_base_url(request)}/api/payments/verify",
            metadata={
                "session_id": session_id,
                "plan_name": plan.name,
                "plan_type": SubscriptionTier.DAYPASS.value,
                "is_anonymous": "true",
                "redirect_url": redirect_url or "",
            }
        )

    return {
        "provider": "paystack",
        "authorization_url": transaction.get("authorization_url"),
        "access_code": transaction.get("access_code"),
        "reference": transaction.get("reference"),
    }


async def _initialize_paypal(
    request: Request,
    session_id: str,
    plan: PlanDetails,
    redirect_url: Optional[str]
) -> dict:
    base_url = _base_url(request)
    query = {"plan": plan.name, "sessionId": session_id}
    if redirect_url:
        query["redirect_url"] = redirect_url

    async with get_paypal_client() as client:
        order = await client.create_order(
            amount=plan.major_amount,
            currency=plan.currency,
            return_url=f"{base_url}/api/payments/paypal/verify?{urlencode(query)}",
            cancel_url=f"{base_url}/subscription?error=payment_cancelled",
            metadata={
                "session_id": session_id,
                "plan_name": plan.name,
                "plan_type": SubscriptionTier.DAYPASS.value,
                "is_anonymous": "true",
            }
        )

    approval_url = get_approval_url(order)
    if not approval_url:
        raise PayPalError("PayPal order has no approval link")

    return {
        "provider": "paypal",
        "approval_url": approval_url,
        "order_id": order.get("id"),
    }
