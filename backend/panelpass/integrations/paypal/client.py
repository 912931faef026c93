"""
PayPal REST API client.

Handles OAuth client-credentials tokens, one-time orders (Day Pass),
subscription lookups and webhook signature verification.

Documentation: https://developer.paypal.com/api/rest/
"""

import json
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from panelpass.config.settings import get_settings

logger = logging.getLogger(__name__)

# Refresh tokens this long before PayPal says they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300

WEBHOOK_TRANSMISSION_HEADERS = (
    "paypal-auth-algo",
    "paypal-cert-url",
    "paypal-transmission-id",
    "paypal-transmission-sig",
    "paypal-transmission-time",
)


class PayPalError(Exception):
    """Base exception for PayPal errors."""
    pass


class PayPalAPIError(PayPalError):
    """Error communicating with the PayPal API."""
    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


def has_transmission_headers(headers: Mapping[str, str]) -> bool:
    """Check that every PayPal webhook transmission header is present."""
    lowered = {k.lower(): v for k, v in headers.items()}
    return all(lowered.get(name) for name in WEBHOOK_TRANSMISSION_HEADERS)


def get_approval_url(resource: Dict[str, Any]) -> Optional[str]:
    """Link the payer must visit to approve an order or subscription."""
    for link in resource.get("links") or []:
        if link.get("rel") in ("approve", "approval_url", "payer-action"):
            return link.get("href")
    return None


class PayPalClient:
    """
    Client for PayPal checkout and billing operations.

    One instance caches one access token; create a client per request scope
    or reuse it across requests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api-m.sandbox.paypal.com",
        brand_name: str = "ShattahsVerse"
    ):
        """
        Initialize PayPal client.

        Args:
            client_id: REST app client id
            client_secret: REST app secret
            base_url: Sandbox or live API base URL
            brand_name: Shown to the payer on the approval page
        """
        if not client_id:
            raise ValueError("client_id is required")
        if not client_secret:
            raise ValueError("client_secret is required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.brand_name = brand_name

        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(30.0, connect=10.0)
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_access_token(self) -> str:
        """
        Get a cached OAuth token, fetching a new one when close to expiry.

        Raises:
            PayPalAPIError: If the token request fails
        """
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            response = await self._client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"}
            )
        except httpx.RequestError as e:
            logger.error("PayPal token request failed", extra={"error": str(e)})
            raise PayPalAPIError(f"Failed to get PayPal access token: {e}")

        if response.status_code >= 400:
            logger.error("PayPal authentication failed", extra={
                "status_code": response.status_code
            })
            raise PayPalAPIError(
                "Failed to get PayPal access token",
                status_code=response.status_code
            )

        data = response.json()
        expires_in = int(data.get("expires_in", 0))
        self._access_token = data["access_token"]
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
        return self._access_token

    async def _request(self, method: str, path: str, json_body: Optional[dict] = None) -> Dict[str, Any]:
        """
        Send an authenticated JSON request.

        Raises:
            PayPalAPIError: On transport or HTTP errors
        """
        token = await self.get_access_token()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}"
        }

        try:
            response = await self._client.request(method, path, json=json_body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("PayPal API timeout", extra={"path": path, "error": str(e)})
            raise PayPalAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("PayPal API request error", extra={"path": path, "error": str(e)})
            raise PayPalAPIError(f"Request error: {e}")

        if response.status_code >= 400:
            logger.error("PayPal API error", extra={
                "path": path,
                "status_code": response.status_code,
                "response_text": response.text[:500]
            })
            try:
                body = response.json()
            except ValueError:
                body = None
            message = body.get("message") if isinstance(body, dict) else None
            raise PayPalAPIError(
                f"PayPal API error: {message or response.status_code}",
                status_code=response.status_code,
                response=body if isinstance(body, dict) else None
            )

        if not response.content:
            return {}
        return response.json()

    async def create_order(
        self,
        amount: float,
        currency: str,
        return_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create a CAPTURE-intent order for a one-time payment.

        Metadata is serialized into the purchase unit's custom_id and comes
        back on the capture webhook.

        Args:
            amount: Amount in major units (e.g. 4.99)
            currency: ISO currency code
            return_url: Redirect after approval
            cancel_url: Redirect after cancellation
            metadata: Payment metadata (user_id, session_id, plan_type, ...)
        """
        metadata = metadata or {}
        order = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": currency,
                        "value": f"{amount:.2f}",
                    },
                    "custom_id": json.dumps(metadata, separators=(",", ":")) if metadata else "",
                    "description": metadata.get("plan_name") or "Subscription Payment",
                }
            ],
            "application_context": {
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }

        data = await self._request("POST", "/v2/checkout/orders", json_body=order)

        logger.info("PayPal order created", extra={
            "order_id": data.get("id"),
            "amount": f"{amount:.2f}",
            "currency": currency
        })
        return data

    async def capture_order(self, order_id: str) -> Dict[str, Any]:
        """Capture an approved order."""
        if not order_id:
            raise ValueError("order_id is required")
        return await self._request("POST", f"/v2/checkout/orders/{order_id}/capture", json_body={})

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v2/checkout/orders/{order_id}")

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Get billing subscription details."""
        if not subscription_id:
            raise ValueError("subscription_id is required")
        return await self._request("GET", f"/v1/billing/subscriptions/{subscription_id}")

    async def verify_webhook_signature(
        self,
        headers: Mapping[str, str],
        body: bytes,
        webhook_id: str
    ) -> bool:
        """
        Verify a webhook delivery with PayPal's verify-webhook-signature API.

        Args:
            headers: Request headers (transmission headers are read from these)
            body: Raw request body
            webhook_id: Webhook id from the PayPal dashboard

        Returns:
            True only if PayPal reports SUCCESS
        """
        if not has_transmission_headers(headers):
            return False

        lowered = {k.lower(): v for k, v in headers.items()}
        try:
            webhook_event = json.loads(body)
        except ValueError:
            return False

        payload = {
            "auth_algo": lowered["paypal-auth-algo"],
            "cert_url": lowered["paypal-cert-url"],
            "transmission_id": lowered["paypal-transmission-id"],
            "transmission_sig": lowered["paypal-transmission-sig"],
            "transmission_time": lowered["paypal-transmission-time"],
            "webhook_id": webhook_id,
            "webhook_event": webhook_event,
        }

        try:
            result = await self._request(
                "POST",
                "/v1/notifications/verify-webhook-signature",
                json_body=payload
            )
        except PayPalAPIError as e:
            logger.warning("PayPal webhook verification call failed", extra={
                "transmission_id": lowered.get("paypal-transmission-id"),
                "error": str(e)
            })
            return False

        return result.get("verification_status") == "SUCCESS"


def get_paypal_client() -> PayPalClient:
    """
    Build a client from settings.

    Raises:
        PayPalError: If PayPal credentials are not configured
    """
    settings = get_settings()
    if not settings.paypal_configured:
        raise PayPalError("PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET must be set")
    return PayPalClient(
        client_id=settings.paypal_client_id,
        client_secret=settings.paypal_client_secret,
        base_url=settings.paypal_base_url,
        brand_name=settings.paypal_brand_name,
    )
