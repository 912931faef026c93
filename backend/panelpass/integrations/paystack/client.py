"""
Paystack API client.

Covers the calls the payment flow needs: initializing one-time
transactions, verifying them after the redirect, starting plan
subscriptions and checking webhook signatures.

Amounts are in the smallest currency unit (kobo for NGN).

Documentation: https://paystack.com/docs/api/
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from panelpass.config.settings import get_settings

logger = logging.getLogger(__name__)

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"


class PaystackError(Exception):
    """Base exception for Paystack errors."""
    pass


class PaystackAPIError(PaystackError):
    """Error communicating with the Paystack API."""
    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


def compute_signature(secret_key: str, payload: bytes) -> str:
    """HMAC-SHA512 hex digest Paystack sends in x-paystack-signature."""
    return hmac.new(secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_signature(secret_key: str, payload: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a webhook signature against the raw body."""
    if not signature or not secret_key:
        return False
    return hmac.compare_digest(compute_signature(secret_key, payload), signature)


class PaystackClient:
    """
    Client for Paystack transaction and subscription operations.

    SECURITY: The secret key grants full account access; never log it.
    """

    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co"):
        """
        Initialize Paystack client.

        Args:
            secret_key: Paystack secret key (sk_live_... / sk_test_...)
            base_url: API base URL
        """
        if not secret_key:
            raise ValueError("secret_key is required")

        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(30.0, connect=10.0),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.secret_key}"
            }
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        """
        Send a request and unwrap Paystack's {status, message, data} envelope.

        Raises:
            PaystackAPIError: On transport errors, HTTP errors or status=false
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error("Paystack API timeout", extra={"path": path, "error": str(e)})
            raise PaystackAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Paystack API request error", extra={"path": path, "error": str(e)})
            raise PaystackAPIError(f"Request error: {e}")

        if response.status_code in (401, 403):
            logger.error("Paystack API authentication failed", extra={
                "path": path,
                "status_code": response.status_code
            })
            raise PaystackAPIError(
                "Invalid Paystack API key",
                status_code=response.status_code
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            logger.error("Paystack API error", extra={
                "path": path,
                "status_code": response.status_code,
                "response_text": response.text[:500]
            })
            message = body.get("message") if isinstance(body, dict) else None
            raise PaystackAPIError(
                f"Paystack API error: {message or response.status_code}",
                status_code=response.status_code,
                response=body if isinstance(body, dict) else None
            )

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else "Malformed response"
            raise PaystackAPIError(
                f"Paystack request failed: {message}",
                status_code=response.status_code,
                response=body if isinstance(body, dict) else None
            )

        return body.get("data")

    async def initialize_transaction(
        self,
        email: str,
        amount: int,
        reference: Optional[str] = None,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Initialize a one-time transaction.

        Args:
            email: Payer email
            amount: Amount in the smallest currency unit
            reference: Merchant reference (generated by Paystack if omitted)
            callback_url: Where Paystack redirects after payment
            metadata: Echoed back on verify and on charge.success

        Returns:
            Dict with authorization_url, access_code and reference
        """
        payload = {"email": email, "amount": amount}
        if reference:
            payload["reference"] = reference
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata

        data = await self._request("POST", "/transaction/initialize", json=payload)

        logger.info("Paystack transaction initialized", extra={
            "reference": data.get("reference") if data else reference,
            "amount": amount
        })
        return data

    async def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """
        Verify a transaction by reference.

        Returns:
            Transaction data (status, amount, metadata, customer, ...)
        """
        if not reference:
            raise ValueError("reference is required")
        return await self._request("GET", f"/transaction/verify/{reference}")

    async def initialize_subscription(
        self,
        customer: str,
        plan: str,
        authorization_code: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Subscribe a customer to a plan.

        Args:
            customer: Customer code or email
            plan: Plan code
            authorization_code: Reusable card authorization to charge
        """
        payload = {"customer": customer, "plan": plan}
        if authorization_code:
            payload["authorization"] = authorization_code
        return await self._request("POST", "/subscription", json=payload)

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Check an x-paystack-signature header against the raw request body."""
        return verify_signature(self.secret_key, payload, signature)


def get_paystack_client() -> PaystackClient:
    """
    Build a client from settings.

    Raises:
        PaystackError: If PAYSTACK_SECRET_KEY is not configured
    """
    settings = get_settings()
    if not settings.paystack_secret_key:
        raise PaystackError("PAYSTACK_SECRET_KEY is not configured")
    return PaystackClient(settings.paystack_secret_key, base_url=settings.paystack_base_url)
