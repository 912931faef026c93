"""
Tests for the Paystack and PayPal API clients.

HTTP is served by httpx.MockTransport; no network access.
"""

import json
import pytest

import httpx

from panelpass.integrations.paypal.client import (
    PayPalAPIError,
    PayPalClient,
    PayPalError,
    get_approval_url,
    get_paypal_client,
    has_transmission_headers,
)
from panelpass.integrations.paystack.client import (
    PaystackAPIError,
    PaystackClient,
    PaystackError,
    compute_signature,
    get_paystack_client,
    verify_signature,
)

PAYPAL_HEADERS = {
    "PAYPAL-TRANSMISSION-ID": "tx-1",
    "PAYPAL-TRANSMISSION-TIME": "2026-03-01T12:00:00Z",
    "PAYPAL-TRANSMISSION-SIG": "sig",
    "PAYPAL-CERT-URL": "https://api.paypal.com/cert",
    "PAYPAL-AUTH-ALGO": "SHA256withRSA",
}


def _use_transport(api_client, handler):
    api_client._client = httpx.AsyncClient(
        base_url=api_client.base_url,
        headers=api_client._client.headers,
        transport=httpx.MockTransport(handler)
    )
    return api_client


# =============================================================================
# Paystack
# =============================================================================

class TestPaystackSignature:

    def test_roundtrip(self):
        body = b'{"event":"charge.success"}'
        assert verify_signature("sk_test", body, compute_signature("sk_test", body)) is True

    def test_tampered_body(self):
        signature = compute_signature("sk_test", b'{"amount":100}')
        assert verify_signature("sk_test", b'{"amount":999}', signature) is False

    def test_missing_signature(self):
        assert verify_signature("sk_test", b"{}", None) is False
        assert verify_signature("", b"{}", "abc") is False

    def test_client_method(self):
        api_client = PaystackClient("sk_test")
        body = b"{}"
        assert api_client.verify_webhook_signature(body, compute_signature("sk_test", body)) is True


class TestPaystackClient:

    @pytest.mark.asyncio
    async def test_verify_transaction_unwraps_data(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={
                "status": True,
                "message": "Verification successful",
                "data": {"status": "success", "reference": "ref_1"},
            })

        async with _use_transport(PaystackClient("sk_test"), handler) as api_client:
            data = await api_client.verify_transaction("ref_1")

        assert data == {"status": "success", "reference": "ref_1"}
        assert seen["path"] == "/transaction/verify/ref_1"
        assert seen["auth"] == "Bearer sk_test"

    @pytest.mark.asyncio
    async def test_initialize_transaction_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "data": {"authorization_url": "https://checkout.paystack.com/x", "reference": "r1"},
            })

        async with _use_transport(PaystackClient("sk_test"), handler) as api_client:
            data = await api_client.initialize_transaction(
                email="a@b.c",
                amount=500000,
                reference="r1",
                metadata={"plan_type": "daypass"}
            )

        assert data["reference"] == "r1"
        assert seen["body"] == {
            "email": "a@b.c",
            "amount": 500000,
            "reference": "r1",
            "metadata": {"plan_type": "daypass"},
        }

    @pytest.mark.asyncio
    async def test_status_false_raises(self):
        def handler(request):
            return httpx.Response(200, json={"status": False, "message": "Transaction reference not found"})

        async with _use_transport(PaystackClient("sk_test"), handler) as api_client:
            with pytest.raises(PaystackAPIError, match="reference not found"):
                await api_client.verify_transaction("missing")

    @pytest.mark.asyncio
    async def test_auth_failure_raises(self):
        def handler(request):
            return httpx.Response(401, json={"status": False, "message": "Invalid key"})

        async with _use_transport(PaystackClient("sk_test"), handler) as api_client:
            with pytest.raises(PaystackAPIError) as exc_info:
                await api_client.initialize_subscription("CUS_1", "PLN_1", "AUTH_1")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _use_transport(PaystackClient("sk_test"), handler) as api_client:
            with pytest.raises(PaystackAPIError):
                await api_client.verify_transaction("ref_1")

    def test_factory_requires_secret(self, monkeypatch):
        from panelpass.config.settings import get_settings

        monkeypatch.delenv("PAYSTACK_SECRET_KEY")
        get_settings.cache_clear()

        with pytest.raises(PaystackError):
            get_paystack_client()


# =============================================================================
# PayPal
# =============================================================================

class TestPayPalHelpers:

    def test_transmission_headers_case_insensitive(self):
        assert has_transmission_headers(PAYPAL_HEADERS) is True

    def test_missing_transmission_header(self):
        headers = dict(PAYPAL_HEADERS)
        del headers["PAYPAL-TRANSMISSION-SIG"]
        assert has_transmission_headers(headers) is False

    def test_approval_url(self):
        assert get_approval_url({"links": [
            {"rel": "self", "href": "https://api/self"},
            {"rel": "payer-action", "href": "https://paypal/approve"},
        ]}) == "https://paypal/approve"
        assert get_approval_url({}) is None


class TestPayPalClient:

    def _handler(self, calls, verification_status="SUCCESS", capture_status=201):
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "A21AA", "expires_in": 32400})
            if request.url.path == "/v1/notifications/verify-webhook-signature":
                return httpx.Response(200, json={"verification_status": verification_status})
            if request.url.path.endswith("/capture"):
                return httpx.Response(capture_status, json={"id": "ORDER-1", "status": "COMPLETED"})
            return httpx.Response(404, json={"message": "not found"})
        return handler

    @pytest.mark.asyncio
    async def test_token_is_cached(self):
        calls = []
        api_client = _use_transport(PayPalClient("id", "secret"), self._handler(calls))

        async with api_client:
            await api_client.capture_order("ORDER-1")
            await api_client.capture_order("ORDER-1")

        token_calls = [c for c in calls if c.url.path == "/v1/oauth2/token"]
        assert len(token_calls) == 1
        assert calls[1].headers["authorization"] == "Bearer A21AA"

    @pytest.mark.asyncio
    async def test_create_order_serializes_metadata(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "ORDER-1", "links": []})

        async with _use_transport(PayPalClient("id", "secret", brand_name="Comics"), handler) as api_client:
            await api_client.create_order(
                amount=4.99,
                currency="USD",
                return_url="https://app/return",
                cancel_url="https://app/cancel",
                metadata={"session_id": "s1", "plan_name": "Day Pass"}
            )

        unit = seen["body"]["purchase_units"][0]
        assert unit["amount"] == {"currency_code": "USD", "value": "4.99"}
        assert json.loads(unit["custom_id"]) == {"session_id": "s1", "plan_name": "Day Pass"}
        assert seen["body"]["application_context"]["brand_name"] == "Comics"

    @pytest.mark.asyncio
    async def test_verify_webhook_signature(self):
        calls = []
        body = json.dumps({"id": "WH-1", "event_type": "PAYMENT.CAPTURE.COMPLETED"}).encode()

        async with _use_transport(PayPalClient("id", "secret"), self._handler(calls)) as api_client:
            verified = await api_client.verify_webhook_signature(PAYPAL_HEADERS, body, "WH-ID")

        assert verified is True
        payload = json.loads(calls[-1].content)
        assert payload["webhook_id"] == "WH-ID"
        assert payload["transmission_id"] == "tx-1"
        assert payload["webhook_event"]["id"] == "WH-1"

    @pytest.mark.asyncio
    async def test_verify_webhook_signature_failure(self):
        calls = []

        async with _use_transport(
            PayPalClient("id", "secret"),
            self._handler(calls, verification_status="FAILURE")
        ) as api_client:
            verified = await api_client.verify_webhook_signature(PAYPAL_HEADERS, b"{}", "WH-ID")

        assert verified is False

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        calls = []

        async with _use_transport(PayPalClient("id", "secret"), self._handler(calls)) as api_client:
            with pytest.raises(PayPalAPIError) as exc_info:
                await api_client.get_subscription("I-MISSING")

        assert exc_info.value.status_code == 404

    def test_factory_requires_credentials(self):
        with pytest.raises(PayPalError):
            get_paypal_client()
