"""
Tests for the payment return endpoints.

Provider clients are mocked; the entitlement store is SQLite. Redirect
targets are asserted from the Location header with redirects disabled.
"""

import pytest
from unittest.mock import patch

from panelpass.integrations.paypal.client import PayPalAPIError
from panelpass.integrations.paystack.client import PaystackAPIError
from panelpass.models.anonymous_daypass import AnonymousDayPass
from panelpass.models.profile import Profile

PAYSTACK_CLIENT = "panelpass.api.routes.payments_verify.get_paystack_client"
PAYPAL_CLIENT = "panelpass.api.routes.payments_verify.get_paypal_client"

DAYPASS_SUCCESS = "/comics?success=true&plan=Day%20Pass"
MEMBER_SUCCESS = "/comics?success=true&plan=Shattahs%20Member"


def _transaction(status="success", **metadata):
    return {
        "status": status,
        "reference": "ref_1",
        "metadata": metadata,
        "customer": {"customer_code": "CUS_1"},
        "authorization": {"authorization_code": "AUTH_1"},
    }


def _reload(db_session, user_id):
    db_session.expire_all()
    return db_session.get(Profile, user_id)


# =============================================================================
# Paystack
# =============================================================================

class TestPaystackVerify:

    def _get(self, client, params, headers=None):
        return client.get(
            "/api/payments/verify",
            params=params,
            headers=headers or {},
            follow_redirects=False
        )

    def test_missing_reference(self, client):
        response = self._get(client, {})

        assert response.status_code == 307
        assert response.headers["location"] == "/subscription?error=no_reference"

    def test_failed_transaction(self, client, make_async_client):
        paystack = make_async_client(verify_transaction=_transaction(status="failed"))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"})

        assert response.headers["location"] == "/subscription?error=payment_failed"

    def test_missing_metadata(self, client, make_async_client):
        paystack = make_async_client(verify_transaction=_transaction(user_id="u1"))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"trxref": "ref_1"})

        assert response.headers["location"] == "/subscription?error=invalid_metadata"
        paystack.verify_transaction.assert_awaited_once_with("ref_1")

    def test_provider_error_is_verification_failed(self, client, make_async_client):
        paystack = make_async_client()
        paystack.verify_transaction.side_effect = PaystackAPIError("timeout")

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"})

        assert response.headers["location"] == "/subscription?error=verification_failed"

    def test_anonymous_daypass_sets_cookie(self, client, make_async_client, db_session):
        paystack = make_async_client(verify_transaction=_transaction(
            session_id="sess-1",
            is_anonymous="true",
            plan_type="daypass",
            plan_name="Day Pass",
        ))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"})

        assert response.headers["location"] == f"{DAYPASS_SUCCESS}&anonymous=true"
        set_cookie = response.headers["set-cookie"].lower()
        assert "daypass_session_id=sess-1" in set_cookie
        assert "max-age=10800" in set_cookie
        assert "samesite=lax" in set_cookie

        daypass = db_session.query(AnonymousDayPass).filter_by(session_id="sess-1").one()
        assert daypass.payment_provider == "paystack"
        assert daypass.transaction_ref == "ref_1"

    @pytest.mark.parametrize("redirect_url,expected", [
        ("/comics/issue-7", "/comics/issue-7"),
        ("//evil.example.com", f"{DAYPASS_SUCCESS}&anonymous=true"),
        ("https://evil.example.com", f"{DAYPASS_SUCCESS}&anonymous=true"),
    ])
    def test_anonymous_redirect_url_must_be_local(self, client, make_async_client, redirect_url, expected):
        paystack = make_async_client(verify_transaction=_transaction(
            session_id="sess-1",
            is_anonymous=True,
            plan_type="daypass",
            plan_name="Day Pass",
            redirect_url=redirect_url,
        ))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"})

        assert response.headers["location"] == expected

    def test_signed_out_user_purchase_redirects_to_login(self, client, make_async_client):
        paystack = make_async_client(verify_transaction=_transaction(
            user_id="u1", plan_type="daypass", plan_name="Day Pass"
        ))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"})

        assert response.headers["location"] == "/login"

    def test_user_daypass_is_granted(self, client, make_async_client, make_profile, auth_headers, db_session):
        make_profile("u1")
        paystack = make_async_client(verify_transaction=_transaction(
            user_id="u1", plan_type="daypass", plan_name="Day Pass"
        ))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"}, headers=auth_headers("u1"))

        assert response.headers["location"] == DAYPASS_SUCCESS
        profile = _reload(db_session, "u1")
        assert profile.subscription_tier == "daypass"
        assert profile.subscription_status == "active"
        assert profile.paystack_transaction_ref == "ref_1"

    def test_user_member_starts_subscription(
        self, client, make_async_client, make_profile, auth_headers, db_session
    ):
        make_profile("u1")
        paystack = make_async_client(
            verify_transaction=_transaction(
                user_id="u1",
                plan_type="member",
                plan_name="Shattahs Member",
                plan_code="PLN_weekly",
            ),
            initialize_subscription={"subscription_code": "SUB_9"},
        )

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"}, headers=auth_headers("u1"))

        assert response.headers["location"] == MEMBER_SUCCESS
        paystack.initialize_subscription.assert_awaited_once_with("CUS_1", "PLN_weekly", "AUTH_1")

        profile = _reload(db_session, "u1")
        assert profile.subscription_tier == "member"
        assert profile.paystack_subscription_code == "SUB_9"
        assert profile.paystack_customer_code == "CUS_1"

    def test_unknown_user_is_verification_failed(self, client, make_async_client, auth_headers):
        paystack = make_async_client(verify_transaction=_transaction(
            user_id="ghost", plan_type="daypass", plan_name="Day Pass"
        ))

        with patch(PAYSTACK_CLIENT, return_value=paystack):
            response = self._get(client, {"reference": "ref_1"}, headers=auth_headers("ghost"))

        assert response.headers["location"] == "/subscription?error=verification_failed"

    def test_app_base_url_prefixes_redirects(self, client, monkeypatch):
        from panelpass.config.settings import get_settings

        monkeypatch.setenv("APP_BASE_URL", "https://comics.example.com/")
        get_settings.cache_clear()

        response = self._get(client, {})

        assert response.headers["location"] == "https://comics.example.com/subscription?error=no_reference"


# =============================================================================
# PayPal
# =============================================================================

class TestPayPalVerify:

    def _get(self, client, params, headers=None):
        return client.get(
            "/api/payments/paypal/verify",
            params=params,
            headers=headers or {},
            follow_redirects=False
        )

    def test_anonymous_capture_sets_cookie(self, client, make_async_client, db_session):
        paypal = make_async_client(capture_order={"id": "ORDER-1", "status": "COMPLETED"})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(client, {"plan": "Day Pass", "token": "ORDER-1", "sessionId": "sess-1"})

        assert response.headers["location"] == f"{DAYPASS_SUCCESS}&anonymous=true"
        assert "daypass_session_id=sess-1" in response.headers["set-cookie"]
        paypal.capture_order.assert_awaited_once_with("ORDER-1")

        daypass = db_session.query(AnonymousDayPass).filter_by(session_id="sess-1").one()
        assert daypass.payment_provider == "paypal"
        assert daypass.transaction_ref == "ORDER-1"

    def test_incomplete_capture_is_payment_failed(self, client, make_async_client, db_session):
        paypal = make_async_client(capture_order={"id": "ORDER-1", "status": "PENDING"})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(client, {"plan": "Day Pass", "token": "ORDER-1", "sessionId": "sess-1"})

        assert response.headers["location"] == "/subscription?error=payment_failed"
        assert db_session.query(AnonymousDayPass).count() == 0

    def test_user_id_mismatch_is_unauthorized(self, client, auth_headers):
        response = self._get(
            client,
            {"plan": "Day Pass", "token": "ORDER-1", "userId": "someone-else"},
            headers=auth_headers("u1")
        )

        assert response.headers["location"] == "/subscription?error=unauthorized"

    def test_missing_plan_is_invalid_metadata(self, client):
        response = self._get(client, {"token": "ORDER-1"})
        assert response.headers["location"] == "/subscription?error=invalid_metadata"

    def test_unknown_plan_is_invalid_metadata(self, client, make_async_client):
        paypal = make_async_client(capture_order={"id": "ORDER-1", "status": "COMPLETED"})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(client, {"plan": "Lifetime", "token": "ORDER-1", "sessionId": "sess-1"})

        assert response.headers["location"] == "/subscription?error=invalid_metadata"
        paypal.capture_order.assert_not_awaited()

    def test_user_daypass_capture(self, client, make_async_client, make_profile, auth_headers, db_session):
        make_profile("u1")
        paypal = make_async_client(capture_order={"status": "COMPLETED"})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(
                client,
                {"plan": "Day Pass", "order_id": "ORDER-1", "userId": "u1"},
                headers=auth_headers("u1")
            )

        assert response.headers["location"] == DAYPASS_SUCCESS
        profile = _reload(db_session, "u1")
        assert profile.subscription_tier == "daypass"
        assert profile.payment_provider == "paypal"
        assert profile.paypal_order_id == "ORDER-1"

    @pytest.mark.parametrize("paypal_status,location", [
        ("ACTIVE", MEMBER_SUCCESS),
        ("APPROVAL_PENDING", f"{MEMBER_SUCCESS}&pending=true"),
    ])
    def test_member_subscription(
        self, client, make_async_client, make_profile, auth_headers, db_session, paypal_status, location
    ):
        make_profile("u1")
        paypal = make_async_client(get_subscription={"id": "I-SUB1", "status": paypal_status})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(
                client,
                {"plan": "Shattahs Member", "subscription_id": "I-SUB1"},
                headers=auth_headers("u1")
            )

        assert response.headers["location"] == location
        profile = _reload(db_session, "u1")
        assert profile.subscription_tier == "member"
        assert profile.paypal_subscription_id == "I-SUB1"

    def test_inactive_subscription_is_payment_failed(
        self, client, make_async_client, make_profile, auth_headers
    ):
        make_profile("u1")
        paypal = make_async_client(get_subscription={"id": "I-SUB1", "status": "CANCELLED"})

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(
                client,
                {"plan": "Shattahs Member", "ba_token": "I-SUB1"},
                headers=auth_headers("u1")
            )

        assert response.headers["location"] == "/subscription?error=payment_failed"

    def test_token_only_return_is_pending(self, client, make_profile, auth_headers):
        make_profile("u1")

        response = self._get(
            client,
            {"plan": "Shattahs Member", "token": "EC-123"},
            headers=auth_headers("u1")
        )

        assert response.headers["location"] == f"{MEMBER_SUCCESS}&pending=true"

    def test_no_reference(self, client, make_profile, auth_headers):
        make_profile("u1")

        response = self._get(client, {"plan": "Shattahs Member"}, headers=auth_headers("u1"))

        assert response.headers["location"] == "/subscription?error=no_reference"

    def test_provider_error_is_verification_failed(self, client, make_async_client):
        paypal = make_async_client()
        paypal.capture_order.side_effect = PayPalAPIError("PayPal API error: 422", status_code=422)

        with patch(PAYPAL_CLIENT, return_value=paypal):
            response = self._get(client, {"plan": "Day Pass", "token": "ORDER-1", "sessionId": "sess-1"})

        assert response.headers["location"] == "/subscription?error=verification_failed"
