# app/tests/test_billing_api.py
"""
Tests for billing endpoints.

Tests:
- Plan listing
- Checkout session creation (mocked Stripe)
- Webhook signature enforcement and acknowledgement
- Session verification
- Subscription cancellation
"""
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from ledger.models import SubscriptionStatus, Tier


def completed_event(user_id="u1", plan_name="Premium", event_id="evt_1") -> str:
    return json.dumps({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "customer": "cus_1",
                "subscription": "sub_1",
                "payment_status": "paid",
                "metadata": {"userId": user_id, "planName": plan_name},
            }
        },
    })


class TestPlans:
    """Tests for GET /billing/plans."""

    def test_lists_three_plans(self, client):
        response = client.get("/billing/plans")

        assert response.status_code == 200
        data = response.json()
        assert data["billingEnabled"] is True
        assert [p["name"] for p in data["plans"]] == ["Basic", "Premium", "Premium+"]
        assert data["plans"][1]["priceId"] == "price_premium"


class TestCheckoutSession:
    """Tests for POST /billing/checkout-session."""

    def body(self, **overrides):
        data = {
            "priceRef": "price_premium",
            "planName": "Premium",
            "userId": "u1",
            "userEmail": "u1@example.com",
        }
        data.update(overrides)
        return data

    def test_creates_session(self, client, gateway, auth_headers):
        with patch.object(
            gateway,
            "create_checkout_session",
            return_value=MagicMock(id="cs_test_1", url="https://checkout.stripe.com/c/1"),
        ) as create:
            response = client.post("/billing/checkout-session", json=self.body(), headers=auth_headers("u1"))

        assert response.status_code == 200
        assert response.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.com/c/1"}
        assert create.call_args.kwargs["metadata"] == {"userId": "u1", "planName": "Premium"}

    def test_price_from_catalog(self, client, gateway, auth_headers):
        with patch.object(
            gateway, "create_checkout_session", return_value=MagicMock(id="cs_2", url="https://x")
        ) as create:
            response = client.post(
                "/billing/checkout-session",
                json=self.body(priceRef=None, planName="Basic"),
                headers=auth_headers("u1"),
            )

        assert response.status_code == 200
        assert create.call_args.kwargs["line_items"] == [{"price": "price_basic", "quantity": 1}]

    def test_unknown_plan_without_price_is_400(self, client, auth_headers):
        response = client.post(
            "/billing/checkout-session",
            json=self.body(priceRef=None, planName="Gold"),
            headers=auth_headers("u1"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_price_must_match_plan(self, client, gateway, auth_headers):
        """The Basic price cannot be paired with the Premium+ plan name."""
        with patch.object(gateway, "create_checkout_session") as create:
            response = client.post(
                "/billing/checkout-session",
                json=self.body(priceRef="price_basic", planName="Premium+"),
                headers=auth_headers("u1"),
            )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        create.assert_not_called()

    def test_unknown_plan_cannot_use_catalog_price(self, client, gateway, auth_headers):
        with patch.object(gateway, "create_checkout_session") as create:
            response = client.post(
                "/billing/checkout-session",
                json=self.body(priceRef="price_basic", planName="Gold"),
                headers=auth_headers("u1"),
            )

        assert response.status_code == 400
        create.assert_not_called()

    def test_invalid_email_is_400(self, client, auth_headers):
        response = client.post(
            "/billing/checkout-session",
            json=self.body(userEmail="not-an-email"),
            headers=auth_headers("u1"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_other_user_forbidden(self, client, auth_headers):
        response = client.post("/billing/checkout-session", json=self.body(), headers=auth_headers("u2"))
        assert response.status_code == 403

    def test_stripe_failure_is_502(self, client, gateway, auth_headers):
        with patch.object(gateway, "create_checkout_session", side_effect=Exception("card_declined")):
            response = client.post("/billing/checkout-session", json=self.body(), headers=auth_headers("u1"))

        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_ERROR"

    def test_billing_disabled_is_503(self, config):
        config.stripe_secret_key = ""
        app = create_app(config)
        token = app.state.identity_verifier.create_access_token("u1")

        with TestClient(app) as client:
            response = client.post(
                "/billing/checkout-session",
                json=self.body(),
                headers={"Authorization": f"Bearer {token}"},
            )

        assert response.status_code == 503
        assert response.json()["code"] == "BILLING_DISABLED"


class TestWebhook:
    """Tests for POST /billing/webhook."""

    def test_valid_event_upgrades(self, client, ledger, sign):
        payload = completed_event()

        response = client.post(
            "/billing/webhook",
            content=payload,
            headers={"stripe-signature": sign(payload), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        account = ledger.get_or_create("u1").account
        assert account.tier == Tier.PREMIUM
        assert account.subscription_status == SubscriptionStatus.ACTIVE

    def test_bad_signature_is_400_and_no_change(self, client, ledger, sign):
        payload = completed_event()

        response = client.post(
            "/billing/webhook",
            content=payload,
            headers={"stripe-signature": sign(payload, secret="whsec_wrong")},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SIGNATURE"
        assert ledger.get_or_create("u1").account.tier == Tier.FREEMIUM

    def test_missing_signature_is_400(self, client):
        response = client.post("/billing/webhook", content=completed_event())
        assert response.status_code == 400

    def test_unknown_event_acknowledged(self, client, sign):
        payload = json.dumps({"id": "evt_x", "type": "customer.created", "data": {"object": {}}})

        response = client.post(
            "/billing/webhook",
            content=payload,
            headers={"stripe-signature": sign(payload)},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_processing_failure_still_acknowledged(self, client, gateway, sign):
        payload = json.dumps({
            "id": "evt_inv",
            "type": "invoice.payment_succeeded",
            "data": {"object": {"id": "in_1", "subscription": "sub_1"}},
        })

        with patch.object(gateway, "retrieve_subscription", side_effect=Exception("Stripe down")):
            response = client.post(
                "/billing/webhook",
                content=payload,
                headers={"stripe-signature": sign(payload)},
            )

        assert response.status_code == 200

    def test_cancellation_scenario(self, client, ledger, sign):
        """PREMIUM with 3 uses; subscription.deleted downgrades and keeps usage."""
        ledger.apply_tier_change("u1", Tier.PREMIUM, "cus_1", "sub_1", SubscriptionStatus.ACTIVE)
        for _ in range(3):
            ledger.increment_usage("u1")
        payload = json.dumps({
            "id": "evt_del",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_1", "metadata": {"userId": "u1"}}},
        })

        response = client.post(
            "/billing/webhook",
            content=payload,
            headers={"stripe-signature": sign(payload)},
        )

        assert response.status_code == 200
        account = ledger.get_or_create("u1").account
        assert account.tier == Tier.FREEMIUM
        assert account.subscription_status == SubscriptionStatus.CANCELLED
        assert account.billing_subscription_id is None
        assert account.usage_count == 3


class TestVerifySession:
    """Tests for POST /billing/verify-session."""

    def test_paid(self, client, gateway, ledger):
        session = json.loads(completed_event(plan_name="Basic"))["data"]["object"]

        with patch.object(gateway, "retrieve_checkout_session", return_value=session):
            response = client.post("/billing/verify-session", json={"sessionId": "cs_1"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["tier"] == "BASIC"
        assert data["subscriptionId"] == "sub_1"
        assert ledger.get_or_create("u1").account.tier == Tier.BASIC

    def test_unpaid_is_400(self, client, gateway):
        session = {"id": "cs_1", "payment_status": "unpaid", "metadata": {"userId": "u1"}}

        with patch.object(gateway, "retrieve_checkout_session", return_value=session):
            response = client.post("/billing/verify-session", json={"sessionId": "cs_1"})

        assert response.status_code == 400
        assert response.json()["code"] == "PAYMENT_INCOMPLETE"
        assert response.json()["paymentStatus"] == "unpaid"

    def test_missing_session_id_is_400(self, client):
        response = client.post("/billing/verify-session", json={})
        assert response.status_code == 400


class TestCancelSubscription:
    """Tests for POST /billing/cancel-subscription."""

    def test_cancel(self, client, gateway, ledger, auth_headers):
        ledger.apply_tier_change("u1", Tier.PREMIUM, "cus_1", "sub_1", SubscriptionStatus.ACTIVE)

        with patch.object(gateway, "cancel_subscription") as cancel:
            response = client.post(
                "/billing/cancel-subscription",
                json={"userId": "u1", "subscriptionId": "sub_1"},
                headers=auth_headers("u1"),
            )

        assert response.status_code == 200
        assert response.json() == {"success": True, "subscriptionId": "sub_1"}
        cancel.assert_called_once_with("sub_1")
        assert ledger.get_or_create("u1").account.tier == Tier.FREEMIUM

    def test_no_active_subscription_is_404(self, client, gateway, ledger, auth_headers):
        ledger.apply_tier_change("u1", Tier.BASIC, "cus_1", None, SubscriptionStatus.ACTIVE)

        with patch.object(gateway, "list_active_subscriptions", return_value=[]):
            response = client.post(
                "/billing/cancel-subscription",
                json={"userId": "u1", "customerId": "cus_1"},
                headers=auth_headers("u1"),
            )

        assert response.status_code == 404
        assert response.json()["code"] == "SUBSCRIPTION_NOT_FOUND"

    def test_cannot_cancel_another_users_subscription(self, client, gateway, ledger, auth_headers):
        ledger.apply_tier_change("victim", Tier.PREMIUM, "cus_victim", "sub_victim", SubscriptionStatus.ACTIVE)
        victim_sub = {"id": "sub_victim", "metadata": {"userId": "victim", "planName": "Premium"}}

        with patch.object(gateway, "retrieve_subscription", return_value=victim_sub), \
                patch.object(gateway, "cancel_subscription") as cancel:
            response = client.post(
                "/billing/cancel-subscription",
                json={"userId": "attacker", "subscriptionId": "sub_victim"},
                headers=auth_headers("attacker"),
            )

        assert response.status_code == 404
        assert response.json()["code"] == "SUBSCRIPTION_NOT_FOUND"
        cancel.assert_not_called()
        assert ledger.get_or_create("victim").account.tier == Tier.PREMIUM

    def test_cannot_cancel_by_another_users_customer(self, client, gateway, ledger, auth_headers):
        ledger.apply_tier_change("victim", Tier.PREMIUM, "cus_victim", "sub_victim", SubscriptionStatus.ACTIVE)

        with patch.object(gateway, "list_active_subscriptions", return_value=[{"id": "sub_victim"}]) as listed, \
                patch.object(gateway, "cancel_subscription") as cancel:
            response = client.post(
                "/billing/cancel-subscription",
                json={"userId": "attacker", "customerId": "cus_victim"},
                headers=auth_headers("attacker"),
            )

        assert response.status_code == 404
        listed.assert_not_called()
        cancel.assert_not_called()
        assert ledger.get_or_create("victim").account.subscription_status == SubscriptionStatus.ACTIVE

    def test_requires_an_identifier(self, client, auth_headers):
        response = client.post(
            "/billing/cancel-subscription",
            json={"userId": "u1"},
            headers=auth_headers("u1"),
        )

        assert response.status_code == 400

    @pytest.mark.parametrize("subject", ["u2", None])
    def test_must_own_account(self, client, auth_headers, subject):
        headers = auth_headers(subject) if subject else {}

        response = client.post(
            "/billing/cancel-subscription",
            json={"userId": "u1", "subscriptionId": "sub_1"},
            headers=headers,
        )

        assert response.status_code == (403 if subject else 401)
