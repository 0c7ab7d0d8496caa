# app/tests/conftest.py
"""Shared fixtures for API tests: a fully wired app over a temporary database."""
import hashlib
import hmac
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig
from app.main import create_app
from billing.stripe_client import StripeGateway

JWT_SECRET = "api-test-secret"
WEBHOOK_SECRET = "whsec_api_tests"


def anthropic_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "model": "claude-test",
            "content": [{"type": "text", "text": "- Shipped the billing service"}],
            "usage": {"input_tokens": 5, "output_tokens": 7},
        },
    )


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    """Stripe-Signature header for a payload."""
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        environment="test",
        db_path=str(tmp_path / "api.db"),
        stripe_secret_key="sk_test_api_tests_key",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_basic_price_id="price_basic",
        stripe_premium_price_id="price_premium",
        stripe_premium_plus_price_id="price_plus",
        auth_jwt_secret=JWT_SECRET,
        anthropic_api_key="sk-ant-test",
        anthropic_model="claude-test",
    )


@pytest.fixture
def gateway(config):
    return StripeGateway.from_config(config)


@pytest.fixture
def ai_transport():
    return httpx.MockTransport(anthropic_handler)


@pytest.fixture
def app(config, gateway, ai_transport):
    return create_app(config, stripe_gateway=gateway, ai_transport=ai_transport)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def ledger(app):
    return app.state.ledger


@pytest.fixture
def auth_headers(app):
    """Bearer headers for a subject."""

    def _headers(subject: str = "u1") -> dict:
        token = app.state.identity_verifier.create_access_token(subject)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def sign():
    """Stripe-Signature builder for webhook payloads."""
    return sign_payload
