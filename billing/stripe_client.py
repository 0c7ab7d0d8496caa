# billing/stripe_client.py
"""
Stripe SDK access behind a small gateway.

The gateway is built from AppConfig at startup. Every call passes the
API key explicitly and goes through an HTTP client with a bounded
timeout. The reconciler depends on this class only, so tests can hand
it a mock.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import stripe

_logger = logging.getLogger(__name__)

# Maximum age of a webhook signature timestamp
WEBHOOK_TOLERANCE_SECONDS = 300


class StripeGateway:
    """
    Thin wrapper over the Stripe SDK.

    Args:
        secret_key: Stripe API secret key
        webhook_secret: Webhook signing secret
        api_version: Pinned Stripe API version
        timeout_seconds: HTTP timeout for every Stripe call
        max_network_retries: Retries on connection errors
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        api_version: str = "2023-10-16",
        timeout_seconds: int = 20,
        max_network_retries: int = 2,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version

        # The SDK keeps the HTTP client and retry count module-wide
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        stripe.max_network_retries = max_network_retries

    @classmethod
    def from_config(cls, config) -> "StripeGateway":
        gateway = cls(
            secret_key=config.stripe_secret_key,
            webhook_secret=config.stripe_webhook_secret,
            api_version=config.stripe_api_version,
            timeout_seconds=config.billing_timeout_seconds,
            max_network_retries=config.billing_max_network_retries,
        )
        mode = "test" if config.stripe_secret_key.startswith("sk_test") else "live"
        _logger.info(f"Stripe gateway configured in {mode} mode")
        return gateway

    @property
    def _request_options(self) -> Dict[str, Any]:
        return {"api_key": self.secret_key, "stripe_version": self.api_version}

    def create_checkout_session(self, **params) -> Any:
        return stripe.checkout.Session.create(**params, **self._request_options)

    def retrieve_checkout_session(self, session_id: str) -> Any:
        return stripe.checkout.Session.retrieve(session_id, **self._request_options)

    def retrieve_subscription(self, subscription_id: str) -> Any:
        return stripe.Subscription.retrieve(subscription_id, **self._request_options)

    def cancel_subscription(self, subscription_id: str) -> Any:
        return stripe.Subscription.cancel(subscription_id, **self._request_options)

    def list_active_subscriptions(self, customer_id: str, limit: int = 10) -> List[Any]:
        result = stripe.Subscription.list(
            customer=customer_id,
            status="active",
            limit=limit,
            **self._request_options,
        )
        return list(result.data)

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Check the Stripe-Signature header against the raw body.

        Only the signature is checked; the payload is not parsed.

        Raises:
            stripe.SignatureVerificationError: If the header does not match
        """
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            signature or "",
            self.webhook_secret,
            WEBHOOK_TOLERANCE_SECONDS,
        )
