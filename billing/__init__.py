# billing/__init__.py
"""
Billing module for Stripe subscriptions.

Provides:
- Stripe Checkout session creation and verification
- Webhook handling for subscription events
- Subscription cancellation
- Tier upgrade/downgrade through the ledger
"""

from billing.products import PLAN_NAME_TO_TIER, Plan, get_plan_catalog, tier_for_plan_name
from billing.service import (
    BillingDisabledError,
    BillingError,
    BillingReconciler,
    CheckoutSession,
    MissingMetadataError,
    PaymentIncomplete,
    SessionSummary,
    SubscriptionNotFound,
    UpstreamError,
)
from billing.stripe_client import StripeGateway
from billing.webhooks import InvalidSignature, WebhookEventType, handle_webhook_event

__all__ = [
    "BillingDisabledError",
    "BillingError",
    "BillingReconciler",
    "CheckoutSession",
    "InvalidSignature",
    "MissingMetadataError",
    "PLAN_NAME_TO_TIER",
    "PaymentIncomplete",
    "Plan",
    "SessionSummary",
    "StripeGateway",
    "SubscriptionNotFound",
    "UpstreamError",
    "WebhookEventType",
    "get_plan_catalog",
    "handle_webhook_event",
    "tier_for_plan_name",
]
