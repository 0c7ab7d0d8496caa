# billing/webhooks.py
"""
Stripe webhook handling with signature verification.

Security:
- Signature is checked against the raw body before anything is parsed
- Never trust unverified payloads
- Every verified event is logged and written to the audit trail

Delivery is at-least-once and may be out of order. Handlers only do
full overwrites, and once the signature checks out the event is
acknowledged even if processing fails, so Stripe does not redeliver
in a loop.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import stripe

from billing.service import BillingReconciler

_logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """Webhook processing error."""
    pass


class InvalidSignature(WebhookError):
    """Webhook signature verification failed."""
    pass


class WebhookEventType(str, Enum):
    """Stripe event types the reconciler acts on."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "WebhookEventType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class WebhookEvent:
    """A verified Stripe event reduced to what dispatch needs."""
    id: str
    type: WebhookEventType
    raw_type: str
    object: dict = field(default_factory=dict)


def verify_webhook_signature(
    reconciler: BillingReconciler,
    payload: bytes,
    signature: Optional[str],
) -> None:
    """
    Verify the Stripe-Signature header over the raw request body.

    Raises:
        InvalidSignature: If billing is off, the secret is missing or
            the signature does not match
    """
    gateway = reconciler.gateway
    if gateway is None:
        raise InvalidSignature("Billing is not enabled")
    if not gateway.webhook_secret:
        raise InvalidSignature("Webhook secret not configured")
    if not signature:
        raise InvalidSignature("Missing Stripe-Signature header")

    try:
        gateway.verify_signature(payload, signature)
    except stripe.SignatureVerificationError as e:
        _logger.warning(f"Webhook signature verification failed: {e}")
        raise InvalidSignature("Invalid webhook signature") from e
    except UnicodeDecodeError as e:
        raise InvalidSignature("Webhook payload is not UTF-8") from e


def parse_event(payload: bytes) -> WebhookEvent:
    """
    Parse an already-verified payload.

    Raises:
        WebhookError: If the body is not a JSON object
    """
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise WebhookError(f"Failed to parse webhook: {e}") from e

    if not isinstance(data, dict):
        raise WebhookError("Webhook body is not a JSON object")

    raw_type = data.get("type") or "unknown"
    event_data = data.get("data")
    obj = event_data.get("object") if isinstance(event_data, dict) else None

    return WebhookEvent(
        id=str(data.get("id") or "unknown"),
        type=WebhookEventType.parse(raw_type),
        raw_type=str(raw_type),
        object=obj if isinstance(obj, dict) else {},
    )


def process_webhook_event(
    reconciler: BillingReconciler,
    event: WebhookEvent,
) -> Tuple[bool, str]:
    """
    Dispatch a verified event to the reconciler.

    Never raises: failures are logged with the event ID and type so the
    event can be replayed from the Stripe dashboard.

    Returns:
        Tuple of (success, message)
    """
    _logger.info(f"Processing webhook event: {event.raw_type}", extra={"event_id": event.id})

    user_id = None
    try:
        if event.type == WebhookEventType.CHECKOUT_SESSION_COMPLETED:
            user_id = reconciler.handle_checkout_completed(event.object)
        elif event.type == WebhookEventType.INVOICE_PAYMENT_SUCCEEDED:
            user_id = reconciler.handle_invoice_paid(event.object)
        elif event.type == WebhookEventType.SUBSCRIPTION_DELETED:
            user_id = reconciler.handle_subscription_deleted(event.object)
        elif event.type == WebhookEventType.SUBSCRIPTION_UPDATED:
            user_id = reconciler.handle_subscription_updated(event.object)
        else:
            # Unhandled event type - acknowledge but don't process
            _logger.debug(f"Unhandled webhook event type: {event.raw_type}")
            _record(reconciler, event, None, "ignored")
            return True, f"Event type {event.raw_type} not handled"

    except Exception as e:
        _logger.error(
            f"Webhook handler error for {event.raw_type}: {e}",
            extra={"event_id": event.id},
            exc_info=True,
        )
        _record(reconciler, event, user_id, "failed")
        return False, f"Handler error: {e}"

    outcome = "applied" if user_id else "skipped"
    _record(reconciler, event, user_id, outcome)
    return True, f"Event {event.raw_type} {outcome}"


def handle_webhook_event(
    reconciler: BillingReconciler,
    payload: bytes,
    signature: Optional[str],
) -> Tuple[bool, str]:
    """
    Verify, parse and dispatch a raw webhook delivery.

    Raises:
        InvalidSignature: Before any parsing, if the signature is bad
    """
    verify_webhook_signature(reconciler, payload, signature)

    try:
        event = parse_event(payload)
    except WebhookError as e:
        # Signed by Stripe but unreadable; acknowledge so it is not redelivered
        _logger.error(f"Verified webhook could not be parsed: {e}")
        return False, str(e)

    return process_webhook_event(reconciler, event)


def _record(
    reconciler: BillingReconciler,
    event: WebhookEvent,
    user_id: Optional[str],
    outcome: str,
) -> None:
    try:
        reconciler.ledger.store.record_billing_event(event.id, event.raw_type, user_id, outcome)
    except Exception as e:
        _logger.error(
            f"Failed to record billing event {event.id}: {e}",
            extra={"event_type": event.raw_type, "user_id": user_id},
        )
