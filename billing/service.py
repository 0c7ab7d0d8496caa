# billing/service.py
"""
Billing Reconciler.

Bridges Stripe's checkout/session APIs and asynchronous webhook stream
to Ledger mutations. The only correlation between a Stripe object and an
account is the {userId, planName} metadata written at checkout and
echoed back on completion events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from billing.products import tier_for_plan_name
from billing.stripe_client import StripeGateway
from ledger.models import SubscriptionStatus
from ledger.service import Ledger

_logger = logging.getLogger(__name__)

METADATA_USER_ID = "userId"
METADATA_PLAN_NAME = "planName"


class BillingError(Exception):
    """Base billing error."""
    pass


class BillingDisabledError(BillingError):
    """Billing is not enabled."""
    pass


class UpstreamError(BillingError):
    """Stripe call failed or timed out."""
    pass


class PaymentIncomplete(BillingError):
    """Checkout session exists but has not been paid."""

    def __init__(self, session_id: str, payment_status: Optional[str]):
        super().__init__(f"Payment not completed (status: {payment_status})")
        self.session_id = session_id
        self.payment_status = payment_status


class SubscriptionNotFound(BillingError):
    """No active subscription the user owns to act on."""
    pass


class MissingMetadataError(BillingError):
    """Stripe object carries no userId metadata to correlate with an account."""
    pass


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str

    def to_dict(self) -> dict:
        return {"sessionId": self.session_id, "url": self.url}


@dataclass(frozen=True)
class SessionSummary:
    """What the client learns from verify-session."""
    session_id: str
    payment_status: str
    user_id: str
    plan_name: Optional[str]
    tier: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    customer_email: Optional[str]

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "paymentStatus": self.payment_status,
            "userId": self.user_id,
            "planName": self.plan_name,
            "tier": self.tier,
            "customerId": self.customer_id,
            "subscriptionId": self.subscription_id,
            "customerEmail": self.customer_email,
        }


def _metadata(obj: Any) -> dict:
    """Metadata of a Stripe object, or {} when missing or malformed."""
    if not obj:
        return {}
    metadata = obj.get("metadata")
    return metadata if hasattr(metadata, "get") else {}


def _as_id(value: Any) -> Optional[str]:
    """Stripe references may be expanded objects or bare IDs."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if hasattr(value, "get"):
        return value.get("id")
    return None


class BillingReconciler:
    """
    Translate Stripe billing state into Ledger updates.

    Args:
        ledger: Account/Usage Ledger
        gateway: Stripe gateway (None when billing is disabled)
        success_url: Checkout success redirect
        cancel_url: Checkout cancel redirect
    """

    def __init__(
        self,
        ledger: Ledger,
        gateway: Optional[StripeGateway],
        success_url: str,
        cancel_url: str,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.success_url = success_url
        self.cancel_url = cancel_url

    def _require_gateway(self) -> StripeGateway:
        if self.gateway is None:
            raise BillingDisabledError("Billing is not enabled. Check STRIPE_SECRET_KEY.")
        return self.gateway

    def create_checkout_session(
        self,
        price_ref: str,
        plan_name: str,
        user_id: str,
        user_email: str,
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout session for a subscription.

        Args:
            price_ref: Stripe price ID
            plan_name: Plan name echoed back as metadata (Basic, Premium, Premium+)
            user_id: Account the purchase is for (echoed back as metadata)
            user_email: Prefilled email when no Stripe customer exists yet

        Raises:
            BillingDisabledError: If billing is not enabled
            UpstreamError: If Stripe rejects or times out
        """
        gateway = self._require_gateway()
        account = self.ledger.get_or_create(user_id).account
        metadata = {METADATA_USER_ID: user_id, METADATA_PLAN_NAME: plan_name}

        session_params = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_ref, "quantity": 1}],
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": dict(metadata)},
        }

        # Use existing customer or create new
        if account.billing_customer_id:
            session_params["customer"] = account.billing_customer_id
        else:
            session_params["customer_email"] = user_email

        try:
            session = gateway.create_checkout_session(**session_params)
        except Exception as e:
            _logger.error(
                f"Checkout session creation failed for user {user_id}: {e}",
                extra={"plan_name": plan_name, "price_ref": price_ref},
            )
            raise UpstreamError(f"Failed to create checkout session: {e}") from e

        _logger.info(
            f"Created checkout session for user {user_id}",
            extra={"session_id": session.id, "plan_name": plan_name},
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    def verify_session(self, session_id: str) -> SessionSummary:
        """
        Confirm a checkout session was paid and apply the tier change.

        Safe to call repeatedly: apply_tier_change is a full overwrite.

        Raises:
            UpstreamError: If Stripe cannot be reached
            PaymentIncomplete: If the session is not paid
            MissingMetadataError: If the session has no userId metadata
        """
        gateway = self._require_gateway()

        try:
            session = gateway.retrieve_checkout_session(session_id)
        except Exception as e:
            _logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise UpstreamError(f"Failed to retrieve checkout session: {e}") from e

        payment_status = session.get("payment_status")
        if payment_status != "paid":
            raise PaymentIncomplete(session_id, payment_status)

        metadata = _metadata(session)
        user_id = metadata.get(METADATA_USER_ID)
        if not user_id:
            _logger.warning(f"Paid session {session_id} has no userId metadata")
            raise MissingMetadataError("Checkout session is not linked to an account")

        plan_name = metadata.get(METADATA_PLAN_NAME)
        tier = tier_for_plan_name(plan_name)
        customer_id = _as_id(session.get("customer"))
        subscription_id = _as_id(session.get("subscription"))

        self.ledger.apply_tier_change(
            user_id,
            tier,
            billing_customer_id=customer_id,
            billing_subscription_id=subscription_id,
            status=SubscriptionStatus.ACTIVE,
        )

        customer_details = session.get("customer_details") or {}
        return SessionSummary(
            session_id=session_id,
            payment_status=payment_status,
            user_id=user_id,
            plan_name=plan_name,
            tier=tier.value,
            customer_id=customer_id,
            subscription_id=subscription_id,
            customer_email=customer_details.get("email") or session.get("customer_email"),
        )

    def handle_checkout_completed(self, session: Any) -> Optional[str]:
        """
        Handle checkout.session.completed.

        Returns:
            The user ID that was upgraded, or None if the session
            carried no userId metadata
        """
        metadata = _metadata(session)
        user_id = metadata.get(METADATA_USER_ID)
        if not user_id:
            _logger.warning(
                "Checkout completed without userId in metadata",
                extra={"session_id": session.get("id") if session else None},
            )
            return None

        tier = tier_for_plan_name(metadata.get(METADATA_PLAN_NAME))
        self.ledger.apply_tier_change(
            user_id,
            tier,
            billing_customer_id=_as_id(session.get("customer")),
            billing_subscription_id=_as_id(session.get("subscription")),
            status=SubscriptionStatus.ACTIVE,
        )
        return user_id

    def handle_invoice_paid(self, invoice: Any) -> Optional[str]:
        """
        Handle invoice.payment_succeeded: mark the subscription owner active.

        Tier and usage are left alone.
        """
        subscription_id = _as_id(invoice.get("subscription")) if invoice else None
        if not subscription_id:
            _logger.debug("Ignoring non-subscription invoice")
            return None

        gateway = self._require_gateway()
        try:
            subscription = gateway.retrieve_subscription(subscription_id)
        except Exception as e:
            raise UpstreamError(f"Failed to retrieve subscription {subscription_id}: {e}") from e

        user_id = _metadata(subscription).get(METADATA_USER_ID)
        if not user_id:
            _logger.warning(f"Subscription {subscription_id} has no userId metadata")
            return None

        self.ledger.set_subscription_status(
            user_id,
            SubscriptionStatus.ACTIVE,
            billing_subscription_id=subscription_id,
        )
        return user_id

    def handle_subscription_deleted(self, subscription: Any) -> Optional[str]:
        """Handle customer.subscription.deleted: downgrade to FREEMIUM."""
        user_id = self._subscription_owner(subscription)
        if not user_id:
            _logger.warning("Subscription deleted but no user found")
            return None

        self.ledger.apply_cancellation(user_id)
        return user_id

    def handle_subscription_updated(self, subscription: Any) -> Optional[str]:
        """Handle customer.subscription.updated: mirror active/inactive status."""
        user_id = self._subscription_owner(subscription)
        if not user_id:
            _logger.warning("Subscription updated but no user found")
            return None

        if subscription.get("status") == "active":
            status = SubscriptionStatus.ACTIVE
        else:
            status = SubscriptionStatus.INACTIVE

        self.ledger.set_subscription_status(
            user_id,
            status,
            billing_subscription_id=_as_id(subscription.get("id")),
        )
        return user_id

    def cancel_subscription(
        self,
        user_id: str,
        customer_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> str:
        """
        Cancel a subscription at Stripe and downgrade the account.

        Cancels by subscription ID when given, otherwise the first active
        subscription of the customer. Either identifier must belong to
        user_id: the customer must be the account's billing customer, and
        the subscription must be the account's or carry its userId metadata.

        Returns:
            The cancelled subscription ID

        Raises:
            SubscriptionNotFound: If the identifier is not the user's, or the
                customer has no active subscription
            UpstreamError: If Stripe cannot be reached
        """
        gateway = self._require_gateway()
        account = self.ledger.get_or_create(user_id).account

        if customer_id and customer_id != account.billing_customer_id:
            _logger.warning(f"User {user_id} asked to cancel for customer {customer_id} they do not own")
            raise SubscriptionNotFound(f"No active subscription for customer {customer_id}")

        if subscription_id:
            self._require_owned_subscription(gateway, user_id, account.billing_subscription_id, subscription_id)
        else:
            if not customer_id:
                raise SubscriptionNotFound("No subscription or customer given")
            try:
                active = gateway.list_active_subscriptions(customer_id)
            except Exception as e:
                raise UpstreamError(f"Failed to list subscriptions: {e}") from e
            if not active:
                raise SubscriptionNotFound(f"No active subscription for customer {customer_id}")
            subscription_id = _as_id(active[0].get("id"))

        try:
            gateway.cancel_subscription(subscription_id)
        except Exception as e:
            _logger.error(f"Failed to cancel subscription {subscription_id} for user {user_id}: {e}")
            raise UpstreamError(f"Failed to cancel subscription: {e}") from e

        self.ledger.apply_cancellation(user_id)
        _logger.info(
            f"Cancelled subscription for user {user_id}",
            extra={"subscription_id": subscription_id},
        )
        return subscription_id

    def _require_owned_subscription(
        self,
        gateway: StripeGateway,
        user_id: str,
        account_subscription_id: Optional[str],
        subscription_id: str,
    ) -> None:
        """Raise SubscriptionNotFound unless subscription_id belongs to user_id."""
        if subscription_id == account_subscription_id:
            return
        try:
            subscription = gateway.retrieve_subscription(subscription_id)
        except stripe.InvalidRequestError as e:
            raise SubscriptionNotFound(f"Subscription {subscription_id} not found") from e
        except Exception as e:
            raise UpstreamError(f"Failed to retrieve subscription: {e}") from e
        if _metadata(subscription).get(METADATA_USER_ID) != user_id:
            _logger.warning(f"User {user_id} asked to cancel subscription {subscription_id} they do not own")
            raise SubscriptionNotFound(f"Subscription {subscription_id} not found")

    def _subscription_owner(self, subscription: Any) -> Optional[str]:
        """userId metadata, or the account holding this subscription ID."""
        if not subscription:
            return None
        user_id = _metadata(subscription).get(METADATA_USER_ID)
        if user_id:
            return user_id
        subscription_id = _as_id(subscription.get("id"))
        if subscription_id:
            return self.ledger.find_user_by_subscription(subscription_id)
        return None
