# app/routers/billing.py
"""
Billing endpoints: plans, checkout, webhook, session verification, cancellation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from app.config import AppConfig
from app.dependencies import get_config, get_reconciler
from app.errors import ValidationError
from auth.identity import ensure_subject
from auth.middleware import get_authenticated_subject
from billing.products import PlanPriceMismatch, get_plan_catalog, resolve_price_ref
from billing.service import BillingReconciler
from billing.webhooks import handle_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


# =============================================================================
# Request Schemas
# =============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutRequest(CamelModel):
    price_ref: Optional[str] = Field(default=None, max_length=255)
    plan_name: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=128)
    user_email: EmailStr


class VerifySessionRequest(CamelModel):
    session_id: str = Field(..., min_length=1, max_length=255)


class CancelSubscriptionRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None


# =============================================================================
# Routes
# =============================================================================


@router.get("/plans")
def list_plans(config: AppConfig = Depends(get_config)):
    """Plans available at checkout."""
    return {
        "billingEnabled": config.billing_enabled,
        "plans": [plan.to_dict() for plan in get_plan_catalog(config)],
    }


@router.post("/checkout-session")
def create_checkout_session(
    request: CheckoutRequest,
    subject: str = Depends(get_authenticated_subject),
    reconciler: BillingReconciler = Depends(get_reconciler),
    config: AppConfig = Depends(get_config),
):
    """Start a Stripe Checkout session for the authenticated user."""
    ensure_subject(subject, request.user_id)

    try:
        price_ref = resolve_price_ref(get_plan_catalog(config), request.plan_name, request.price_ref)
    except PlanPriceMismatch as e:
        raise ValidationError(str(e)) from e

    session = reconciler.create_checkout_session(
        price_ref=price_ref,
        plan_name=request.plan_name,
        user_id=request.user_id,
        user_email=request.user_email,
    )
    return session.to_dict()


@router.post("/webhook")
async def stripe_webhook(
    raw_request: Request,
    reconciler: BillingReconciler = Depends(get_reconciler),
):
    """
    Stripe webhook receiver.

    400 if the signature does not verify; otherwise always 200 so that
    Stripe does not redeliver events we have already seen.
    """
    payload = await raw_request.body()
    signature = raw_request.headers.get("stripe-signature")

    success, message = await run_in_threadpool(handle_webhook_event, reconciler, payload, signature)
    if not success:
        logger.warning(f"Webhook acknowledged with processing failure: {message}")

    return {"received": True}


@router.post("/verify-session")
def verify_session(
    request: VerifySessionRequest,
    reconciler: BillingReconciler = Depends(get_reconciler),
):
    """
    Confirm a returning checkout and apply the purchased tier.

    Fallback for when the webhook has not arrived yet; 400 if unpaid.
    """
    summary = reconciler.verify_session(request.session_id)
    return {"success": True, **summary.to_dict()}


@router.post("/cancel-subscription")
def cancel_subscription(
    request: CancelSubscriptionRequest,
    subject: str = Depends(get_authenticated_subject),
    reconciler: BillingReconciler = Depends(get_reconciler),
):
    """Cancel the user's subscription and downgrade to FREEMIUM."""
    ensure_subject(subject, request.user_id)

    if not request.customer_id and not request.subscription_id:
        raise ValidationError("customerId or subscriptionId is required")

    subscription_id = reconciler.cancel_subscription(
        request.user_id,
        customer_id=request.customer_id,
        subscription_id=request.subscription_id,
    )
    return {"success": True, "subscriptionId": subscription_id}
