# billing/products.py
"""
Stripe plan configuration.

Plans:
- Basic: 5 generations per cycle
- Premium: 10 generations per cycle
- Premium+: unlimited

Plan names travel through checkout metadata and come back on webhook
events; PLAN_NAME_TO_TIER turns them into ledger tiers. Price IDs come
from AppConfig so test and live environments can differ.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from ledger.models import Tier
from ledger.quota import quota_limit

if TYPE_CHECKING:
    from app.config import AppConfig

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plan:
    """Subscription plan configuration."""
    name: str
    tier: Tier
    price_id: str
    interval: str = "month"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tier": self.tier.value,
            "priceId": self.price_id,
            "interval": self.interval,
            "generationLimit": quota_limit(self.tier),
        }


PLAN_NAME_TO_TIER = {
    "Basic": Tier.BASIC,
    "Premium": Tier.PREMIUM,
    "Premium+": Tier.PREMIUM_PLUS,
}

# Unrecognized plan names are treated as Premium rather than rejected
FALLBACK_TIER = Tier.PREMIUM


def tier_for_plan_name(plan_name: Optional[str]) -> Tier:
    """Map an external plan name to a tier, falling back to PREMIUM."""
    tier = PLAN_NAME_TO_TIER.get(plan_name or "")
    if tier is None:
        _logger.warning(f"Unrecognized plan name {plan_name!r}; using {FALLBACK_TIER.value}")
        return FALLBACK_TIER
    return tier


def get_plan_catalog(config: "AppConfig") -> List[Plan]:
    """Plans offered at checkout, with their configured price IDs."""
    return [
        Plan(name="Basic", tier=Tier.BASIC, price_id=config.stripe_basic_price_id),
        Plan(name="Premium", tier=Tier.PREMIUM, price_id=config.stripe_premium_price_id),
        Plan(name="Premium+", tier=Tier.PREMIUM_PLUS, price_id=config.stripe_premium_plus_price_id),
    ]


class PlanPriceMismatch(ValueError):
    """Requested price does not belong to the requested plan."""


def resolve_price_ref(catalog: List[Plan], plan_name: str, price_ref: Optional[str] = None) -> str:
    """
    Pick the Stripe price to charge for plan_name.

    The plan name is what decides the tier on completion, so a price
    configured for a different plan is never accepted alongside it.

    Raises:
        PlanPriceMismatch: If price_ref belongs to another plan, or no
            price is known for plan_name
    """
    configured = {plan.name: plan.price_id for plan in catalog if plan.price_id}
    expected = configured.get(plan_name)

    if expected:
        if price_ref and price_ref != expected:
            raise PlanPriceMismatch(f"priceRef does not match plan {plan_name!r}")
        return expected

    if not price_ref:
        raise PlanPriceMismatch(f"No price configured for plan {plan_name!r}")
    for other_name, other_price in configured.items():
        if other_price == price_ref:
            raise PlanPriceMismatch(f"priceRef belongs to plan {other_name!r}, not {plan_name!r}")
    return price_ref
