# ledger/models.py
"""
Account model and the enums that govern quota and billing state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tier(str, Enum):
    """Quota class of an account."""
    FREEMIUM = "FREEMIUM"
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    PREMIUM_PLUS = "PREMIUM_PLUS"


class SubscriptionStatus(str, Enum):
    """Billing state of an account."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class CancellationUsagePolicy(str, Enum):
    """
    What happens to usage_count when a subscription is cancelled.

    PRESERVE keeps the billing-cycle usage for audit; RESET zeroes it
    the way every other tier change does.
    """
    PRESERVE = "preserve"
    RESET = "reset"


@dataclass
class Account:
    """
    Per-user usage and billing record.

    Attributes:
        user_id: Identity-provider subject (primary key)
        tier: Quota class
        usage_count: Generations consumed in the current cycle
        subscription_status: inactive, active or cancelled
        billing_customer_id: Stripe customer ID
        billing_subscription_id: Stripe subscription ID (only while active)
        created_at: Account creation timestamp
        updated_at: Last mutation timestamp
    """
    user_id: str
    tier: Tier = Tier.FREEMIUM
    usage_count: int = 0
    subscription_status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    billing_customer_id: Optional[str] = None
    billing_subscription_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row) -> Account:
        """Convert a database row to an Account."""
        return cls(
            user_id=row["user_id"],
            tier=Tier(row["tier"]),
            usage_count=row["usage_count"],
            subscription_status=SubscriptionStatus(row["subscription_status"]),
            billing_customer_id=row["billing_customer_id"],
            billing_subscription_id=row["billing_subscription_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription_status == SubscriptionStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "tier": self.tier.value,
            "usageCount": self.usage_count,
            "subscriptionStatus": self.subscription_status.value,
            "billingCustomerId": self.billing_customer_id,
            "billingSubscriptionId": self.billing_subscription_id,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class AccountLookup:
    """Result of get_or_create: the account and whether this call created it."""
    account: Account
    created: bool


@dataclass(frozen=True)
class QuotaStatus:
    """Read-only view of an account's generation allowance."""
    tier: Tier
    usage_count: int
    limit: Optional[int]  # None means unlimited
    can_generate: bool

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.usage_count, 0)

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "usageCount": self.usage_count,
            "limit": self.limit,
            "remaining": self.remaining,
            "canGenerate": self.can_generate,
        }
