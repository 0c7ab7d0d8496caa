# ledger/service.py
"""
Account/Usage Ledger.

Owns per-user tier, usage count and subscription identifiers, and
enforces the generation quota. Callers are responsible for checking
that the acting identity matches the user_id they pass in.
"""

from __future__ import annotations

import logging
from typing import Optional

from ledger.models import (
    Account,
    AccountLookup,
    CancellationUsagePolicy,
    QuotaStatus,
    SubscriptionStatus,
    Tier,
)
from ledger.quota import can_generate, quota_limit
from ledger.store import AccountStore, IncrementGuard
from persistence.db import StorageError

_logger = logging.getLogger(__name__)

# Compare-and-set attempts before giving up on a contended account
MAX_INCREMENT_ATTEMPTS = 5


class LedgerError(Exception):
    """Base ledger error."""
    pass


class QuotaExceeded(LedgerError):
    """The account has used its tier's allowance for this cycle."""

    def __init__(self, usage_count: int, limit: int, tier: Tier):
        super().__init__(
            f"Generation limit reached for {tier.value} tier ({usage_count}/{limit})"
        )
        self.usage_count = usage_count
        self.limit = limit
        self.tier = tier

    def to_dict(self) -> dict:
        return {
            "usageCount": self.usage_count,
            "limit": self.limit,
            "tier": self.tier.value,
        }


class Ledger:
    """
    Account/Usage Ledger over an AccountStore.

    Args:
        store: Backing account store
        cancellation_policy: Whether apply_cancellation keeps or zeroes usage
    """

    def __init__(
        self,
        store: AccountStore,
        cancellation_policy: CancellationUsagePolicy = CancellationUsagePolicy.PRESERVE,
    ):
        self.store = store
        self.cancellation_policy = cancellation_policy

    def get_or_create(self, user_id: str) -> AccountLookup:
        """
        Get the account for a user, creating it with defaults on first access.

        Raises:
            StorageError: If the store is unreachable
        """
        account = self.store.get(user_id)
        created = False
        if account is None:
            # INSERT OR IGNORE; a concurrent creator leaves created False
            created = self.store.create(user_id)
            account = self.store.get(user_id)
        if account is None:
            # Row vanished between insert and read; deletion is external
            raise StorageError(f"Account {user_id} missing after create")

        if created:
            _logger.info(f"Created account for user {user_id}")

        return AccountLookup(account=account, created=created)

    def check_quota(self, user_id: str) -> QuotaStatus:
        """Read-only view of the user's remaining allowance."""
        account = self.get_or_create(user_id).account
        return QuotaStatus(
            tier=account.tier,
            usage_count=account.usage_count,
            limit=quota_limit(account.tier),
            can_generate=can_generate(account.tier, account.usage_count),
        )

    def increment_usage(self, user_id: str) -> Account:
        """
        Consume one generation.

        Uses a compare-and-set on (tier, usage_count < limit), so two
        concurrent callers at limit-1 cannot both succeed.

        Raises:
            QuotaExceeded: If the tier's limit is already reached (no mutation)
            StorageError: If the store fails or the account stays contended
        """
        for _ in range(MAX_INCREMENT_ATTEMPTS):
            account = self.get_or_create(user_id).account
            limit = quota_limit(account.tier)

            if not can_generate(account.tier, account.usage_count):
                _logger.info(
                    f"Quota exceeded for user {user_id}",
                    extra={"tier": account.tier.value, "usage_count": account.usage_count},
                )
                raise QuotaExceeded(account.usage_count, limit, account.tier)

            guard = IncrementGuard(tier=account.tier, below=limit)
            if self.store.atomic_increment(user_id, "usage_count", guard):
                updated = self.store.get(user_id)
                if updated is None:
                    raise StorageError(f"Account {user_id} missing after increment")
                return updated

            _logger.debug(f"Usage increment raced for user {user_id}; re-reading")

        raise StorageError(f"Usage increment for {user_id} did not settle")

    def reset_usage(self, user_id: str) -> None:
        """Set usage_count to 0. Idempotent."""
        self.store.update(user_id, {"usage_count": 0})
        _logger.info(f"Reset usage for user {user_id}")

    def apply_tier_change(
        self,
        user_id: str,
        tier: Tier,
        billing_customer_id: Optional[str],
        billing_subscription_id: Optional[str],
        status: SubscriptionStatus,
    ) -> None:
        """
        Overwrite the billing fields and reset usage.

        This is the only path through which billing changes tier or
        usage. It is a full overwrite, so repeating it is harmless.
        """
        if status != SubscriptionStatus.ACTIVE:
            billing_subscription_id = None

        self.store.update(
            user_id,
            {
                "tier": tier,
                "billing_customer_id": billing_customer_id,
                "billing_subscription_id": billing_subscription_id,
                "subscription_status": status,
                "usage_count": 0,
            },
        )
        _logger.info(
            f"Applied tier change for user {user_id}",
            extra={"tier": tier.value, "status": status.value},
        )

    def apply_cancellation(self, user_id: str) -> None:
        """Downgrade to FREEMIUM and mark the subscription cancelled."""
        fields = {
            "tier": Tier.FREEMIUM,
            "subscription_status": SubscriptionStatus.CANCELLED,
            "billing_subscription_id": None,
        }
        if self.cancellation_policy == CancellationUsagePolicy.RESET:
            fields["usage_count"] = 0

        self.store.update(user_id, fields)
        _logger.info(
            f"Applied cancellation for user {user_id}",
            extra={"usage_policy": self.cancellation_policy.value},
        )

    def set_subscription_status(
        self,
        user_id: str,
        status: SubscriptionStatus,
        billing_subscription_id: Optional[str] = None,
    ) -> None:
        """
        Update subscription status only; tier and usage are untouched.

        An active status records the subscription ID when one is given.
        Any other status clears it.
        """
        fields = {"subscription_status": status}
        if status != SubscriptionStatus.ACTIVE:
            fields["billing_subscription_id"] = None
        elif billing_subscription_id:
            fields["billing_subscription_id"] = billing_subscription_id

        self.store.update(user_id, fields)
        _logger.info(
            f"Set subscription status for user {user_id}",
            extra={"status": status.value},
        )

    def find_user_by_subscription(self, subscription_id: str) -> Optional[str]:
        return self.store.find_user_by_subscription(subscription_id)
