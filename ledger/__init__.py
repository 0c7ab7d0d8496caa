# ledger/__init__.py
"""
Account/Usage Ledger.

Provides:
- Lazy account creation per identity
- Tier quota enforcement with atomic usage increments
- The single tier-change entry point used by billing
"""

from ledger.models import (
    Account,
    AccountLookup,
    CancellationUsagePolicy,
    QuotaStatus,
    SubscriptionStatus,
    Tier,
)
from ledger.quota import TIER_LIMITS, can_generate, quota_limit
from ledger.service import Ledger, LedgerError, QuotaExceeded
from ledger.store import AccountStore, IncrementGuard

__all__ = [
    "Account",
    "AccountLookup",
    "AccountStore",
    "CancellationUsagePolicy",
    "IncrementGuard",
    "Ledger",
    "LedgerError",
    "QuotaExceeded",
    "QuotaStatus",
    "SubscriptionStatus",
    "TIER_LIMITS",
    "Tier",
    "can_generate",
    "quota_limit",
]
