# ledger/quota.py
"""
Tier quota table.

FREEMIUM: 2 generations per cycle
BASIC: 5
PREMIUM: 10
PREMIUM_PLUS: unlimited
"""

from __future__ import annotations

from typing import Dict, Optional

from ledger.models import Tier

TIER_LIMITS: Dict[Tier, Optional[int]] = {
    Tier.FREEMIUM: 2,
    Tier.BASIC: 5,
    Tier.PREMIUM: 10,
    Tier.PREMIUM_PLUS: None,
}


def quota_limit(tier: Tier) -> Optional[int]:
    """Get the usage limit for a tier (None if unlimited)."""
    return TIER_LIMITS[tier]


def can_generate(tier: Tier, usage_count: int) -> bool:
    """A generation is permitted iff the tier is unlimited or usage is below its limit."""
    limit = quota_limit(tier)
    return limit is None or usage_count < limit
