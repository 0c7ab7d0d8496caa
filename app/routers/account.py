# app/routers/account.py
"""
Account and usage endpoints.

Every route requires a bearer token whose subject equals {user_id}.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_ledger
from auth.middleware import require_path_user
from ledger.quota import quota_limit
from ledger.service import Ledger

router = APIRouter(prefix="/account", tags=["account"])


@router.get("/{user_id}")
def get_account(
    user_id: str = Depends(require_path_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Get the account, creating it with FREEMIUM defaults on first access."""
    lookup = ledger.get_or_create(user_id)
    return {**lookup.account.to_dict(), "created": lookup.created}


@router.get("/{user_id}/usage")
def get_usage(
    user_id: str = Depends(require_path_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Current usage, limit and remaining generations."""
    return ledger.check_quota(user_id).to_dict()


@router.post("/{user_id}/usage/increment")
def increment_usage(
    user_id: str = Depends(require_path_user),
    ledger: Ledger = Depends(get_ledger),
):
    """
    Consume one generation.

    Returns 403 with {usageCount, limit, tier} once the tier's quota is used up.
    """
    account = ledger.increment_usage(user_id)
    limit = quota_limit(account.tier)
    return {
        "success": True,
        "usageCount": account.usage_count,
        "tier": account.tier.value,
        "limit": limit,
        "remaining": None if limit is None else max(limit - account.usage_count, 0),
    }


@router.post("/{user_id}/usage/reset")
def reset_usage(
    user_id: str = Depends(require_path_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Reset the usage count to zero."""
    ledger.reset_usage(user_id)
    return {"success": True, "usageCount": 0}
