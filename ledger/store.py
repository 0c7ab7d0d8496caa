# ledger/store.py
"""
SQLite-backed account store.

Every mutation is a single conditional statement (or an INSERT OR IGNORE
plus one UPDATE inside the same transaction). Nothing here does a
read-modify-write across two round trips.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ledger.models import Account, SubscriptionStatus, Tier, utcnow
from persistence.db import Database

_logger = logging.getLogger(__name__)

# Columns the ledger may write through update()
WRITABLE_FIELDS = frozenset({
    "tier",
    "usage_count",
    "subscription_status",
    "billing_customer_id",
    "billing_subscription_id",
})

COUNTER_FIELDS = frozenset({"usage_count"})


@dataclass(frozen=True)
class IncrementGuard:
    """
    Compare-and-set condition for atomic_increment.

    The row is only incremented if its tier still equals `tier` and,
    when `below` is set, the counter is still strictly below it.
    """
    tier: Tier
    below: Optional[int] = None


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class AccountStore:
    """Account persistence over a Database."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, user_id: str) -> Optional[Account]:
        """
        Get account by user ID.

        Returns:
            Account if found, None otherwise
        """
        self.db.init_db()

        with self.db.get_db() as conn:
            cursor = conn.execute(
                "SELECT * FROM accounts WHERE user_id = ?",
                (user_id,),
            )
            row = cursor.fetchone()
            cursor.close()

        if not row:
            return None

        return Account.from_row(row)

    def create(self, user_id: str, defaults: Optional[Dict[str, Any]] = None) -> bool:
        """
        Insert an account with default values unless one already exists.

        Returns:
            True if this call created the row
        """
        self.db.init_db()

        with self.db.get_db() as conn:
            cursor = self._insert_default(conn, user_id, defaults or {})
            return cursor.rowcount > 0

    def atomic_increment(self, user_id: str, field: str, guard: IncrementGuard) -> bool:
        """
        Increment a counter column if the guard still holds.

        Returns:
            True if the row was incremented, False if the guard failed
            or the account does not exist
        """
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Not a counter field: {field}")

        self.db.init_db()

        sql = (
            f"UPDATE accounts SET {field} = {field} + 1, updated_at = ? "
            "WHERE user_id = ? AND tier = ?"
        )
        params: list = [utcnow().isoformat(), user_id, guard.tier.value]
        if guard.below is not None:
            sql += f" AND {field} < ?"
            params.append(guard.below)

        with self.db.get_db() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount > 0

    def update(self, user_id: str, fields: Dict[str, Any], create_missing: bool = True) -> bool:
        """
        Overwrite the given columns and refresh updated_at.

        Args:
            user_id: Account to update
            fields: Column -> value (must be in WRITABLE_FIELDS)
            create_missing: Insert a default row first if none exists

        Returns:
            True if a row was updated
        """
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not writable: {sorted(unknown)}")

        self.db.init_db()

        assignments = [f"{name} = ?" for name in fields]
        params = [_to_column(value) for value in fields.values()]
        assignments.append("updated_at = ?")
        params.append(utcnow().isoformat())
        params.append(user_id)

        with self.db.get_db() as conn:
            if create_missing:
                self._insert_default(conn, user_id, {})
            cursor = conn.execute(
                f"UPDATE accounts SET {', '.join(assignments)} WHERE user_id = ?",
                params,
            )
            return cursor.rowcount > 0

    def find_user_by_subscription(self, subscription_id: str) -> Optional[str]:
        """Find user ID by Stripe subscription ID."""
        self.db.init_db()

        with self.db.get_db() as conn:
            cursor = conn.execute(
                "SELECT user_id FROM accounts WHERE billing_subscription_id = ?",
                (subscription_id,),
            )
            row = cursor.fetchone()
            cursor.close()

        return row["user_id"] if row else None

    def record_billing_event(
        self,
        event_id: str,
        event_type: str,
        user_id: Optional[str],
        outcome: str,
    ) -> None:
        """Append a processed webhook to the audit trail."""
        self.db.init_db()

        with self.db.get_db() as conn:
            conn.execute(
                """
                INSERT INTO billing_events (event_id, event_type, user_id, outcome, received_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (event_id, event_type, user_id, outcome, utcnow().isoformat()),
            )

    @staticmethod
    def _insert_default(conn, user_id: str, defaults: Dict[str, Any]):
        now = utcnow().isoformat()
        return conn.execute(
            """
            INSERT OR IGNORE INTO accounts (
                user_id, tier, usage_count, subscription_status,
                billing_customer_id, billing_subscription_id,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                _to_column(defaults.get("tier", Tier.FREEMIUM)),
                defaults.get("usage_count", 0),
                _to_column(defaults.get("subscription_status", SubscriptionStatus.INACTIVE)),
                defaults.get("billing_customer_id"),
                defaults.get("billing_subscription_id"),
                now,
                now,
            ),
        )
