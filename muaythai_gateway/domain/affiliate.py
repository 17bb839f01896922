"""Affiliate dashboard statistics"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Sequence

CONFIRMED_STATUSES = ("confirmed", "paid")


@dataclass
class AffiliateStats:
    """Aggregated referral statistics for one affiliate"""

    total_referrals: int = 0
    total_earnings: float = 0.0
    current_month_referrals: int = 0
    conversion_rate: int = 0
    referral_history: List[Dict[str, Any]] = field(default_factory=list)


def _history_status(status: str) -> str:
    if status == "paid":
        return "rewarded"
    if status == "confirmed":
        return "completed"
    return "pending"


def calculate_affiliate_stats(
    conversions: Sequence[Any],
    now: datetime,
    confirmed_only: bool = False,
) -> AffiliateStats:
    """
    Aggregate conversions into dashboard stats.

    Total earnings sums commission over every conversion, pending and refunded
    ones included, which overstates what is actually payable. Pass
    ``confirmed_only=True`` to count confirmed/paid conversions only.
    The default keeps the figures the affiliate dashboard has always shown.
    """
    if not conversions:
        return AffiliateStats()

    earning_rows = [c for c in conversions if c.status in CONFIRMED_STATUSES] if confirmed_only else conversions
    total_earnings = float(sum(c.commission_amount or 0 for c in earning_rows))

    current_month = sum(
        1 for c in conversions
        if c.created_at and c.created_at.year == now.year and c.created_at.month == now.month
    )

    confirmed = sum(1 for c in conversions if c.status in CONFIRMED_STATUSES)
    # Half-up rounding, 12.5% shows as 13%
    conversion_rate = int(confirmed * 100 / len(conversions) + 0.5)

    history = [
        {
            "id": str(c.id),
            "status": _history_status(c.status),
            "points_earned": float(c.commission_amount or 0),
            "created_at": c.created_at.isoformat() if c.created_at else None,
            "conversion_type": c.conversion_type,
            "commission_amount": float(c.commission_amount or 0),
        }
        for c in conversions
    ]

    return AffiliateStats(
        total_referrals=len(conversions),
        total_earnings=total_earnings,
        current_month_referrals=current_month,
        conversion_rate=conversion_rate,
        referral_history=history,
    )
