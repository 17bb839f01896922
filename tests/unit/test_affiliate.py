"""Unit tests for affiliate statistics"""

from datetime import datetime
from types import SimpleNamespace
from muaythai_gateway.domain.affiliate import calculate_affiliate_stats

NOW = datetime(2026, 3, 15, 12, 0)


def _conversion(status: str, commission: float, created_at: datetime):
    return SimpleNamespace(
        id=f"conv-{status}-{created_at.day}",
        status=status,
        commission_amount=commission,
        created_at=created_at,
        conversion_type="booking",
    )


def test_empty_conversions():
    """Test no conversions yields zeroed stats"""
    stats = calculate_affiliate_stats([], NOW)
    assert stats.total_referrals == 0
    assert stats.conversion_rate == 0
    assert stats.referral_history == []


def test_stats_aggregation():
    """Test counts, current month and half-up conversion rate"""
    conversions = [
        _conversion("confirmed", 100, datetime(2026, 3, 1)),
        _conversion("paid", 50, datetime(2026, 2, 20)),
        _conversion("pending", 25, datetime(2026, 3, 10)),
        _conversion("refunded", 10, datetime(2026, 1, 5)),
        _conversion("pending", 0, datetime(2026, 3, 12)),
        _conversion("pending", 0, datetime(2025, 3, 12)),
        _conversion("pending", 0, datetime(2025, 3, 13)),
        _conversion("pending", 0, datetime(2025, 3, 14)),
    ]

    stats = calculate_affiliate_stats(conversions, NOW)

    assert stats.total_referrals == 8
    assert stats.current_month_referrals == 3
    # 2 of 8 = 25%
    assert stats.conversion_rate == 25
    # Every status counts toward earnings by default
    assert stats.total_earnings == 185.0


def test_confirmed_only_earnings():
    """Test the stricter earnings mode ignores pending and refunded"""
    conversions = [
        _conversion("confirmed", 100, datetime(2026, 3, 1)),
        _conversion("pending", 25, datetime(2026, 3, 10)),
        _conversion("refunded", 10, datetime(2026, 1, 5)),
    ]

    stats = calculate_affiliate_stats(conversions, NOW, confirmed_only=True)

    assert stats.total_earnings == 100.0


def test_conversion_rate_rounds_half_up():
    """Test 1 of 8 (12.5%) shows as 13"""
    conversions = [_conversion("confirmed", 0, datetime(2026, 3, 1))] + [
        _conversion("pending", 0, datetime(2026, 3, d)) for d in range(2, 9)
    ]
    assert calculate_affiliate_stats(conversions, NOW).conversion_rate == 13


def test_history_status_mapping():
    """Test paid shows as rewarded and confirmed as completed"""
    conversions = [
        _conversion("paid", 50, datetime(2026, 3, 1)),
        _conversion("confirmed", 50, datetime(2026, 3, 2)),
        _conversion("refunded", 50, datetime(2026, 3, 3)),
    ]

    history = calculate_affiliate_stats(conversions, NOW).referral_history

    assert [h["status"] for h in history] == ["rewarded", "completed", "pending"]
