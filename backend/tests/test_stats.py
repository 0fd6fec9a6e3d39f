"""Tests for coupon and subscription statistics aggregation."""

from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

from promoplan.services.stats import (
    coupon_stats,
    subscription_stats,
    top_coupons,
    usage_by_month,
)
from tests.conftest import at

NOW = at(2025, 6, 15)


def _coupon(code: str, **kwargs: Any) -> Any:
    defaults = {
        "id": uuid4(),
        "code": code,
        "is_active": True,
        "valid_until": at(2025, 12, 31),
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _usage(coupon: Any, discount: str = "10", used_at=NOW) -> Any:
    return SimpleNamespace(
        coupon_id=coupon.id, discount_amount=Decimal(discount), used_at=used_at
    )


def _subscription(user_id: str, plan_type: str, status: str = "active", discount=None) -> Any:
    return SimpleNamespace(
        user_id=user_id, plan_type=plan_type, status=status, discount_applied=discount
    )


class TestCouponStats:
    def test_empty(self):
        stats = coupon_stats([], [], NOW)
        assert stats.total == 0
        assert stats.total_savings == Decimal("0")
        assert stats.average_discount == Decimal("0")
        assert stats.top_coupons == []
        assert stats.usage_by_month == []

    def test_status_buckets(self):
        coupons = [
            _coupon("LIVE"),
            _coupon("OFF", is_active=False),
            _coupon("OLD", valid_until=at(2025, 6, 1)),
            _coupon("OLDOFF", is_active=False, valid_until=at(2025, 6, 1)),
        ]
        stats = coupon_stats(coupons, [], NOW)
        assert (stats.active, stats.inactive, stats.expired) == (1, 1, 2)

    def test_valid_until_now_is_not_expired(self):
        stats = coupon_stats([_coupon("EDGE", valid_until=NOW)], [], NOW)
        assert stats.expired == 0
        assert stats.active == 1

    def test_savings_and_average(self):
        coupon = _coupon("SAVE")
        usages = [_usage(coupon, "10"), _usage(coupon, "30")]
        stats = coupon_stats([coupon], usages, NOW)
        assert stats.total_usage == 2
        assert stats.total_savings == Decimal("40")
        assert stats.average_discount == Decimal("20")


class TestTopCoupons:
    def test_ranked_by_usage_and_capped(self):
        coupons = [_coupon(f"C{i:02d}") for i in range(12)]
        usages = [_usage(c) for i, c in enumerate(coupons) for _ in range(i)]

        ranked = top_coupons(coupons, usages)

        assert len(ranked) == 10
        assert ranked[0].code == "C11"
        assert ranked[0].usage_count == 11
        assert ranked[0].total_savings == Decimal("110")

    def test_usage_of_deleted_coupons_is_ignored(self):
        kept = _coupon("KEPT")
        gone = _coupon("GONE")
        ranked = top_coupons([kept], [_usage(kept), _usage(gone), _usage(gone)])
        assert [c.code for c in ranked] == ["KEPT"]


class TestUsageByMonth:
    def test_buckets_ascending_and_limited(self):
        coupon = _coupon("SAVE")
        usages = [_usage(coupon, used_at=at(2024, m, 1)) for m in range(1, 13)]
        usages += [_usage(coupon, "5", used_at=at(2025, 1, 2)), _usage(coupon, "5", at(2025, 1, 9))]

        months = usage_by_month(usages)

        assert len(months) == 12
        assert months[0].month == "2024-02"
        assert months[-1].month == "2025-01"
        assert months[-1].usage == 2
        assert months[-1].savings == Decimal("10")

    def test_naive_timestamps(self):
        coupon = _coupon("SAVE")
        months = usage_by_month([_usage(coupon, used_at=at(2025, 3, 5).replace(tzinfo=None))])
        assert months[0].month == "2025-03"


class TestSubscriptionStats:
    def test_counts_revenue_and_conversions(self):
        subs = [
            _subscription("u1", "trial", "cancelled"),
            _subscription("u1", "pro", discount=Decimal("40")),
            _subscription("u2", "pro", discount=Decimal("250")),
            _subscription("u3", "trial"),
            _subscription("u4", "pro", "expired"),
            _subscription("u5", "free"),
        ]
        stats = subscription_stats(subs)

        assert stats.total == 6
        assert (stats.active, stats.cancelled, stats.expired, stats.pending) == (4, 1, 1, 0)
        assert stats.by_plan == {"trial": 2, "pro": 3, "free": 1}
        assert stats.revenue == Decimal("160")
        assert stats.trial_conversions == 1

    def test_conversions_count_users_once(self):
        subs = [
            _subscription("u1", "trial", "cancelled"),
            _subscription("u1", "trial", "cancelled"),
            _subscription("u1", "pro", "cancelled"),
            _subscription("u1", "pro"),
        ]
        assert subscription_stats(subs).trial_conversions == 1

    def test_revenue_json_is_a_number(self):
        stats = subscription_stats([_subscription("u1", "pro")])
        assert stats.model_dump(mode="json", by_alias=True)["revenue"] == 200.0
