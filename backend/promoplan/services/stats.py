"""Aggregate statistics over coupons, the usage ledger and subscriptions."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from promoplan.models.coupon import Coupon
from promoplan.models.coupon_usage import CouponUsage
from promoplan.models.shared import ensure_utc
from promoplan.models.subscription import (
    BillingCycle,
    PlanType,
    SubscriptionStatus,
    UserSubscription,
)
from promoplan.schemas.coupon import CouponStats, MonthlyUsage, TopCoupon
from promoplan.schemas.subscription import SubscriptionStats
from promoplan.services.plan_features import get_plan_price

TOP_COUPONS_LIMIT = 10
USAGE_MONTHS_LIMIT = 12


def _is_expired(coupon: Coupon, now: datetime) -> bool:
    valid_until = ensure_utc(coupon.valid_until)
    return valid_until is not None and valid_until < now


def coupon_stats(
    coupons: Iterable[Coupon], usages: Iterable[CouponUsage], now: datetime
) -> CouponStats:
    coupons = list(coupons)
    usages = list(usages)

    expired = [c for c in coupons if _is_expired(c, now)]
    live = [c for c in coupons if not _is_expired(c, now)]
    total_savings = sum((Decimal(str(u.discount_amount)) for u in usages), Decimal("0"))
    average = total_savings / len(usages) if usages else Decimal("0")

    return CouponStats(
        total=len(coupons),
        active=sum(1 for c in live if c.is_active),
        expired=len(expired),
        inactive=sum(1 for c in live if not c.is_active),
        total_usage=len(usages),
        total_savings=total_savings,
        average_discount=average,
        top_coupons=top_coupons(coupons, usages),
        usage_by_month=usage_by_month(usages),
    )


def top_coupons(
    coupons: list[Coupon], usages: list[CouponUsage], limit: int = TOP_COUPONS_LIMIT
) -> list[TopCoupon]:
    """Most redeemed coupons first; usage of deleted coupons is ignored."""
    by_id: dict[object, dict] = {
        c.id: {"code": c.code, "usage_count": 0, "total_savings": Decimal("0")} for c in coupons
    }
    for usage in usages:
        entry = by_id.get(usage.coupon_id)
        if entry is None:
            continue
        entry["usage_count"] += 1
        entry["total_savings"] += Decimal(str(usage.discount_amount))

    # sorted() is stable, so ties keep coupon order
    ranked = sorted(by_id.values(), key=lambda e: e["usage_count"], reverse=True)
    return [TopCoupon(**entry) for entry in ranked[:limit]]


def usage_by_month(
    usages: list[CouponUsage], months: int = USAGE_MONTHS_LIMIT
) -> list[MonthlyUsage]:
    """``YYYY-MM`` buckets in ascending order, keeping the most recent ``months``."""
    buckets: dict[str, list[Decimal]] = defaultdict(list)
    for usage in usages:
        used_at = ensure_utc(usage.used_at)
        if used_at is None:
            continue
        buckets[used_at.strftime("%Y-%m")].append(Decimal(str(usage.discount_amount)))

    ordered = sorted(buckets.items())[-months:]
    return [
        MonthlyUsage(month=month, usage=len(amounts), savings=sum(amounts, Decimal("0")))
        for month, amounts in ordered
    ]


def subscription_stats(subscriptions: Iterable[UserSubscription]) -> SubscriptionStats:
    """Counts, monthly revenue estimate and trial-to-pro conversions.

    Revenue assumes monthly billing for every active pro row, without proration.
    """
    subscriptions = list(subscriptions)
    by_status: dict[str, int] = defaultdict(int)
    by_plan: dict[str, int] = defaultdict(int)
    revenue = Decimal("0")
    monthly_price = get_plan_price(PlanType.PRO, BillingCycle.MONTHLY)
    trial_users: set[str] = set()
    pro_users: set[str] = set()

    for sub in subscriptions:
        by_status[str(sub.status)] += 1
        by_plan[str(sub.plan_type)] += 1
        if sub.plan_type == PlanType.TRIAL.value:
            trial_users.add(str(sub.user_id))
        elif sub.plan_type == PlanType.PRO.value:
            pro_users.add(str(sub.user_id))
            if sub.status == SubscriptionStatus.ACTIVE.value:
                discount = Decimal(str(sub.discount_applied or 0))
                revenue += max(Decimal("0"), monthly_price - discount)

    return SubscriptionStats(
        total=len(subscriptions),
        active=by_status[SubscriptionStatus.ACTIVE.value],
        expired=by_status[SubscriptionStatus.EXPIRED.value],
        cancelled=by_status[SubscriptionStatus.CANCELLED.value],
        pending=by_status[SubscriptionStatus.PENDING.value],
        by_plan=dict(by_plan),
        revenue=revenue,
        trial_conversions=len(trial_users & pro_users),
    )
