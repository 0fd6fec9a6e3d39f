from promoplan.models.coupon import Coupon, CouponStatus, CouponType
from promoplan.models.coupon_usage import CouponUsage
from promoplan.models.subscription import (
    BillingCycle,
    PlanType,
    SubscriptionStatus,
    UserSubscription,
)

__all__ = [
    "BillingCycle",
    "Coupon",
    "CouponStatus",
    "CouponType",
    "CouponUsage",
    "PlanType",
    "SubscriptionStatus",
    "UserSubscription",
]
