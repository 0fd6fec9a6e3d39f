from promoplan.repositories.coupon_repository import CouponRepository
from promoplan.repositories.coupon_usage_repository import CouponUsageRepository
from promoplan.repositories.subscription_repository import SubscriptionRepository

__all__ = [
    "CouponRepository",
    "CouponUsageRepository",
    "SubscriptionRepository",
]
