from promoplan.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponStats,
    CouponUpdate,
    CouponUsageResponse,
    CouponValidationResponse,
    RedeemCouponRequest,
    RedemptionHistoryResponse,
    RedemptionResponse,
    ValidateCouponRequest,
)
from promoplan.schemas.plan import PlanFeatures
from promoplan.schemas.subscription import (
    PlanStatusResponse,
    SubscriptionResponse,
    SubscriptionStats,
)

__all__ = [
    "CouponCreate",
    "CouponResponse",
    "CouponStats",
    "CouponUpdate",
    "CouponUsageResponse",
    "CouponValidationResponse",
    "PlanFeatures",
    "PlanStatusResponse",
    "RedeemCouponRequest",
    "RedemptionHistoryResponse",
    "RedemptionResponse",
    "SubscriptionResponse",
    "SubscriptionStats",
    "ValidateCouponRequest",
]
