from uuid import UUID

from pydantic import ConfigDict, Field

from promoplan.schemas.plan import PlanFeatures
from promoplan.schemas.shared import Amount, CamelModel, UTCDateTime


class SubscriptionResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    plan_type: str
    status: str
    start_date: UTCDateTime
    end_date: UTCDateTime | None = None
    trial_end_date: UTCDateTime | None = None
    next_billing_date: UTCDateTime | None = None
    last_payment_date: UTCDateTime | None = None
    payment_method: str | None = None
    coupon_used: str | None = None
    discount_applied: Amount | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class PlanStatusResponse(CamelModel):
    plan_type: str
    features: PlanFeatures
    subscription: SubscriptionResponse | None = None


class FeatureAccessResponse(CamelModel):
    feature: str
    has_access: bool


class SubscriptionStats(CamelModel):
    total: int
    active: int
    expired: int
    cancelled: int
    pending: int
    by_plan: dict[str, int] = Field(default_factory=dict)
    revenue: Amount
    trial_conversions: int


class CleanupResponse(CamelModel):
    expired: int
