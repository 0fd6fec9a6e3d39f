from enum import Enum

from sqlalchemy import Column, DateTime, Index, Numeric, String, text

from promoplan.core.database import Base
from promoplan.models.shared import UUIDType, generate_uuid, utc_now


class PlanType(str, Enum):
    FREE = "free"
    TRIAL = "trial"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PENDING = "pending"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"
    __table_args__ = (
        # At most one active subscription per user.
        Index(
            "uq_user_subscriptions_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    plan_type = Column(String(20), nullable=False)
    status = Column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True
    )
    start_date = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    end_date = Column(DateTime(timezone=True), nullable=True)
    trial_end_date = Column(DateTime(timezone=True), nullable=True)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)
    last_payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(50), nullable=True)
    coupon_used = Column(String(50), nullable=True)
    discount_applied = Column(Numeric(12, 4), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
