"""Coupon model for promotional discounts."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text

from promoplan.core.database import Base
from promoplan.models.shared import UUIDType, generate_uuid, utc_now


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TRIAL_EXTENSION = "trial_extension"
    UPGRADE_PROMO = "upgrade_promo"


class CouponStatus(str, Enum):
    """Derived status used for listing filters; not stored."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class Coupon(Base):
    """Coupon model for promotional discounts."""

    __tablename__ = "coupons"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False)

    coupon_type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 4), nullable=False)
    min_amount = Column(Numeric(12, 4), nullable=True)
    max_discount = Column(Numeric(12, 4), nullable=True)

    usage_limit = Column(Integer, nullable=True)
    user_usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)

    eligible_roles = Column(JSON, nullable=True)
    eligible_plans = Column(JSON, nullable=True)

    created_by = Column(String(255), nullable=False)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
