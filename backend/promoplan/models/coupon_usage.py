"""CouponUsage model: the append-only redemption ledger."""

from sqlalchemy import Column, DateTime, Index, Numeric, String

from promoplan.core.database import Base
from promoplan.models.shared import UUIDType, generate_uuid, utc_now


class CouponUsage(Base):
    """One row per successful redemption. Rows are never updated or deleted.

    ``coupon_id`` carries no foreign key so the ledger outlives a coupon's
    hard delete; ``coupon_code`` keeps the code as it was when redeemed.
    """

    __tablename__ = "coupon_usages"
    __table_args__ = (Index("ix_coupon_usages_coupon_user", "coupon_id", "user_id"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    coupon_id = Column(UUIDType, nullable=False, index=True)
    coupon_code = Column(String(50), nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)

    discount_amount = Column(Numeric(12, 4), nullable=False)
    original_amount = Column(Numeric(12, 4), nullable=False)
    final_amount = Column(Numeric(12, 4), nullable=False)

    plan_type = Column(String(20), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    ip_address = Column(String(255), nullable=True)
    user_agent = Column(String(512), nullable=True)
