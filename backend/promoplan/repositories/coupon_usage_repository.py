"""CouponUsage repository: append and read access to the redemption ledger."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from promoplan.models.coupon_usage import CouponUsage


class CouponUsageRepository:
    """Repository for the append-only CouponUsage ledger.

    There is deliberately no update or delete here.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        coupon_id: UUID,
        coupon_code: str,
        user_id: str,
        user_email: str,
        discount_amount: Decimal,
        original_amount: Decimal,
        final_amount: Decimal,
        plan_type: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CouponUsage:
        """Stage a ledger row without committing."""
        usage = CouponUsage(
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            user_id=user_id,
            user_email=user_email,
            discount_amount=discount_amount,
            original_amount=original_amount,
            final_amount=final_amount,
            plan_type=plan_type,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(usage)
        return usage

    def get_by_id(self, usage_id: UUID) -> CouponUsage | None:
        return self.db.query(CouponUsage).filter(CouponUsage.id == usage_id).first()

    def get_all(self) -> list[CouponUsage]:
        return self.db.query(CouponUsage).order_by(CouponUsage.used_at.asc()).all()

    def get_history(
        self,
        coupon_id: UUID | None = None,
        user_id: str | None = None,
    ) -> list[CouponUsage]:
        """Ledger rows filtered by coupon and/or user, newest first."""
        query = self.db.query(CouponUsage)
        if coupon_id is not None:
            query = query.filter(CouponUsage.coupon_id == coupon_id)
        if user_id is not None:
            query = query.filter(CouponUsage.user_id == user_id)
        return query.order_by(CouponUsage.used_at.desc()).all()

    def count_by_coupon(self, coupon_id: UUID) -> int:
        return (
            self.db.query(func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon_id)
            .scalar()
            or 0
        )

    def count_by_coupon_and_user(self, coupon_id: UUID, user_id: str) -> int:
        return (
            self.db.query(func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
            .scalar()
            or 0
        )

    def counts_by_coupon(self) -> dict[UUID, int]:
        rows = (
            self.db.query(CouponUsage.coupon_id, func.count(CouponUsage.id))
            .group_by(CouponUsage.coupon_id)
            .all()
        )
        return {coupon_id: count for coupon_id, count in rows}
