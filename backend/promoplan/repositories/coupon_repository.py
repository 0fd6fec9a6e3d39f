"""Coupon repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from promoplan.models.coupon import Coupon, CouponStatus
from promoplan.models.shared import utc_now
from promoplan.schemas.coupon import CouponCreate, CouponUpdate


_REQUIRED_FIELDS = (
    "code",
    "description",
    "coupon_type",
    "value",
    "is_active",
    "valid_from",
    "valid_until",
)


def _plain_plans(plans: list[Any] | None) -> list[str] | None:
    if plans is None:
        return None
    return [getattr(p, "value", p) for p in plans]


class CouponRepository:
    """Repository for Coupon model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        skip: int = 0,
        limit: int | None = 100,
        status: CouponStatus | None = None,
        now: datetime | None = None,
    ) -> list[Coupon]:
        """Get coupons with an optional derived-status filter; ``limit=None`` for all."""
        query = self._filtered(status, now or utc_now())
        query = query.order_by(Coupon.created_at.desc()).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, status: CouponStatus | None = None, now: datetime | None = None) -> int:
        return self._filtered(status, now or utc_now()).count()

    def _filtered(self, status: CouponStatus | None, now: datetime) -> Any:
        query = self.db.query(Coupon)
        if status == CouponStatus.ACTIVE:
            query = query.filter(Coupon.is_active.is_(True), Coupon.valid_until >= now)
        elif status == CouponStatus.INACTIVE:
            query = query.filter(Coupon.is_active.is_(False), Coupon.valid_until >= now)
        elif status == CouponStatus.EXPIRED:
            query = query.filter(Coupon.valid_until < now)
        return query

    def get_by_id(self, coupon_id: UUID) -> Coupon | None:
        """Get a coupon by ID."""
        return self.db.query(Coupon).filter(Coupon.id == coupon_id).first()

    def get_by_ids(self, coupon_ids: list[UUID]) -> list[Coupon]:
        return self.db.query(Coupon).filter(Coupon.id.in_(coupon_ids)).all()

    def get_by_code(self, code: str) -> Coupon | None:
        """Get a coupon by its exact stored code."""
        return self.db.query(Coupon).filter(Coupon.code == code).first()

    def code_exists(self, code: str, exclude_id: UUID | None = None) -> bool:
        """Case-insensitive duplicate check."""
        query = self.db.query(Coupon).filter(func.lower(Coupon.code) == code.lower())
        if exclude_id is not None:
            query = query.filter(Coupon.id != exclude_id)
        return query.first() is not None

    def create(self, data: CouponCreate, created_by: str) -> Coupon:
        """Create a new coupon."""
        coupon = Coupon(
            code=data.code,
            description=data.description,
            coupon_type=data.coupon_type.value,
            value=data.value,
            min_amount=data.min_amount,
            max_discount=data.max_discount,
            usage_limit=data.usage_limit,
            user_usage_limit=data.user_usage_limit,
            used_count=0,
            is_active=True,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            eligible_roles=data.eligible_roles,
            eligible_plans=_plain_plans(data.eligible_plans),
            created_by=created_by,
            metadata_=data.metadata.model_dump(exclude_none=True) if data.metadata else None,
        )
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def update(self, coupon_id: UUID, data: CouponUpdate) -> Coupon | None:
        """Apply the fields that were explicitly set on ``data``."""
        coupon = self.get_by_id(coupon_id)
        if not coupon:
            return None

        update_data = data.model_dump(exclude_unset=True)
        # Required columns cannot be cleared by sending null.
        for key in _REQUIRED_FIELDS:
            if key in update_data and update_data[key] is None:
                del update_data[key]

        if update_data.get("coupon_type") is not None:
            update_data["coupon_type"] = update_data["coupon_type"].value
        if "eligible_plans" in update_data:
            update_data["eligible_plans"] = _plain_plans(update_data["eligible_plans"])
        if "metadata" in update_data:
            metadata = update_data.pop("metadata")
            update_data["metadata_"] = (
                {k: v for k, v in metadata.items() if v is not None} if metadata else None
            )

        for key, value in update_data.items():
            setattr(coupon, key, value)
        coupon.updated_at = utc_now()  # type: ignore[assignment]

        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def set_active(self, coupon_id: UUID, is_active: bool) -> Coupon | None:
        coupon = self.get_by_id(coupon_id)
        if not coupon:
            return None

        coupon.is_active = is_active  # type: ignore[assignment]
        coupon.updated_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def delete(self, coupon_id: UUID) -> bool:
        """Hard-delete a coupon. Its ledger rows are kept."""
        coupon = self.get_by_id(coupon_id)
        if not coupon:
            return False

        self.db.delete(coupon)
        self.db.commit()
        return True

    def try_increment_used_count(self, coupon_id: UUID) -> bool:
        """Compare-and-swap ``used_count + 1`` bounded by ``usage_limit``.

        Does not commit; the caller commits together with the ledger row.
        Returns False when the limit is already consumed.
        """
        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def set_used_count(self, coupon_id: UUID, used_count: int) -> None:
        """Overwrite the cached counter. Does not commit."""
        self.db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(used_count=used_count, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
