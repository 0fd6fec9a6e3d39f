from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from promoplan.models.shared import utc_now
from promoplan.models.subscription import SubscriptionStatus, UserSubscription


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        skip: int = 0,
        limit: int | None = None,
        status: SubscriptionStatus | None = None,
        plan_type: str | None = None,
    ) -> list[UserSubscription]:
        query = self.db.query(UserSubscription)
        if status:
            query = query.filter(UserSubscription.status == status.value)
        if plan_type:
            query = query.filter(UserSubscription.plan_type == plan_type)
        query = query.order_by(UserSubscription.created_at.desc()).offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, status: SubscriptionStatus | None = None, plan_type: str | None = None) -> int:
        query = self.db.query(UserSubscription)
        if status:
            query = query.filter(UserSubscription.status == status.value)
        if plan_type:
            query = query.filter(UserSubscription.plan_type == plan_type)
        return query.count()

    def get_by_id(self, subscription_id: UUID) -> UserSubscription | None:
        return (
            self.db.query(UserSubscription).filter(UserSubscription.id == subscription_id).first()
        )

    def get_by_user_id(self, user_id: str) -> list[UserSubscription]:
        return (
            self.db.query(UserSubscription)
            .filter(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
            .all()
        )

    def find_active(self, user_id: str) -> UserSubscription | None:
        """The user's active row, newest first should more than one exist."""
        return (
            self.db.query(UserSubscription)
            .filter(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(UserSubscription.created_at.desc())
            .first()
        )

    def get_overdue_active(self, now: datetime) -> list[UserSubscription]:
        return (
            self.db.query(UserSubscription)
            .filter(
                UserSubscription.status == SubscriptionStatus.ACTIVE.value,
                UserSubscription.end_date.isnot(None),
                UserSubscription.end_date <= now,
            )
            .all()
        )

    def add(
        self,
        user_id: str,
        plan_type: str,
        start_date: datetime,
        end_date: datetime | None = None,
        trial_end_date: datetime | None = None,
        next_billing_date: datetime | None = None,
        coupon_used: str | None = None,
        discount_applied: Decimal | None = None,
    ) -> UserSubscription:
        """Stage a new active row without committing."""
        subscription = UserSubscription(
            user_id=user_id,
            plan_type=plan_type,
            status=SubscriptionStatus.ACTIVE.value,
            start_date=start_date,
            end_date=end_date,
            trial_end_date=trial_end_date,
            next_billing_date=next_billing_date,
            coupon_used=coupon_used,
            discount_applied=discount_applied,
            created_at=start_date,
            updated_at=start_date,
        )
        self.db.add(subscription)
        return subscription

    def mark_status(
        self, subscription: UserSubscription, status: SubscriptionStatus
    ) -> UserSubscription:
        """Stage a status transition without committing."""
        subscription.status = status.value  # type: ignore[assignment]
        subscription.updated_at = utc_now()  # type: ignore[assignment]
        return subscription

    def set_status(
        self, subscription_id: UUID, status: SubscriptionStatus
    ) -> UserSubscription | None:
        subscription = self.get_by_id(subscription_id)
        if not subscription:
            return None
        self.mark_status(subscription, status)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def set_end_dates(
        self, subscription: UserSubscription, end_date: datetime, trial_end_date: datetime | None
    ) -> UserSubscription:
        subscription.end_date = end_date  # type: ignore[assignment]
        subscription.trial_end_date = trial_end_date  # type: ignore[assignment]
        subscription.updated_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)
        return subscription
