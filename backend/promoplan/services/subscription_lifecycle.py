"""Service for the subscription lifecycle: creation, upgrades, trial extension and expiry."""

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from promoplan.core.exceptions import ConcurrencyConflictError, NoActiveTrialError, NotFoundError
from promoplan.core.locks import subscription_locks
from promoplan.models.shared import ensure_utc, utc_now
from promoplan.models.subscription import PlanType, SubscriptionStatus, UserSubscription
from promoplan.repositories.subscription_repository import SubscriptionRepository
from promoplan.schemas.plan import PlanFeatures
from promoplan.schemas.subscription import SubscriptionStats
from promoplan.services.plan_features import get_plan_features, grants_access, resolve_feature_name
from promoplan.services.stats import subscription_stats
from promoplan.services.subscription_dates import add_days, initial_period

logger = logging.getLogger(__name__)


class SubscriptionLifecycleService:
    """State machine over user subscriptions.

    ``active`` is the initial state; ``expired`` and ``cancelled`` are terminal.
    A user never has more than one active row: every mutation that creates a
    row first cancels the current one while holding the user's lock.
    """

    def __init__(self, db: Session):
        self.db = db
        self.subscription_repo = SubscriptionRepository(db)

    def create(
        self,
        user_id: str,
        plan_type: PlanType | str,
        coupon_code: str | None = None,
        discount_applied: Decimal | None = None,
        now: datetime | None = None,
    ) -> UserSubscription:
        """Start a new active subscription, cancelling whatever was active."""
        with subscription_locks.hold(user_id):
            return self._replace_active(
                user_id, PlanType(plan_type), coupon_code, discount_applied, now or utc_now()
            )

    def upgrade(
        self,
        user_id: str,
        plan_type: PlanType | str = PlanType.PRO,
        coupon_code: str | None = None,
        discount_applied: Decimal | None = None,
        now: datetime | None = None,
    ) -> UserSubscription:
        """Move the user to pro. Exactly one active pro row remains afterwards."""
        if PlanType(plan_type) != PlanType.PRO:
            raise ValueError("Subscriptions can only be upgraded to pro")
        return self.create(user_id, PlanType.PRO, coupon_code, discount_applied, now)

    def _replace_active(
        self,
        user_id: str,
        plan_type: PlanType,
        coupon_code: str | None,
        discount_applied: Decimal | None,
        now: datetime,
    ) -> UserSubscription:
        for current in self.subscription_repo.get_by_user_id(user_id):
            if current.status == SubscriptionStatus.ACTIVE.value:
                self.subscription_repo.mark_status(current, SubscriptionStatus.CANCELLED)
                logger.info(
                    "Cancelled %s subscription %s for user %s", current.plan_type, current.id, user_id
                )
        # Flush the cancellations before inserting so the active-user index holds.
        self.db.flush()

        period = initial_period(plan_type, now)
        subscription = self.subscription_repo.add(
            user_id=user_id,
            plan_type=plan_type.value,
            start_date=now,
            end_date=period.end_date,
            trial_end_date=period.trial_end_date,
            next_billing_date=period.next_billing_date,
            coupon_used=coupon_code,
            discount_applied=discount_applied,
        )
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Concurrent subscription change for user %s", user_id)
            raise ConcurrencyConflictError(
                f"Another subscription change for user {user_id} is in progress"
            ) from exc
        self.db.refresh(subscription)
        logger.info(
            "Created %s subscription %s for user %s", plan_type.value, subscription.id, user_id
        )
        return subscription

    def get_active(self, user_id: str, now: datetime | None = None) -> UserSubscription | None:
        """The user's active subscription, or None.

        An active row whose end date has passed is moved to expired here and
        None is returned.
        """
        subscription = self.subscription_repo.find_active(user_id)
        if subscription is None:
            return None

        now = now or utc_now()
        end_date = ensure_utc(subscription.end_date)
        if end_date is not None and end_date <= now:
            self.subscription_repo.mark_status(subscription, SubscriptionStatus.EXPIRED)
            self.db.commit()
            logger.info("Subscription %s for user %s expired on read", subscription.id, user_id)
            return None
        return subscription

    def get_or_create_active(self, user_id: str, now: datetime | None = None) -> UserSubscription:
        """Active subscription, starting an implicit free one on first activity."""
        subscription = self.get_active(user_id, now)
        if subscription is not None:
            return subscription
        return self.create(user_id, PlanType.FREE, now=now)

    def extend_trial(self, user_id: str, days: int, now: datetime | None = None) -> UserSubscription:
        """Push the trial end (and end date) of an active trial out by ``days``.

        Raises:
            NoActiveTrialError: If the user has no active trial; nothing changes.
        """
        if days <= 0:
            raise ValueError("Extension days must be positive")

        with subscription_locks.hold(user_id):
            subscription = self.get_active(user_id, now)
            if subscription is None or subscription.plan_type != PlanType.TRIAL.value:
                raise NoActiveTrialError()

            return self._extend(subscription, days, now)

    def extend_or_start_trial(
        self,
        user_id: str,
        days: int,
        coupon_code: str | None = None,
        discount_applied: Decimal | None = None,
        now: datetime | None = None,
    ) -> UserSubscription:
        """Extend the active trial by ``days``, or start a trial when there is none.

        The lookup and the write share one hold of the user's lock.
        """
        if days <= 0:
            raise ValueError("Extension days must be positive")

        with subscription_locks.hold(user_id):
            subscription = self.get_active(user_id, now)
            if subscription is not None and subscription.plan_type == PlanType.TRIAL.value:
                return self._extend(subscription, days, now)
            return self._replace_active(
                user_id, PlanType.TRIAL, coupon_code, discount_applied, now or utc_now()
            )

    def _extend(
        self, subscription: UserSubscription, days: int, now: datetime | None
    ) -> UserSubscription:
        current_end = ensure_utc(subscription.trial_end_date or subscription.end_date)
        new_end = add_days(current_end or (now or utc_now()), days)
        subscription = self.subscription_repo.set_end_dates(subscription, new_end, new_end)
        logger.info(
            "Extended trial %s for user %s by %d days", subscription.id, subscription.user_id, days
        )
        return subscription

    def cancel(self, subscription_id: UUID) -> UserSubscription:
        subscription = self.subscription_repo.set_status(
            subscription_id, SubscriptionStatus.CANCELLED
        )
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        logger.info("Subscription %s cancelled", subscription_id)
        return subscription

    def expire(self, subscription_id: UUID) -> UserSubscription:
        subscription = self.subscription_repo.set_status(
            subscription_id, SubscriptionStatus.EXPIRED
        )
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        logger.info("Subscription %s expired", subscription_id)
        return subscription

    def cleanup(self, now: datetime | None = None) -> int:
        """Expire every active subscription whose end date has passed.

        Meant to be run by an external scheduler; returns how many rows changed.
        """
        overdue = self.subscription_repo.get_overdue_active(now or utc_now())
        for subscription in overdue:
            self.subscription_repo.mark_status(subscription, SubscriptionStatus.EXPIRED)
        if overdue:
            self.db.commit()
            logger.info("Expired %d overdue subscriptions", len(overdue))
        return len(overdue)

    def get_plan_type(self, user_id: str) -> str:
        subscription = self.get_active(user_id)
        return str(subscription.plan_type) if subscription else PlanType.FREE.value

    def get_features(self, user_id: str) -> PlanFeatures:
        return get_plan_features(self.get_plan_type(user_id))

    def has_access(self, user_id: str, feature: str) -> bool:
        """Feature gate. Unknown feature names deny access."""
        name = resolve_feature_name(feature)
        if name is None:
            return False
        return grants_access(getattr(self.get_features(user_id), name))

    def get_user_subscriptions(self, user_id: str) -> list[UserSubscription]:
        return self.subscription_repo.get_by_user_id(user_id)

    def list_subscriptions(
        self,
        skip: int = 0,
        limit: int = 100,
        status: SubscriptionStatus | None = None,
        plan_type: PlanType | None = None,
    ) -> list[UserSubscription]:
        return self.subscription_repo.get_all(
            skip=skip,
            limit=limit,
            status=status,
            plan_type=plan_type.value if plan_type else None,
        )

    def count(
        self, status: SubscriptionStatus | None = None, plan_type: PlanType | None = None
    ) -> int:
        return self.subscription_repo.count(
            status=status, plan_type=plan_type.value if plan_type else None
        )

    def get_stats(self) -> SubscriptionStats:
        return subscription_stats(self.subscription_repo.get_all())
