"""Tests for SubscriptionLifecycleService state transitions and feature access."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from promoplan.core.database import get_db
from promoplan.core.exceptions import NoActiveTrialError, NotFoundError
from promoplan.models.shared import ensure_utc, utc_now
from promoplan.models.subscription import PlanType, SubscriptionStatus, UserSubscription
from promoplan.repositories.subscription_repository import SubscriptionRepository
from promoplan.services.subscription_lifecycle import SubscriptionLifecycleService
from tests.conftest import at


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def lifecycle(db_session):
    return SubscriptionLifecycleService(db_session)


def _active_rows(db_session, user_id: str) -> list[UserSubscription]:
    return (
        db_session.query(UserSubscription)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionStatus.ACTIVE.value,
        )
        .all()
    )


class TestCreate:
    def test_trial_period(self, lifecycle):
        start = at(2025, 3, 1, 9)
        sub = lifecycle.create("user-1", PlanType.TRIAL, now=start)

        assert sub.status == SubscriptionStatus.ACTIVE.value
        assert sub.plan_type == PlanType.TRIAL.value
        assert ensure_utc(sub.start_date) == start
        assert ensure_utc(sub.end_date) == at(2025, 3, 8, 9)
        assert ensure_utc(sub.trial_end_date) == at(2025, 3, 8, 9)
        assert sub.next_billing_date is None

    def test_pro_period_clamps_to_month_end(self, lifecycle):
        sub = lifecycle.create("user-1", "pro", now=at(2025, 1, 31))

        assert ensure_utc(sub.end_date) == at(2025, 2, 28)
        assert ensure_utc(sub.next_billing_date) == at(2025, 2, 28)
        assert sub.trial_end_date is None

    def test_free_is_open_ended(self, lifecycle):
        sub = lifecycle.create("user-1", PlanType.FREE)
        assert sub.end_date is None
        assert sub.trial_end_date is None

    def test_replaces_active_subscription(self, lifecycle, db_session):
        first = lifecycle.create("user-1", PlanType.FREE)
        second = lifecycle.create("user-1", PlanType.TRIAL)

        db_session.refresh(first)
        assert first.status == SubscriptionStatus.CANCELLED.value
        assert [s.id for s in _active_rows(db_session, "user-1")] == [second.id]

    def test_other_users_are_untouched(self, lifecycle, db_session):
        lifecycle.create("user-1", PlanType.TRIAL)
        lifecycle.create("user-2", PlanType.PRO)
        assert len(_active_rows(db_session, "user-1")) == 1
        assert len(_active_rows(db_session, "user-2")) == 1

    def test_records_coupon_and_discount(self, lifecycle):
        sub = lifecycle.create(
            "user-1", PlanType.PRO, coupon_code="SAVE20", discount_applied=Decimal("40")
        )
        assert sub.coupon_used == "SAVE20"
        assert sub.discount_applied == Decimal("40")

    def test_database_rejects_second_active_row(self, db_session):
        repo = SubscriptionRepository(db_session)
        now = utc_now()
        repo.add(user_id="user-1", plan_type=PlanType.FREE.value, start_date=now)
        db_session.commit()

        repo.add(user_id="user-1", plan_type=PlanType.PRO.value, start_date=now)
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestGetActive:
    def test_none_without_subscription(self, lifecycle):
        assert lifecycle.get_active("nobody") is None

    def test_returns_current(self, lifecycle):
        sub = lifecycle.create("user-1", PlanType.TRIAL)
        assert lifecycle.get_active("user-1").id == sub.id

    def test_overdue_row_expires_on_read(self, lifecycle, db_session):
        sub = lifecycle.create("user-1", PlanType.TRIAL, now=utc_now() - timedelta(days=10))

        assert lifecycle.get_active("user-1") is None
        db_session.refresh(sub)
        assert sub.status == SubscriptionStatus.EXPIRED.value

    def test_end_date_equal_to_now_is_expired(self, lifecycle):
        start = at(2025, 3, 1)
        lifecycle.create("user-1", PlanType.TRIAL, now=start)
        assert lifecycle.get_active("user-1", now=at(2025, 3, 8) - timedelta(seconds=1))
        assert lifecycle.get_active("user-1", now=at(2025, 3, 8)) is None

    def test_get_or_create_active_starts_free_once(self, lifecycle, db_session):
        first = lifecycle.get_or_create_active("user-1")
        second = lifecycle.get_or_create_active("user-1")

        assert first.plan_type == PlanType.FREE.value
        assert first.id == second.id
        assert db_session.query(UserSubscription).count() == 1


class TestUpgrade:
    def test_trial_to_pro(self, lifecycle, db_session):
        trial = lifecycle.create("user-1", PlanType.TRIAL)
        pro = lifecycle.upgrade("user-1", coupon_code="UPGRADE", discount_applied=Decimal("0"))

        db_session.refresh(trial)
        assert trial.status == SubscriptionStatus.CANCELLED.value
        assert pro.plan_type == PlanType.PRO.value
        assert pro.coupon_used == "UPGRADE"
        assert [s.id for s in _active_rows(db_session, "user-1")] == [pro.id]

    def test_upgrade_without_existing_subscription(self, lifecycle):
        assert lifecycle.upgrade("user-1").plan_type == PlanType.PRO.value

    def test_only_pro_is_an_upgrade(self, lifecycle):
        with pytest.raises(ValueError):
            lifecycle.upgrade("user-1", PlanType.TRIAL)


class TestExtendTrial:
    def test_extends_both_end_dates(self, lifecycle):
        trial = lifecycle.create("user-1", PlanType.TRIAL)
        original_end = ensure_utc(trial.trial_end_date)

        extended = lifecycle.extend_trial("user-1", 14)

        assert ensure_utc(extended.trial_end_date) == original_end + timedelta(days=14)
        assert ensure_utc(extended.end_date) == original_end + timedelta(days=14)
        assert extended.id == trial.id

    def test_requires_active_trial(self, lifecycle, db_session):
        pro = lifecycle.create("user-1", PlanType.PRO)
        end_before = ensure_utc(pro.end_date)

        with pytest.raises(NoActiveTrialError, match="No active trial subscription found"):
            lifecycle.extend_trial("user-1", 7)

        db_session.refresh(pro)
        assert pro.plan_type == PlanType.PRO.value
        assert ensure_utc(pro.end_date) == end_before
        assert db_session.query(UserSubscription).count() == 1

    def test_no_subscription(self, lifecycle, db_session):
        with pytest.raises(NoActiveTrialError):
            lifecycle.extend_trial("user-1", 7)
        assert db_session.query(UserSubscription).count() == 0

    def test_rejects_non_positive_days(self, lifecycle):
        lifecycle.create("user-1", PlanType.TRIAL)
        with pytest.raises(ValueError):
            lifecycle.extend_trial("user-1", 0)

    def test_extend_or_start_extends_active_trial(self, lifecycle):
        trial = lifecycle.create("user-1", PlanType.TRIAL)
        original_end = ensure_utc(trial.trial_end_date)

        extended = lifecycle.extend_or_start_trial("user-1", 7, coupon_code="MORETIME")

        assert extended.id == trial.id
        assert ensure_utc(extended.trial_end_date) == original_end + timedelta(days=7)

    def test_extend_or_start_replaces_free_with_trial(self, lifecycle, db_session):
        free = lifecycle.create("user-1", PlanType.FREE)

        trial = lifecycle.extend_or_start_trial("user-1", 7, coupon_code="MORETIME")

        assert trial.plan_type == PlanType.TRIAL.value
        assert trial.coupon_used == "MORETIME"
        db_session.refresh(free)
        assert free.status == SubscriptionStatus.CANCELLED.value
        assert [s.id for s in _active_rows(db_session, "user-1")] == [trial.id]

    def test_extend_or_start_after_lapsed_trial(self, lifecycle, db_session):
        lapsed = lifecycle.create("user-1", PlanType.TRIAL, now=utc_now() - timedelta(days=10))

        trial = lifecycle.extend_or_start_trial("user-1", 7)

        assert trial.id != lapsed.id
        db_session.refresh(lapsed)
        assert lapsed.status == SubscriptionStatus.EXPIRED.value
        assert ensure_utc(trial.end_date) > utc_now()


class TestTransitions:
    def test_cancel(self, lifecycle):
        sub = lifecycle.create("user-1", PlanType.PRO)
        cancelled = lifecycle.cancel(sub.id)
        assert cancelled.status == SubscriptionStatus.CANCELLED.value
        assert lifecycle.get_active("user-1") is None

    def test_expire(self, lifecycle):
        sub = lifecycle.create("user-1", PlanType.PRO)
        assert lifecycle.expire(sub.id).status == SubscriptionStatus.EXPIRED.value

    def test_unknown_id(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.cancel(uuid4())
        with pytest.raises(NotFoundError):
            lifecycle.expire(uuid4())

    def test_cleanup_expires_overdue_rows(self, lifecycle, db_session):
        now = utc_now()
        lifecycle.create("user-1", PlanType.TRIAL, now=now - timedelta(days=8))
        lifecycle.create("user-2", PlanType.PRO, now=now - timedelta(days=40))
        current = lifecycle.create("user-3", PlanType.TRIAL, now=now)
        lifecycle.create("user-4", PlanType.FREE, now=now - timedelta(days=400))

        assert lifecycle.cleanup(now=now) == 2
        assert lifecycle.cleanup(now=now) == 0

        statuses = {s.user_id: s.status for s in db_session.query(UserSubscription).all()}
        assert statuses == {
            "user-1": SubscriptionStatus.EXPIRED.value,
            "user-2": SubscriptionStatus.EXPIRED.value,
            "user-3": SubscriptionStatus.ACTIVE.value,
            "user-4": SubscriptionStatus.ACTIVE.value,
        }
        assert lifecycle.get_active("user-3").id == current.id


class TestFeatureAccess:
    def test_no_subscription_is_free(self, lifecycle):
        assert lifecycle.get_plan_type("user-1") == "free"
        assert lifecycle.get_features("user-1").ai_queries_per_day == 10

    def test_free_user(self, lifecycle):
        lifecycle.create("user-1", PlanType.FREE)
        assert lifecycle.has_access("user-1", "advancedAnalytics") is False
        assert lifecycle.has_access("user-1", "ai_queries_per_day") is True

    def test_trial_user(self, lifecycle):
        lifecycle.create("user-1", PlanType.TRIAL)
        assert lifecycle.has_access("user-1", "mockTestSeries") is True
        assert lifecycle.has_access("user-1", "prioritySupport") is False

    def test_pro_user(self, lifecycle):
        lifecycle.create("user-1", PlanType.PRO)
        assert lifecycle.get_plan_type("user-1") == "pro"
        assert lifecycle.has_access("user-1", "priority_support") is True

    def test_unknown_feature_is_denied(self, lifecycle):
        lifecycle.create("user-1", PlanType.PRO)
        assert lifecycle.has_access("user-1", "teleportation") is False

    def test_expired_pro_falls_back_to_free(self, lifecycle):
        lifecycle.create("user-1", PlanType.PRO, now=utc_now() - timedelta(days=60))
        assert lifecycle.get_plan_type("user-1") == "free"


class TestQueries:
    def test_user_history_and_listing(self, lifecycle):
        lifecycle.create("user-1", PlanType.FREE, now=utc_now() - timedelta(minutes=2))
        lifecycle.create("user-1", PlanType.TRIAL, now=utc_now() - timedelta(minutes=1))
        lifecycle.create("user-2", PlanType.PRO)

        history = lifecycle.get_user_subscriptions("user-1")
        assert [s.plan_type for s in history] == ["trial", "free"]

        active = lifecycle.list_subscriptions(status=SubscriptionStatus.ACTIVE)
        assert {s.user_id for s in active} == {"user-1", "user-2"}
        assert len(lifecycle.list_subscriptions(plan_type=PlanType.PRO)) == 1
        assert lifecycle.count(status=SubscriptionStatus.CANCELLED) == 1

    def test_stats(self, lifecycle):
        lifecycle.create("user-1", PlanType.TRIAL, now=utc_now() - timedelta(minutes=1))
        lifecycle.upgrade("user-1", discount_applied=Decimal("40"))
        lifecycle.create("user-2", PlanType.PRO, discount_applied=Decimal("250"))
        lifecycle.create("user-3", PlanType.TRIAL)

        stats = lifecycle.get_stats()

        assert stats.total == 4
        assert stats.active == 3
        assert stats.cancelled == 1
        assert stats.by_plan == {"trial": 2, "pro": 2}
        assert stats.revenue == Decimal("160")
        assert stats.trial_conversions == 1
