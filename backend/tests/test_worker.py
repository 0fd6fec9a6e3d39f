"""Tests for worker background tasks and cron job registration."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from promoplan.core.database import get_db
from promoplan.models.shared import utc_now
from promoplan.models.subscription import PlanType, SubscriptionStatus, UserSubscription
from promoplan.services.subscription_lifecycle import SubscriptionLifecycleService
from promoplan.worker import (
    WorkerSettings,
    expire_subscriptions_task,
    reconcile_coupon_usage_task,
)
from tests.conftest import make_coupon


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
def worker_sessions(db_session):
    """Point the worker's session factory at the test database."""
    from promoplan.core import database as db_module

    with patch("promoplan.worker.SessionLocal", db_module.SessionLocal):
        yield


class TestExpireSubscriptionsTask:
    @pytest.mark.asyncio
    async def test_calls_cleanup_and_returns_count(self):
        mock_service = MagicMock()
        mock_service.cleanup.return_value = 3

        with patch("promoplan.worker.SubscriptionLifecycleService", return_value=mock_service):
            result = await expire_subscriptions_task({})

        assert result == 3
        mock_service.cleanup.assert_called_once()

    @pytest.mark.asyncio
    async def test_closes_session_on_failure(self):
        mock_session = MagicMock()
        mock_service = MagicMock()
        mock_service.cleanup.side_effect = RuntimeError("db gone")

        with (
            patch("promoplan.worker.SessionLocal", return_value=mock_session),
            patch("promoplan.worker.SubscriptionLifecycleService", return_value=mock_service),
        ):
            with pytest.raises(RuntimeError, match="db gone"):
                await expire_subscriptions_task({})

        mock_session.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_expires_overdue_rows(self, db_session, worker_sessions):
        lifecycle = SubscriptionLifecycleService(db_session)
        lifecycle.create("user-1", PlanType.TRIAL, now=utc_now() - timedelta(days=8))
        lifecycle.create("user-2", PlanType.PRO)

        assert await expire_subscriptions_task({}) == 1

        statuses = {s.user_id: s.status for s in db_session.query(UserSubscription).all()}
        assert statuses["user-1"] == SubscriptionStatus.EXPIRED.value
        assert statuses["user-2"] == SubscriptionStatus.ACTIVE.value


class TestReconcileCouponUsageTask:
    @pytest.mark.asyncio
    async def test_calls_reconcile(self):
        mock_service = MagicMock()
        mock_service.reconcile_used_counts.return_value = 0

        with patch("promoplan.worker.CouponService", return_value=mock_service) as mock_cls:
            result = await reconcile_coupon_usage_task({})

        assert result == 0
        mock_cls.assert_called_once()
        assert mock_cls.call_args[0][0] is not None

    @pytest.mark.asyncio
    async def test_corrects_drifted_counter(self, db_session, worker_sessions):
        coupon = make_coupon(db_session, used_count=5)

        assert await reconcile_coupon_usage_task({}) == 1

        db_session.refresh(coupon)
        assert coupon.used_count == 0


class TestWorkerSettings:
    def test_functions_registered(self):
        assert expire_subscriptions_task in WorkerSettings.functions
        assert reconcile_coupon_usage_task in WorkerSettings.functions

    def test_cron_jobs(self):
        names = {job.coroutine.__name__ for job in WorkerSettings.cron_jobs}
        assert names == {"expire_subscriptions_task", "reconcile_coupon_usage_task"}

    def test_expiry_sweep_runs_hourly(self):
        job = next(
            j
            for j in WorkerSettings.cron_jobs
            if j.coroutine.__name__ == "expire_subscriptions_task"
        )
        assert job.minute == {0}
        assert job.hour is None

    def test_reconcile_runs_daily(self):
        job = next(
            j
            for j in WorkerSettings.cron_jobs
            if j.coroutine.__name__ == "reconcile_coupon_usage_task"
        )
        assert job.hour == 3
        assert job.minute == 0
