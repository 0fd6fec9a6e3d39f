import logging
from typing import Any

from arq import cron

from promoplan.core.config import settings
from promoplan.core.database import SessionLocal
from promoplan.services.coupon_service import CouponService
from promoplan.services.subscription_lifecycle import SubscriptionLifecycleService
from promoplan.tasks import redis_settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def expire_subscriptions_task(ctx: dict[str, Any]) -> int:
    """Background task: expire active subscriptions whose end date has passed.

    Reads already expire lazily; this sweep keeps the stored statuses and
    the statistics current for users who stay away.
    """
    db = SessionLocal()
    try:
        count = SubscriptionLifecycleService(db).cleanup()
        if count > 0:
            logger.info("Expired %d subscriptions", count)
        return count
    except Exception:
        logger.exception("Subscription expiry sweep failed")
        raise
    finally:
        db.close()


async def reconcile_coupon_usage_task(ctx: dict[str, Any]) -> int:
    """Background task: rewrite coupon used counts from the usage ledger.

    Runs daily.
    """
    db = SessionLocal()
    try:
        corrected = CouponService(db).reconcile_used_counts()
        if corrected > 0:
            logger.info("Reconciled usage counters for %d coupons", corrected)
        return corrected
    except Exception:
        logger.exception("Coupon usage reconciliation failed")
        raise
    finally:
        db.close()


class WorkerSettings:
    functions = [
        expire_subscriptions_task,
        reconcile_coupon_usage_task,
    ]
    cron_jobs = [
        cron(expire_subscriptions_task, minute=settings.CLEANUP_CRON_MINUTES),  # hourly
        cron(reconcile_coupon_usage_task, hour=3, minute=0),  # daily at 03:00
    ]
    redis_settings = redis_settings
