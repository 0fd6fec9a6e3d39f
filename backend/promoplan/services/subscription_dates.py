"""Subscription period arithmetic."""

import calendar as cal
from datetime import datetime, timedelta
from typing import NamedTuple

from promoplan.core.config import settings
from promoplan.models.subscription import PlanType


def add_months(dt: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to last day of month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    max_day = cal.monthrange(year, month)[1]
    day = min(dt.day, max_day)
    return dt.replace(year=year, month=month, day=day)


def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)


class SubscriptionPeriod(NamedTuple):
    end_date: datetime | None
    trial_end_date: datetime | None
    next_billing_date: datetime | None


def initial_period(plan_type: PlanType | str, start: datetime) -> SubscriptionPeriod:
    """End dates for a freshly created subscription.

    trial: ``TRIAL_PERIOD_DAYS`` days, mirrored into ``trial_end_date``.
    pro: ``PRO_PERIOD_MONTHS`` calendar months, mirrored into ``next_billing_date``.
    free: open ended.
    """
    plan = PlanType(plan_type)
    if plan == PlanType.TRIAL:
        end = add_days(start, settings.TRIAL_PERIOD_DAYS)
        return SubscriptionPeriod(end_date=end, trial_end_date=end, next_billing_date=None)
    if plan == PlanType.PRO:
        end = add_months(start, settings.PRO_PERIOD_MONTHS)
        return SubscriptionPeriod(end_date=end, trial_end_date=None, next_billing_date=end)
    return SubscriptionPeriod(end_date=None, trial_end_date=None, next_billing_date=None)
