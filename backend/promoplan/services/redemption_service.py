"""Coupon redemption: validate, record usage, then change the subscription."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promoplan.core.exceptions import SubscriptionUpdateError
from promoplan.core.locks import coupon_locks
from promoplan.models.coupon import Coupon, CouponType
from promoplan.models.coupon_usage import CouponUsage
from promoplan.models.subscription import BillingCycle, PlanType, UserSubscription
from promoplan.schemas.coupon import (
    INVALID_REDEEM_PLAN,
    Pagination,
    RedemptionHistoryItem,
    RedemptionHistoryResponse,
    normalize_code,
)
from promoplan.services.coupon_service import CouponService
from promoplan.services.coupon_validator import CouponValidationResult
from promoplan.services.plan_features import get_plan_price
from promoplan.services.subscription_lifecycle import SubscriptionLifecycleService

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    success: bool
    error: str | None = None
    usage: CouponUsage | None = None
    subscription: UserSubscription | None = None
    validation: CouponValidationResult | None = None


class RedemptionService:
    """Runs a redemption end to end.

    Usage is recorded before the subscription changes. If the subscription
    step fails the usage row stays and ``SubscriptionUpdateError`` tells the
    caller to retry ``apply_subscription_change`` instead of redeeming again.
    """

    def __init__(self, db: Session):
        self.db = db
        self.coupon_service = CouponService(db)
        self.lifecycle = SubscriptionLifecycleService(db)

    def redeem(
        self,
        code: str,
        plan_type: PlanType | str,
        billing_cycle: BillingCycle | str,
        user_id: str,
        user_email: str,
        user_role: str = "user",
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RedemptionResult:
        plan = PlanType(plan_type)
        code = normalize_code(code)
        if plan != PlanType.PRO:
            logger.info("Redemption of %s by %s rejected: plan %s", code, user_id, plan.value)
            return RedemptionResult(success=False, error=INVALID_REDEEM_PLAN)
        amount = get_plan_price(plan, billing_cycle)

        # Validate and record under one lock so two redemptions of the same
        # coupon cannot both pass the limit checks.
        with coupon_locks.hold(code):
            validation = self.coupon_service.validate(
                code, user_id=user_id, user_role=user_role, plan_type=plan.value, amount=amount
            )
            if not validation.is_valid or validation.coupon is None:
                logger.info("Redemption of %s by %s rejected: %s", code, user_id, validation.error)
                return RedemptionResult(
                    success=False, error=validation.error, validation=validation
                )

            usage = self.coupon_service.record_usage(
                validation.coupon,
                user_id=user_id,
                user_email=user_email,
                discount_amount=validation.discount_amount or Decimal("0"),
                original_amount=amount,
                final_amount=validation.final_amount if validation.final_amount is not None else amount,
                plan_type=plan.value,
                ip_address=ip_address,
                user_agent=user_agent,
            )

        try:
            subscription = self.apply_subscription_change(validation.coupon, usage)
        except (SQLAlchemyError, RuntimeError) as exc:
            self.db.rollback()
            logger.exception(
                "Subscription update failed after recording usage %s of %s for %s",
                usage.id,
                code,
                user_id,
            )
            raise SubscriptionUpdateError(
                "Coupon was recorded but the subscription could not be updated; retry later",
                usage,
            ) from exc

        logger.info(
            "User %s redeemed %s: %s subscription %s",
            user_id,
            code,
            subscription.plan_type,
            subscription.id,
        )
        return RedemptionResult(
            success=True, usage=usage, subscription=subscription, validation=validation
        )

    def apply_subscription_change(self, coupon: Coupon, usage: CouponUsage) -> UserSubscription:
        """Subscription side of a redemption whose usage is already recorded.

        trial_extension coupons extend an active trial by ``value`` days, or
        start a trial when there is none. Every other type upgrades to pro.
        """
        user_id = str(usage.user_id)
        discount = Decimal(str(usage.discount_amount))

        if coupon.coupon_type == CouponType.TRIAL_EXTENSION.value:
            return self.lifecycle.extend_or_start_trial(
                user_id,
                int(Decimal(str(coupon.value))),
                coupon_code=str(coupon.code),
                discount_applied=discount,
            )

        return self.lifecycle.upgrade(
            user_id, PlanType.PRO, coupon_code=str(coupon.code), discount_applied=discount
        )

    def get_history(self, user_id: str, limit: int = 10, offset: int = 0) -> RedemptionHistoryResponse:
        """The user's redemptions, newest first, one page at a time."""
        usages = self.coupon_service.get_usage_history(user_id=user_id)
        page = usages[offset : offset + limit]
        return RedemptionHistoryResponse(
            history=[RedemptionHistoryItem.model_validate(u) for u in page],
            pagination=Pagination(
                total=len(usages),
                limit=limit,
                offset=offset,
                has_more=offset + limit < len(usages),
            ),
        )
