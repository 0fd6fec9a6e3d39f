"""Coupon eligibility and discount rules.

Everything here is pure: callers hand in the coupon snapshot, the user's ledger
count and the clock, and get back a result. Nothing is read or written.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from promoplan.models.coupon import Coupon, CouponType
from promoplan.models.shared import ensure_utc

INVALID_CODE = "Invalid coupon code"
INACTIVE = "Coupon is inactive"
NOT_YET_VALID = "Coupon is not yet valid"
EXPIRED = "Coupon has expired"
ROLE_NOT_ELIGIBLE = "Coupon is not available for your account type"
PLAN_NOT_ELIGIBLE = "Coupon is not applicable to your selected plan"
USAGE_LIMIT_REACHED = "Coupon usage limit reached"
ALREADY_USED = "You have already used this coupon"
NO_DISCOUNT_WARNING = "No discount applied"


@dataclass
class CouponValidationResult:
    """Outcome of a validation. Rule violations are reported, never raised."""

    is_valid: bool
    coupon: Coupon | None = None
    discount_amount: Decimal | None = None
    final_amount: Decimal | None = None
    error: str | None = None
    warnings: list[str] | None = None

    @classmethod
    def rejected(cls, error: str, coupon: Coupon | None = None) -> "CouponValidationResult":
        return cls(is_valid=False, coupon=coupon, error=error)


def calculate_discount(coupon: Coupon, amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(discount_amount, final_amount)`` for ``amount``.

    percentage: ``amount * value / 100`` capped by ``max_discount``.
    fixed: ``value`` capped by ``amount``.
    trial_extension, upgrade_promo: no monetary discount.
    """
    amount = Decimal(str(amount))
    value = Decimal(str(coupon.value))
    coupon_type = CouponType(coupon.coupon_type)

    if coupon_type == CouponType.PERCENTAGE:
        discount = amount * value / Decimal("100")
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(str(coupon.max_discount)))
    elif coupon_type == CouponType.FIXED:
        discount = min(value, amount)
    else:
        discount = Decimal("0")

    discount = min(max(discount, Decimal("0")), amount)
    final_amount = max(Decimal("0"), amount - discount)
    return discount, final_amount


def validate_coupon(
    coupon: Coupon | None,
    *,
    user_role: str,
    plan_type: str,
    amount: Decimal,
    user_usage_count: int,
    now: datetime,
) -> CouponValidationResult:
    """Run the eligibility checks in order and stop at the first failure."""
    if coupon is None:
        return CouponValidationResult.rejected(INVALID_CODE)

    if not coupon.is_active:
        return CouponValidationResult.rejected(INACTIVE, coupon)

    valid_from = ensure_utc(coupon.valid_from)
    valid_until = ensure_utc(coupon.valid_until)
    if valid_from is not None and now < valid_from:
        return CouponValidationResult.rejected(NOT_YET_VALID, coupon)
    if valid_until is not None and now > valid_until:
        return CouponValidationResult.rejected(EXPIRED, coupon)

    if coupon.eligible_roles is not None and user_role not in coupon.eligible_roles:
        return CouponValidationResult.rejected(ROLE_NOT_ELIGIBLE, coupon)

    if coupon.eligible_plans is not None and plan_type not in coupon.eligible_plans:
        return CouponValidationResult.rejected(PLAN_NOT_ELIGIBLE, coupon)

    amount = Decimal(str(amount))
    if coupon.min_amount is not None and amount < Decimal(str(coupon.min_amount)):
        return CouponValidationResult.rejected(
            f"Minimum purchase amount of {_format_amount(coupon.min_amount)} "
            "required for this coupon",
            coupon,
        )

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponValidationResult.rejected(USAGE_LIMIT_REACHED, coupon)

    if coupon.user_usage_limit is not None and user_usage_count >= coupon.user_usage_limit:
        return CouponValidationResult.rejected(ALREADY_USED, coupon)

    discount, final_amount = calculate_discount(coupon, amount)
    return CouponValidationResult(
        is_valid=True,
        coupon=coupon,
        discount_amount=discount,
        final_amount=final_amount,
        warnings=[NO_DISCOUNT_WARNING] if discount == 0 else None,
    )


def _format_amount(value: Decimal) -> str:
    return f"{Decimal(str(value)).normalize():f}"
