"""Coupon, CouponUsage and redemption schemas."""

import re
from decimal import Decimal
from uuid import UUID

from pydantic import AliasChoices, ConfigDict, Field, field_validator, model_validator

from promoplan.models.coupon import CouponType
from promoplan.models.subscription import BillingCycle, PlanType
from promoplan.schemas.shared import Amount, CamelModel, UTCDateTime
from promoplan.schemas.subscription import SubscriptionResponse

CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 50
CODE_PATTERN = re.compile(r"^[A-Z0-9\-_]+$")
RESERVED_CODES = frozenset({"TEST", "ADMIN", "SYSTEM", "DEFAULT"})

DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 200

# Inclusive bounds for ``value`` per coupon type.
VALUE_BOUNDS: dict[CouponType, tuple[Decimal, Decimal]] = {
    CouponType.PERCENTAGE: (Decimal("1"), Decimal("100")),
    CouponType.FIXED: (Decimal("1"), Decimal("10000")),
    CouponType.TRIAL_EXTENSION: (Decimal("1"), Decimal("365")),
    CouponType.UPGRADE_PROMO: (Decimal("0"), Decimal("100")),
}

USAGE_LIMIT_MAX = 100000
USER_USAGE_LIMIT_MAX = 100

INVALID_REDEEM_PLAN = "Valid plan type is required (pro)"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def code_errors(code: str) -> list[str]:
    """Return every rule the (already normalized) code breaks."""
    errors = []
    if len(code) < CODE_MIN_LENGTH:
        errors.append(f"Coupon code must be at least {CODE_MIN_LENGTH} characters long")
    if len(code) > CODE_MAX_LENGTH:
        errors.append(f"Coupon code must be no more than {CODE_MAX_LENGTH} characters long")
    if code and not CODE_PATTERN.match(code):
        errors.append(
            "Coupon code can only contain uppercase letters, numbers, hyphens, and underscores"
        )
    if code in RESERVED_CODES:
        errors.append("This coupon code is reserved and cannot be used")
    return errors


def value_bounds_error(coupon_type: CouponType | str, value: Decimal) -> str | None:
    low, high = VALUE_BOUNDS[CouponType(coupon_type)]
    if low <= value <= high:
        return None
    return f"Value for {CouponType(coupon_type).value} coupons must be between {low} and {high}"


class CouponMetadata(CamelModel):
    campaign: str | None = None
    source: str | None = None
    notes: str | None = None


class CouponCreate(CamelModel):
    code: str
    description: str = Field(
        min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH
    )
    coupon_type: CouponType = Field(
        validation_alias=AliasChoices("type", "coupon_type"), serialization_alias="type"
    )
    value: Decimal
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, ge=1, le=USAGE_LIMIT_MAX)
    user_usage_limit: int | None = Field(default=None, ge=1, le=USER_USAGE_LIMIT_MAX)
    valid_from: UTCDateTime
    valid_until: UTCDateTime
    eligible_roles: list[str] | None = None
    eligible_plans: list[PlanType] | None = None
    metadata: CouponMetadata | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: object) -> object:
        return normalize_code(value) if isinstance(value, str) else value

    @field_validator("code")
    @classmethod
    def _check_code(cls, value: str) -> str:
        errors = code_errors(value)
        if errors:
            raise ValueError("; ".join(errors))
        return value

    @model_validator(mode="after")
    def _check_cross_fields(self) -> "CouponCreate":
        error = value_bounds_error(self.coupon_type, self.value)
        if error:
            raise ValueError(error)
        if self.valid_from > self.valid_until:
            raise ValueError("Valid from date must not be after valid until date")
        return self


class CouponUpdate(CamelModel):
    """Partial update; only fields that are sent get validated and written."""

    code: str | None = None
    description: str | None = Field(
        default=None, min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH
    )
    coupon_type: CouponType | None = Field(
        default=None,
        validation_alias=AliasChoices("type", "coupon_type"),
        serialization_alias="type",
    )
    value: Decimal | None = None
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, ge=1, le=USAGE_LIMIT_MAX)
    user_usage_limit: int | None = Field(default=None, ge=1, le=USER_USAGE_LIMIT_MAX)
    is_active: bool | None = None
    valid_from: UTCDateTime | None = None
    valid_until: UTCDateTime | None = None
    eligible_roles: list[str] | None = None
    eligible_plans: list[PlanType] | None = None
    metadata: CouponMetadata | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: object) -> object:
        return normalize_code(value) if isinstance(value, str) else value

    @field_validator("code")
    @classmethod
    def _check_code(cls, value: str | None) -> str | None:
        if value is None:
            return value
        errors = code_errors(value)
        if errors:
            raise ValueError("; ".join(errors))
        return value


class CouponResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str
    coupon_type: CouponType = Field(
        validation_alias=AliasChoices("coupon_type", "type"), serialization_alias="type"
    )
    value: Amount
    min_amount: Amount | None = None
    max_discount: Amount | None = None
    usage_limit: int | None = None
    user_usage_limit: int | None = None
    used_count: int
    is_active: bool
    valid_from: UTCDateTime
    valid_until: UTCDateTime
    eligible_roles: list[str] | None = None
    eligible_plans: list[str] | None = None
    created_by: str
    created_at: UTCDateTime
    updated_at: UTCDateTime
    metadata_: CouponMetadata | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata_", "metadata"),
        serialization_alias="metadata",
    )


class CouponUsageResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    coupon_code: str
    user_id: str
    user_email: str
    discount_amount: Amount
    original_amount: Amount
    final_amount: Amount
    plan_type: str
    used_at: UTCDateTime
    ip_address: str | None = None
    user_agent: str | None = None


class ValidateCouponRequest(CamelModel):
    """Either ``amount`` or ``billing_cycle`` supplies the purchase amount."""

    code: str = Field(min_length=1, max_length=CODE_MAX_LENGTH)
    plan_type: PlanType
    billing_cycle: BillingCycle | None = None
    amount: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_amount_source(self) -> "ValidateCouponRequest":
        if self.amount is None and self.billing_cycle is None:
            raise ValueError("Either amount or billingCycle is required")
        return self


class CouponValidationResponse(CamelModel):
    is_valid: bool
    coupon: CouponResponse | None = None
    discount_amount: Amount | None = None
    final_amount: Amount | None = None
    error: str | None = None
    warnings: list[str] | None = None


class RedeemCouponRequest(CamelModel):
    code: str = Field(min_length=1, max_length=CODE_MAX_LENGTH)
    plan_type: PlanType = PlanType.PRO
    billing_cycle: BillingCycle = BillingCycle.MONTHLY

    @field_validator("plan_type")
    @classmethod
    def _only_pro(cls, value: PlanType) -> PlanType:
        if value != PlanType.PRO:
            raise ValueError(INVALID_REDEEM_PLAN)
        return value


class RedemptionSummary(CamelModel):
    coupon_code: str
    discount_amount: Amount
    original_amount: Amount
    final_amount: Amount
    savings: Amount
    plan_type: str
    billing_cycle: str
    redeemed_at: UTCDateTime


class RedemptionResponse(CamelModel):
    success: bool = True
    message: str = "Coupon redeemed successfully"
    redemption: RedemptionSummary
    subscription: SubscriptionResponse


class RedemptionHistoryItem(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_code: str
    discount_amount: Amount
    original_amount: Amount
    final_amount: Amount
    plan_type: str
    used_at: UTCDateTime


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class RedemptionHistoryResponse(CamelModel):
    success: bool = True
    history: list[RedemptionHistoryItem]
    pagination: Pagination


class GenerateCodeRequest(CamelModel):
    prefix: str | None = Field(default=None, max_length=20)
    suffix: str = Field(default="", max_length=20)
    length: int = Field(default=8, ge=4, le=32)
    include_numbers: bool = True
    include_letters: bool = True
    exclude_similar: bool = True

    @model_validator(mode="after")
    def _require_charset(self) -> "GenerateCodeRequest":
        if not (self.include_numbers or self.include_letters):
            raise ValueError("At least one of includeNumbers or includeLetters must be set")
        return self


class GenerateCodeResponse(CamelModel):
    code: str


class TopCoupon(CamelModel):
    code: str
    usage_count: int
    total_savings: Amount


class MonthlyUsage(CamelModel):
    month: str
    usage: int
    savings: Amount


class CouponStats(CamelModel):
    total: int
    active: int
    expired: int
    inactive: int
    total_usage: int
    total_savings: Amount
    average_discount: Amount
    top_coupons: list[TopCoupon]
    usage_by_month: list[MonthlyUsage]


class ReconcileResponse(CamelModel):
    corrected: int
