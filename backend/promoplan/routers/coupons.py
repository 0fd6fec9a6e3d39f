"""Coupon validation and redemption API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from promoplan.core.auth import CurrentUser, client_ip, get_current_user
from promoplan.core.database import get_db
from promoplan.core.exceptions import ConcurrencyConflictError, SubscriptionUpdateError
from promoplan.schemas.coupon import (
    CouponResponse,
    CouponValidationResponse,
    RedeemCouponRequest,
    RedemptionHistoryResponse,
    RedemptionResponse,
    RedemptionSummary,
    ValidateCouponRequest,
)
from promoplan.schemas.subscription import SubscriptionResponse
from promoplan.services.coupon_service import CouponService
from promoplan.services.plan_features import get_plan_price
from promoplan.services.redemption_service import RedemptionService

router = APIRouter()


@router.post(
    "/validate",
    response_model=CouponValidationResponse,
    summary="Validate coupon",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
    },
)
async def validate_coupon(
    data: ValidateCouponRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> CouponValidationResponse:
    """Check a code against the purchase without recording anything."""
    amount = data.amount
    if amount is None:
        amount = get_plan_price(data.plan_type, data.billing_cycle)  # type: ignore[arg-type]

    result = CouponService(db).validate(
        data.code,
        user_id=user.id,
        user_role=user.role,
        plan_type=data.plan_type.value,
        amount=amount,
    )
    return CouponValidationResponse(
        is_valid=result.is_valid,
        coupon=CouponResponse.model_validate(result.coupon) if result.is_valid else None,
        discount_amount=result.discount_amount,
        final_amount=result.final_amount,
        error=result.error,
        warnings=result.warnings,
    )


@router.post(
    "/redeem",
    response_model=RedemptionResponse,
    summary="Redeem coupon",
    responses={
        400: {"description": "Coupon cannot be redeemed"},
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
        503: {"description": "Concurrent update or subscription change failed; retry"},
    },
)
async def redeem_coupon(
    data: RedeemCouponRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> RedemptionResponse:
    """Redeem a coupon and apply it to the caller's subscription."""
    service = RedemptionService(db)
    try:
        result = service.redeem(
            data.code,
            plan_type=data.plan_type,
            billing_cycle=data.billing_cycle,
            user_id=user.id,
            user_email=user.email,
            user_role=user.role,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except (ConcurrencyConflictError, SubscriptionUpdateError) as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    if not result.success or result.usage is None or result.subscription is None:
        raise HTTPException(status_code=400, detail=result.error or "Coupon cannot be redeemed")

    usage = result.usage
    return RedemptionResponse(
        redemption=RedemptionSummary(
            coupon_code=usage.coupon_code,  # type: ignore[arg-type]
            discount_amount=usage.discount_amount,  # type: ignore[arg-type]
            original_amount=usage.original_amount,  # type: ignore[arg-type]
            final_amount=usage.final_amount,  # type: ignore[arg-type]
            savings=usage.discount_amount,  # type: ignore[arg-type]
            plan_type=data.plan_type.value,
            billing_cycle=data.billing_cycle.value,
            redeemed_at=usage.used_at,  # type: ignore[arg-type]
        ),
        subscription=SubscriptionResponse.model_validate(result.subscription),
    )


@router.get(
    "/redeem",
    response_model=RedemptionHistoryResponse,
    summary="Redemption history",
    responses={401: {"description": "Unauthorized"}},
)
async def redemption_history(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> RedemptionHistoryResponse:
    """The caller's own redemptions, newest first."""
    return RedemptionService(db).get_history(user.id, limit=limit, offset=offset)
