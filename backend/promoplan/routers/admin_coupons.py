"""Admin coupon management API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from promoplan.core.auth import CurrentUser, require_admin
from promoplan.core.database import get_db
from promoplan.core.exceptions import CouponValidationError, DuplicateCouponError, NotFoundError
from promoplan.models.coupon import Coupon, CouponStatus
from promoplan.models.coupon_usage import CouponUsage
from promoplan.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponStats,
    CouponUpdate,
    CouponUsageResponse,
    GenerateCodeRequest,
    GenerateCodeResponse,
    ReconcileResponse,
)
from promoplan.services.coupon_service import CouponService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get(
    "/",
    response_model=list[CouponResponse],
    summary="List coupons",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def list_coupons(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: CouponStatus | None = None,
    db: Session = Depends(get_db),
) -> list[Coupon]:
    """List coupons, optionally filtered by derived status."""
    service = CouponService(db)
    response.headers["X-Total-Count"] = str(service.count(status=status))
    return service.list_coupons(skip=skip, limit=limit, status=status)


@router.post(
    "/",
    response_model=CouponResponse,
    status_code=201,
    summary="Create coupon",
    responses={
        400: {"description": "Coupon rules violated"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_coupon(
    data: CouponCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_admin),
) -> Coupon:
    try:
        return CouponService(db).create(data, created_by=user.email or user.id)
    except DuplicateCouponError as exc:
        raise HTTPException(status_code=409, detail=exc.errors[0]) from exc
    except CouponValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors) from exc


@router.get(
    "/stats",
    response_model=CouponStats,
    summary="Coupon statistics",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def coupon_stats(db: Session = Depends(get_db)) -> CouponStats:
    return CouponService(db).get_stats()


@router.get(
    "/usage",
    response_model=list[CouponUsageResponse],
    summary="Coupon usage ledger",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def coupon_usage(
    coupon_id: UUID | None = Query(default=None, alias="couponId"),
    user_id: str | None = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
) -> list[CouponUsage]:
    """Ledger rows for a coupon and/or user, newest first."""
    return CouponService(db).get_usage_history(coupon_id=coupon_id, user_id=user_id)


@router.post(
    "/generate-code",
    response_model=GenerateCodeResponse,
    summary="Generate an unused coupon code",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def generate_code(
    data: GenerateCodeRequest | None = None,
    db: Session = Depends(get_db),
) -> GenerateCodeResponse:
    options = data or GenerateCodeRequest()
    code = CouponService(db).generate_code(
        prefix=options.prefix,
        suffix=options.suffix,
        length=options.length,
        include_numbers=options.include_numbers,
        include_letters=options.include_letters,
        exclude_similar=options.exclude_similar,
    )
    return GenerateCodeResponse(code=code)


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Rebuild usage counters from the ledger",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def reconcile_usage(db: Session = Depends(get_db)) -> ReconcileResponse:
    return ReconcileResponse(corrected=CouponService(db).reconcile_used_counts())


@router.get(
    "/{coupon_id}",
    response_model=CouponResponse,
    summary="Get coupon",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Coupon not found"},
    },
)
async def get_coupon(coupon_id: UUID, db: Session = Depends(get_db)) -> Coupon:
    try:
        return CouponService(db).get_by_id(coupon_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Coupon not found") from exc


@router.put(
    "/{coupon_id}",
    response_model=CouponResponse,
    summary="Update coupon",
    responses={
        400: {"description": "Coupon rules violated"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Coupon not found"},
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def update_coupon(
    coupon_id: UUID,
    data: CouponUpdate,
    db: Session = Depends(get_db),
) -> Coupon:
    try:
        return CouponService(db).update(coupon_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Coupon not found") from exc
    except DuplicateCouponError as exc:
        raise HTTPException(status_code=409, detail=exc.errors[0]) from exc
    except CouponValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors) from exc


@router.delete(
    "/{coupon_id}",
    status_code=204,
    summary="Delete coupon",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Coupon not found"},
    },
)
async def delete_coupon(coupon_id: UUID, db: Session = Depends(get_db)) -> None:
    """Hard-delete a coupon; its usage history is kept."""
    try:
        CouponService(db).delete(coupon_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Coupon not found") from exc


@router.post(
    "/{coupon_id}/toggle",
    response_model=CouponResponse,
    summary="Toggle coupon active flag",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Coupon not found"},
    },
)
async def toggle_coupon(coupon_id: UUID, db: Session = Depends(get_db)) -> Coupon:
    try:
        return CouponService(db).toggle_status(coupon_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Coupon not found") from exc
