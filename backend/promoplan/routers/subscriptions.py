"""Plan query and subscription administration API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from promoplan.core.auth import CurrentUser, get_current_user, require_admin
from promoplan.core.database import get_db
from promoplan.core.exceptions import ConcurrencyConflictError, NotFoundError
from promoplan.models.subscription import PlanType, SubscriptionStatus, UserSubscription
from promoplan.schemas.subscription import (
    CleanupResponse,
    FeatureAccessResponse,
    PlanStatusResponse,
    SubscriptionResponse,
    SubscriptionStats,
)
from promoplan.services.plan_features import get_plan_features
from promoplan.services.subscription_lifecycle import SubscriptionLifecycleService

router = APIRouter()
admin_router = APIRouter(dependencies=[Depends(require_admin)])


@router.get(
    "/",
    response_model=PlanStatusResponse,
    summary="Current plan",
    responses={
        401: {"description": "Unauthorized"},
        503: {"description": "Concurrent subscription change; retry"},
    },
)
async def current_plan(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> PlanStatusResponse:
    """The caller's active subscription and what it unlocks."""
    service = SubscriptionLifecycleService(db)
    try:
        subscription = service.get_or_create_active(user.id)
    except ConcurrencyConflictError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return PlanStatusResponse(
        plan_type=str(subscription.plan_type),
        features=get_plan_features(str(subscription.plan_type)),
        subscription=SubscriptionResponse.model_validate(subscription),
    )


@router.get(
    "/features",
    response_model=PlanStatusResponse,
    summary="Plan features",
    responses={401: {"description": "Unauthorized"}},
)
async def plan_features(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> PlanStatusResponse:
    service = SubscriptionLifecycleService(db)
    plan_type = service.get_plan_type(user.id)
    return PlanStatusResponse(plan_type=plan_type, features=get_plan_features(plan_type))


@router.get(
    "/features/{feature}",
    response_model=FeatureAccessResponse,
    summary="Check feature access",
    responses={401: {"description": "Unauthorized"}},
)
async def feature_access(
    feature: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> FeatureAccessResponse:
    """Accepts camelCase or snake_case names; unknown features are denied."""
    has_access = SubscriptionLifecycleService(db).has_access(user.id, feature)
    return FeatureAccessResponse(feature=feature, has_access=has_access)


@admin_router.get(
    "/",
    response_model=list[SubscriptionResponse],
    summary="List subscriptions",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def list_subscriptions(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: SubscriptionStatus | None = None,
    plan_type: PlanType | None = Query(default=None, alias="planType"),
    user_id: str | None = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
) -> list[UserSubscription]:
    service = SubscriptionLifecycleService(db)
    if user_id:
        subscriptions = service.get_user_subscriptions(user_id)
        response.headers["X-Total-Count"] = str(len(subscriptions))
        return subscriptions[skip : skip + limit]

    response.headers["X-Total-Count"] = str(service.count(status=status, plan_type=plan_type))
    return service.list_subscriptions(skip=skip, limit=limit, status=status, plan_type=plan_type)


@admin_router.get(
    "/stats",
    response_model=SubscriptionStats,
    summary="Subscription statistics",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def subscription_stats(db: Session = Depends(get_db)) -> SubscriptionStats:
    return SubscriptionLifecycleService(db).get_stats()


@admin_router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Expire overdue subscriptions",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Forbidden"}},
)
async def cleanup_subscriptions(db: Session = Depends(get_db)) -> CleanupResponse:
    return CleanupResponse(expired=SubscriptionLifecycleService(db).cleanup())


@admin_router.post(
    "/{subscription_id}/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel subscription",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Subscription not found"},
    },
)
async def cancel_subscription(
    subscription_id: UUID, db: Session = Depends(get_db)
) -> UserSubscription:
    try:
        return SubscriptionLifecycleService(db).cancel(subscription_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Subscription not found") from exc


@admin_router.post(
    "/{subscription_id}/expire",
    response_model=SubscriptionResponse,
    summary="Expire subscription",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Subscription not found"},
    },
)
async def expire_subscription(
    subscription_id: UUID, db: Session = Depends(get_db)
) -> UserSubscription:
    try:
        return SubscriptionLifecycleService(db).expire(subscription_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Subscription not found") from exc
