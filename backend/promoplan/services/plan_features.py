"""Static plan capability and pricing tables."""

from decimal import Decimal

from pydantic.alias_generators import to_snake

from promoplan.models.subscription import BillingCycle, PlanType
from promoplan.schemas.plan import UNLIMITED, PlanFeatures, Quota

DEFAULT_PLAN_FEATURES: dict[PlanType, PlanFeatures] = {
    PlanType.FREE: PlanFeatures(
        ai_queries_per_day=10,
        question_bank_access=50,
        advanced_analytics=False,
        interactive_maps=False,
        current_affairs_hub=False,
        goal_tracking=False,
        priority_support=False,
        offline_access=False,
        progress_export=False,
        custom_study_plans=False,
        mock_test_series=False,
        performance_predictions=False,
    ),
    PlanType.TRIAL: PlanFeatures(
        ai_queries_per_day=UNLIMITED,
        question_bank_access=UNLIMITED,
        advanced_analytics=True,
        interactive_maps=True,
        current_affairs_hub=True,
        goal_tracking=True,
        priority_support=False,
        offline_access=True,
        progress_export=True,
        custom_study_plans=True,
        mock_test_series=True,
        performance_predictions=True,
    ),
    PlanType.PRO: PlanFeatures(
        ai_queries_per_day=UNLIMITED,
        question_bank_access=UNLIMITED,
        advanced_analytics=True,
        interactive_maps=True,
        current_affairs_hub=True,
        goal_tracking=True,
        priority_support=True,
        offline_access=True,
        progress_export=True,
        custom_study_plans=True,
        mock_test_series=True,
        performance_predictions=True,
    ),
}

PLAN_PRICING: dict[PlanType, dict[BillingCycle, Decimal]] = {
    PlanType.FREE: {BillingCycle.MONTHLY: Decimal("0"), BillingCycle.YEARLY: Decimal("0")},
    PlanType.TRIAL: {BillingCycle.MONTHLY: Decimal("0"), BillingCycle.YEARLY: Decimal("0")},
    PlanType.PRO: {BillingCycle.MONTHLY: Decimal("200"), BillingCycle.YEARLY: Decimal("2000")},
}


def get_plan_features(plan_type: PlanType | str | None) -> PlanFeatures:
    """Features for a plan; anything unknown or missing resolves to free."""
    try:
        plan = PlanType(plan_type) if plan_type else PlanType.FREE
    except ValueError:
        plan = PlanType.FREE
    return DEFAULT_PLAN_FEATURES[plan].model_copy()


def get_plan_price(plan_type: PlanType | str, billing_cycle: BillingCycle | str) -> Decimal:
    return PLAN_PRICING[PlanType(plan_type)][BillingCycle(billing_cycle)]


def resolve_feature_name(feature: str) -> str | None:
    """Map ``advancedAnalytics`` or ``advanced_analytics`` to the field name."""
    name = to_snake(feature)
    return name if name in PlanFeatures.model_fields else None


def grants_access(value: bool | Quota) -> bool:
    if isinstance(value, bool):
        return value
    if value == UNLIMITED:
        return True
    return value > 0
