from typing import Literal

from promoplan.schemas.shared import CamelModel

UNLIMITED = "unlimited"

Quota = int | Literal["unlimited"]


class PlanFeatures(CamelModel):
    ai_queries_per_day: Quota
    question_bank_access: Quota
    advanced_analytics: bool
    interactive_maps: bool
    current_affairs_hub: bool
    goal_tracking: bool
    priority_support: bool
    offline_access: bool
    progress_export: bool
    custom_study_plans: bool
    mock_test_series: bool
    performance_predictions: bool
