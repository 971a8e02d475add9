"""Domain models shared by services, repositories and the API."""

from personalization_service.schemas.goal import (
    CategoryBasedConfig,
    GoalConfig,
    GoalProgress,
    GoalProgressRecord,
    GoalType,
    GradeBasedConfig,
    ProgressCounters,
    ProgressStatus,
    Purchase,
    PurchaseItem,
    ScoreBasedConfig,
    SustainabilityGoal,
)
from personalization_service.schemas.notification import (
    MilestoneResult,
    MilestoneType,
    Notification,
)
from personalization_service.schemas.preference import (
    InteractionEvent,
    InteractionType,
    PreferenceProfile,
    SurveyPreferences,
)
from personalization_service.schemas.product import Product, ProductFilter, ScoredProduct

__all__ = [
    "CategoryBasedConfig",
    "GoalConfig",
    "GoalProgress",
    "GoalProgressRecord",
    "GoalType",
    "GradeBasedConfig",
    "InteractionEvent",
    "InteractionType",
    "MilestoneResult",
    "MilestoneType",
    "Notification",
    "PreferenceProfile",
    "Product",
    "ProductFilter",
    "ProgressCounters",
    "ProgressStatus",
    "Purchase",
    "PurchaseItem",
    "ScoreBasedConfig",
    "ScoredProduct",
    "SurveyPreferences",
    "SustainabilityGoal",
]
