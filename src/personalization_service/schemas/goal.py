"""Sustainability goals, purchases and calculated progress."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator

from personalization_service.schemas.notification import MilestoneType, Notification
from shared.constants import DEFAULT_TARGET_PERCENTAGE


class GoalType(str, Enum):
    GRADE_BASED = "grade-based"
    SCORE_BASED = "score-based"
    CATEGORY_BASED = "category-based"


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    NEEDS_IMPROVEMENT = "needs_improvement"
    GETTING_STARTED = "getting_started"
    ON_TRACK = "on_track"
    ALMOST_THERE = "almost_there"
    ACHIEVED = "achieved"


# =============================================================================
# Goal configuration variants
# =============================================================================


class GradeBasedConfig(BaseModel):
    """Buy products rated with one of ``target_grades``."""

    goal_type: Literal["grade-based"] = "grade-based"
    target_grades: list[str]
    percentage: float = DEFAULT_TARGET_PERCENTAGE


class ScoreBasedConfig(BaseModel):
    """Buy products scoring at least ``minimum_score``."""

    goal_type: Literal["score-based"] = "score-based"
    minimum_score: float
    percentage: float = DEFAULT_TARGET_PERCENTAGE


class CategoryBasedConfig(BaseModel):
    """Buy products in ``categories`` that are rated with one of ``target_grades``."""

    goal_type: Literal["category-based"] = "category-based"
    categories: list[str]
    target_grades: list[str] | None = None
    percentage: float = DEFAULT_TARGET_PERCENTAGE


GoalConfig = Annotated[
    Union[GradeBasedConfig, ScoreBasedConfig, CategoryBasedConfig],
    Field(discriminator="goal_type"),
]


# =============================================================================
# Purchases
# =============================================================================


class PurchaseItem(BaseModel):
    """Line item with product attributes captured at purchase time."""

    product_id: str
    name: str = ""
    category: str | None = None
    sustainability_grade: str | None = None
    sustainability_score: float = 0.0
    price: float = 0.0
    quantity: int = 1


class Purchase(BaseModel):
    """A paid order."""

    order_id: str
    created_at: datetime
    items: list[PurchaseItem] = Field(default_factory=list)
    total_amount: float = 0.0

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # Shop order timestamps may be stored without a zone; they are UTC.
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# =============================================================================
# Progress
# =============================================================================


class ProgressCounters(BaseModel):
    """Aggregate counters shared by full and incremental progress updates."""

    total_items: int = 0
    goal_met_items: int = 0
    total_value: float = 0.0
    goal_met_value: float = 0.0
    total_purchases: int = 0
    goal_met_purchases: int = 0


class GoalProgressRecord(ProgressCounters):
    """Progress as persisted on the goal."""

    current_percentage: float = 0.0
    last_updated: datetime | None = None


class MonthBreakdown(BaseModel):
    total: int = 0
    goal_met: int = 0


class Breakdown(BaseModel):
    by_category: dict[str, int] = Field(default_factory=dict)
    by_grade: dict[str, int] = Field(default_factory=dict)
    by_score: dict[str, int] = Field(default_factory=dict)
    by_month: dict[str, MonthBreakdown] = Field(default_factory=dict)


class Streaks(BaseModel):
    current: int = 0
    longest: int = 0
    recent: list[bool] = Field(default_factory=list)


class Insight(BaseModel):
    type: str
    message: str
    priority: Literal["high", "medium", "low"]


class GoalProgress(ProgressCounters):
    """Detailed progress calculated from purchase history."""

    current_percentage: float = 0.0
    target_percentage: float = DEFAULT_TARGET_PERCENTAGE
    is_achieved: bool = False
    progress_status: ProgressStatus = ProgressStatus.NOT_STARTED
    breakdown: Breakdown = Field(default_factory=Breakdown)
    streaks: Streaks = Field(default_factory=Streaks)
    insights: list[Insight] = Field(default_factory=list)

    def counters(self) -> ProgressCounters:
        return ProgressCounters(**self.model_dump(include=set(ProgressCounters.model_fields)))


# =============================================================================
# Goals
# =============================================================================


class SustainabilityGoal(BaseModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    goal_config: GoalConfig
    is_active: bool = True
    progress: GoalProgressRecord = Field(default_factory=GoalProgressRecord)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def goal_type(self) -> GoalType:
        return GoalType(self.goal_config.goal_type)

    @property
    def target_percentage(self) -> float:
        return self.goal_config.percentage

    @property
    def is_achieved(self) -> bool:
        return self.progress.current_percentage >= self.target_percentage


class GoalCreate(BaseModel):
    """Payload for creating a goal. Validated by the goal service."""

    goal_type: str | None = None
    goal_config: dict[str, Any] | None = None
    title: str | None = None
    description: str | None = None


class GoalUpdate(BaseModel):
    goal_type: str | None = None
    goal_config: dict[str, Any] | None = None
    title: str | None = None
    description: str | None = None
    is_active: bool | None = None


class GoalTypeCounts(BaseModel):
    grade_based: int = 0
    score_based: int = 0
    category_based: int = 0


class GoalStats(BaseModel):
    total_goals: int = 0
    active_goals: int = 0
    achieved_goals: int = 0
    average_progress: float = 0.0
    goal_types: GoalTypeCounts = Field(default_factory=GoalTypeCounts)


class GoalMatch(BaseModel):
    goal_id: str
    goal_title: str
    goal_type: GoalType


class ProductGoalAlignment(BaseModel):
    meets_any_goal: bool = False
    matching_goals: list[GoalMatch] = Field(default_factory=list)
    total_goals: int = 0
    alignment_percentage: float = 0.0


class FieldError(BaseModel):
    field: str
    message: str


class GoalConfigValidation(BaseModel):
    is_valid: bool
    errors: list[FieldError] = Field(default_factory=list)


class GoalProgressDetail(BaseModel):
    """Recomputed progress for one goal with any milestones it crossed."""

    goal: SustainabilityGoal
    progress: GoalProgress
    previous_percentage: float
    notifications: list[Notification] = Field(default_factory=list)
    failed_milestones: list[MilestoneType] = Field(default_factory=list)


class GoalUpdateSummary(BaseModel):
    goal_id: str
    title: str
    counted: bool
    previous_percentage: float
    new_percentage: float
    is_achieved: bool
    progress_status: ProgressStatus
    notifications: list[Notification] = Field(default_factory=list)
    failed_milestones: list[MilestoneType] = Field(default_factory=list)


class PurchaseTrackingResult(BaseModel):
    order_id: str
    updated_goals: list[GoalUpdateSummary] = Field(default_factory=list)
