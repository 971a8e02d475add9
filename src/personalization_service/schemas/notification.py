"""Milestone notifications."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class MilestoneType(str, Enum):
    MILESTONE_25 = "25"
    MILESTONE_50 = "50"
    MILESTONE_75 = "75"
    ACHIEVED = "achieved"


class Notification(BaseModel):
    """A milestone notification. Unique per (user, goal, milestone)."""

    id: str
    user_id: str
    goal_id: str
    milestone_type: MilestoneType
    title: str
    message: str
    percentage_at_creation: float
    created_at: datetime
    is_read: bool = False


class MilestoneResult(BaseModel):
    """Notifications created by one milestone check."""

    created: list[Notification] = Field(default_factory=list)
    skipped: list[MilestoneType] = Field(default_factory=list)
    failed: list[MilestoneType] = Field(default_factory=list)


class SummaryTier(str, Enum):
    NO_ACTIVITY = "no_activity"
    EXCELLENT = "excellent"
    GOOD = "good"
    LOW = "low"


class WeeklyPerformance(BaseModel):
    """Paid-order activity over the last week."""

    has_activity: bool = False
    order_count: int = 0
    average_score: int = 0
    total_spent: float = 0.0
    top_grade: str | None = None
    grades: dict[str, int] = Field(default_factory=dict)


class WeeklySummary(BaseModel):
    user_id: str
    title: str
    message: str
    tier: SummaryTier
    performance: WeeklyPerformance
    goal_percentages: dict[str, float] = Field(default_factory=dict)
    created_at: datetime


class SweepUserResult(BaseModel):
    user_id: str
    success: bool
    goals_updated: int = 0
    notifications_created: int = 0
    # Goal id to milestones whose notification could not be stored
    failed_milestones: dict[str, list[MilestoneType]] = Field(default_factory=dict)
    tier: SummaryTier | None = None
    delivered: bool = False
    error: str | None = None


class SweepResult(BaseModel):
    """Outcome of one weekly sweep run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[SweepUserResult] = Field(default_factory=list)
