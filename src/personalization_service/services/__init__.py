"""Business logic services."""

from personalization_service.services.cache import (
    CachedGoalService,
    CachedRecommendationService,
    MemoCache,
)
from personalization_service.services.goal_progress import GoalProgressCalculator
from personalization_service.services.goal_service import GoalService
from personalization_service.services.interaction_tracker import InteractionTracker
from personalization_service.services.milestone_notifier import MilestoneNotifier
from personalization_service.services.recommendation_engine import RecommendationEngine
from personalization_service.services.recommendation_scorer import RecommendationScorer
from personalization_service.services.weekly_sweep import WeeklySweepService

__all__ = [
    "CachedGoalService",
    "CachedRecommendationService",
    "GoalProgressCalculator",
    "GoalService",
    "InteractionTracker",
    "MemoCache",
    "MilestoneNotifier",
    "RecommendationEngine",
    "RecommendationScorer",
    "WeeklySweepService",
]
