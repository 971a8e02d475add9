"""Goal progress calculation.

Computes completion percentage, breakdowns, streaks and insights for a
sustainability goal from purchase history. ``calculate_progress`` does a full
recompute; ``apply_purchase`` folds a single purchase into existing progress.
Both share ``_accumulate`` so their counters always agree.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from personalization_service.schemas.goal import (
    CategoryBasedConfig,
    GoalConfig,
    GoalProgress,
    GoalType,
    GradeBasedConfig,
    Insight,
    MonthBreakdown,
    ProgressCounters,
    ProgressStatus,
    Purchase,
    PurchaseItem,
    ScoreBasedConfig,
    Streaks,
    SustainabilityGoal,
)
from personalization_service.schemas.product import Product
from shared.constants import ECO_FRIENDLY_GRADES, RECENT_STREAK_WINDOW

SCORE_BUCKETS = ((90, "90-100"), (80, "80-89"), (70, "70-79"), (60, "60-69"), (50, "50-59"))
ALMOST_THERE_POINTS = 10
STREAK_INSIGHT_MINIMUM = 3


@dataclass(frozen=True)
class ProgressOptions:
    """Calculation options.

    Quantity weighting counts each unit as an item. Price weighting fills the
    value counters; the completion percentage is always item-based.
    """

    weight_by_quantity: bool = True
    weight_by_price: bool = False
    timeframe: tuple[datetime, datetime] | None = None


DEFAULT_OPTIONS = ProgressOptions()


def _fmt(value: float) -> str:
    return f"{value:g}"


class GoalProgressCalculator:
    """Calculator for sustainability goal progress."""

    def __init__(self, options: ProgressOptions = DEFAULT_OPTIONS):
        self.options = options

    # ==========================================================================
    # Goal matching
    # ==========================================================================

    def meets_goal(self, config: GoalConfig, item: PurchaseItem | Product) -> bool:
        """Check whether a purchased item or catalog product meets a goal."""
        if isinstance(config, GradeBasedConfig):
            return item.sustainability_grade in config.target_grades
        if isinstance(config, ScoreBasedConfig):
            return (item.sustainability_score or 0) >= config.minimum_score
        if isinstance(config, CategoryBasedConfig):
            if item.category not in config.categories:
                return False
            # Without a grade list any item in the categories counts; an empty list matches nothing
            if config.target_grades is not None:
                return item.sustainability_grade in config.target_grades
            return True
        raise TypeError(f"Unsupported goal config: {type(config).__name__}")

    # ==========================================================================
    # Full and incremental calculation
    # ==========================================================================

    def calculate_progress(
        self,
        goal: SustainabilityGoal,
        purchases: Sequence[Purchase],
        options: ProgressOptions | None = None,
    ) -> GoalProgress:
        """
        Calculate progress over a complete purchase history.

        Args:
            goal: The goal being tracked
            purchases: Paid purchases, oldest first
            options: Calculation options; defaults to the calculator's

        Returns:
            Progress with counters, status, breakdown, streaks and insights
        """
        options = options or self.options
        progress = GoalProgress(target_percentage=goal.target_percentage)

        selected = self._in_timeframe(purchases, options)
        for purchase in selected:
            met = self._accumulate(progress, goal.goal_config, purchase, options)
            self._update_streaks(progress.streaks, met)

        self._derive(progress)
        progress.insights = self.generate_insights(progress)
        return progress

    def apply_purchase(
        self,
        progress: GoalProgress,
        purchase: Purchase,
        goal: SustainabilityGoal,
        options: ProgressOptions | None = None,
    ) -> GoalProgress:
        """Return ``progress`` with one more purchase folded in."""
        options = options or self.options
        updated = progress.model_copy(deep=True)
        updated.target_percentage = goal.target_percentage

        if self._in_timeframe([purchase], options):
            met = self._accumulate(updated, goal.goal_config, purchase, options)
            self._update_streaks(updated.streaks, met)

        self._derive(updated)
        updated.insights = self.generate_insights(updated)
        return updated

    def purchase_contribution(
        self,
        goal: SustainabilityGoal,
        purchase: Purchase,
        options: ProgressOptions | None = None,
    ) -> ProgressCounters:
        """Counter deltas a single purchase adds to a goal."""
        return self.calculate_progress(goal, [purchase], options).counters()

    def batch_calculate(
        self,
        goals: Iterable[SustainabilityGoal],
        purchases: Sequence[Purchase],
        options: ProgressOptions | None = None,
    ) -> dict[str, GoalProgress]:
        return {goal.id: self.calculate_progress(goal, purchases, options) for goal in goals}

    def summarize(self, counters: ProgressCounters, target_percentage: float) -> GoalProgress:
        """Derive percentage and status from stored counters."""
        progress = GoalProgress(**counters.model_dump(), target_percentage=target_percentage)
        self._derive(progress)
        return progress

    # ==========================================================================
    # Derived values
    # ==========================================================================

    def percentage(self, goal_met_items: float, total_items: float) -> float:
        if total_items <= 0:
            return 0.0
        return goal_met_items / total_items * 100

    def determine_status(
        self, current_percentage: float, target_percentage: float, total_items: int
    ) -> ProgressStatus:
        if total_items == 0:
            return ProgressStatus.NOT_STARTED
        if current_percentage >= target_percentage:
            return ProgressStatus.ACHIEVED
        if current_percentage >= target_percentage * 0.8:
            return ProgressStatus.ALMOST_THERE
        if current_percentage >= target_percentage * 0.5:
            return ProgressStatus.ON_TRACK
        if current_percentage >= target_percentage * 0.25:
            return ProgressStatus.GETTING_STARTED
        return ProgressStatus.NEEDS_IMPROVEMENT

    def score_range(self, score: float) -> str:
        for floor, label in SCORE_BUCKETS:
            if score >= floor:
                return label
        return "0-49"

    def generate_insights(self, progress: GoalProgress) -> list[Insight]:
        insights = []

        if progress.is_achieved:
            insights.append(
                Insight(
                    type="achievement",
                    message=(
                        f"🎉 Congratulations! You've achieved your goal of "
                        f"{_fmt(progress.target_percentage)}% sustainable purchases."
                    ),
                    priority="high",
                )
            )

        if progress.streaks.current >= STREAK_INSIGHT_MINIMUM:
            insights.append(
                Insight(
                    type="streak",
                    message=(
                        f"🔥 Great job! You're on a {progress.streaks.current}-purchase "
                        f"sustainability streak."
                    ),
                    priority="medium",
                )
            )

        if not progress.is_achieved:
            remaining = progress.target_percentage - progress.current_percentage
            if remaining <= ALMOST_THERE_POINTS:
                insights.append(
                    Insight(
                        type="almost_there",
                        message=(
                            f"⭐ You're almost there! Just {remaining:.1f}% more to reach your goal."
                        ),
                        priority="medium",
                    )
                )

        if progress.breakdown.by_category:
            category, count = max(progress.breakdown.by_category.items(), key=lambda kv: kv[1])
            insights.append(
                Insight(
                    type="category",
                    message=(
                        f"📊 Your most sustainable category is {category} with {count} "
                        f"goal-aligned purchases."
                    ),
                    priority="low",
                )
            )

        return insights

    # ==========================================================================
    # Display helpers
    # ==========================================================================

    def get_goal_progress_status(self, progress_percentage: float, target_percentage: float) -> str:
        """Short status label shown next to a goal."""
        if target_percentage <= 0:
            return "Achieved"
        ratio = progress_percentage / target_percentage
        if ratio >= 1:
            return "Achieved"
        if ratio >= 0.7:
            return "Almost There"
        if ratio >= 0.3:
            return "In Progress"
        return "Getting Started"

    def generate_goal_description(self, config: GoalConfig) -> str:
        percentage = _fmt(config.percentage)
        if isinstance(config, GradeBasedConfig):
            grades = ", ".join(config.target_grades)
            return f"Only buy products with {grades} sustainability rating ({percentage}% of purchases)"
        if isinstance(config, ScoreBasedConfig):
            return (
                f"Only buy products with {_fmt(config.minimum_score)}+ sustainability score "
                f"({percentage}% of purchases)"
            )
        if isinstance(config, CategoryBasedConfig):
            categories = ", ".join(config.categories)
            grades = ", ".join(config.target_grades or ECO_FRIENDLY_GRADES)
            return f"Only buy {grades} rated products in {categories} ({percentage}% of purchases)"
        raise TypeError(f"Unsupported goal config: {type(config).__name__}")

    def default_title(self, goal_type: GoalType) -> str:
        return {
            GoalType.GRADE_BASED: "Sustainable grade goal",
            GoalType.SCORE_BASED: "Sustainability score goal",
            GoalType.CATEGORY_BASED: "Category goal",
        }[goal_type]

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _in_timeframe(
        self, purchases: Iterable[Purchase], options: ProgressOptions
    ) -> list[Purchase]:
        if options.timeframe is None:
            return list(purchases)
        start, end = options.timeframe
        return [p for p in purchases if start <= p.created_at <= end]

    def _accumulate(
        self,
        progress: GoalProgress,
        config: GoalConfig,
        purchase: Purchase,
        options: ProgressOptions,
    ) -> bool:
        """Add one purchase to the counters and breakdowns; return whether it met the goal."""
        breakdown = progress.breakdown
        month = breakdown.by_month.setdefault(_month_key(purchase.created_at), MonthBreakdown())
        purchase_met = False
        # Values are added to the counters as per-purchase subtotals
        purchase_value = 0.0
        purchase_met_value = 0.0

        for item in purchase.items:
            quantity = (item.quantity or 1) if options.weight_by_quantity else 1
            price = item.price if options.weight_by_price else 0.0

            progress.total_items += quantity
            purchase_value += price * quantity
            month.total += quantity

            if not self.meets_goal(config, item):
                continue

            purchase_met = True
            progress.goal_met_items += quantity
            purchase_met_value += price * quantity
            month.goal_met += quantity

            category = item.category or "Unknown"
            grade = item.sustainability_grade or "Unknown"
            bucket = self.score_range(item.sustainability_score or 0)
            breakdown.by_category[category] = breakdown.by_category.get(category, 0) + quantity
            breakdown.by_grade[grade] = breakdown.by_grade.get(grade, 0) + quantity
            breakdown.by_score[bucket] = breakdown.by_score.get(bucket, 0) + quantity

        progress.total_value += purchase_value
        progress.goal_met_value += purchase_met_value
        progress.total_purchases += 1
        if purchase_met:
            progress.goal_met_purchases += 1
        return purchase_met

    def _update_streaks(self, streaks: Streaks, purchase_met: bool) -> None:
        if purchase_met:
            streaks.current += 1
        else:
            streaks.current = 0
        streaks.longest = max(streaks.longest, streaks.current)
        streaks.recent = [purchase_met, *streaks.recent][:RECENT_STREAK_WINDOW]

    def _derive(self, progress: GoalProgress) -> None:
        progress.current_percentage = self.percentage(progress.goal_met_items, progress.total_items)
        progress.is_achieved = progress.current_percentage >= progress.target_percentage
        progress.progress_status = self.determine_status(
            progress.current_percentage, progress.target_percentage, progress.total_items
        )


def _month_key(created_at: datetime) -> str:
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return created_at.strftime("%Y-%m")
