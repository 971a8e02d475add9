"""Weekly goal sweep.

Recomputes every active goal from scratch, notifies crossed milestones and
hands each user a weekly performance summary. Progress is written as
absolute values, so running the sweep twice only reconfirms it.
"""

import asyncio
import math
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from personalization_service.schemas.goal import Purchase
from personalization_service.schemas.notification import (
    MilestoneType,
    SummaryTier,
    SweepResult,
    SweepUserResult,
    WeeklyPerformance,
    WeeklySummary,
)
from personalization_service.services.goal_progress import GoalProgressCalculator
from personalization_service.services.milestone_notifier import MilestoneNotifier
from personalization_service.services.notification_sender import NotificationSender
from shared.constants import WEEKLY_WINDOW_DAYS

logger = structlog.get_logger()

EXCELLENT_SCORE = 80
GOOD_SCORE = 50


def weekly_performance(purchases: Sequence[Purchase]) -> WeeklyPerformance:
    """Order count, average item score and best grade over a week of purchases."""
    if not purchases:
        return WeeklyPerformance()

    total_score = 0.0
    scored_items = 0
    grades: dict[str, int] = {}
    for purchase in purchases:
        for item in purchase.items:
            if item.sustainability_score:
                total_score += item.sustainability_score
                scored_items += 1
            if item.sustainability_grade:
                grades[item.sustainability_grade] = grades.get(item.sustainability_grade, 0) + 1

    average = total_score / scored_items if scored_items else 0.0
    return WeeklyPerformance(
        has_activity=True,
        order_count=len(purchases),
        average_score=math.floor(average + 0.5),
        total_spent=sum(p.total_amount for p in purchases),
        top_grade=min(grades) if grades else None,
        grades=grades,
    )


def summary_message(performance: WeeklyPerformance) -> tuple[str, str, SummaryTier]:
    """Title, message and tier for a weekly summary."""
    if not performance.has_activity:
        return (
            "🌱 Weekly Eco-Lens Summary",
            "We missed you this week. Check out our sustainable products and start your eco-journey!",
            SummaryTier.NO_ACTIVITY,
        )

    count = performance.order_count
    noun = "purchase" if count == 1 else "purchases"
    score = performance.average_score

    if score >= EXCELLENT_SCORE:
        return (
            "🌟 Outstanding Eco-Performance!",
            f"Amazing work! You made {count} sustainable {noun} with an {score}% eco-score. "
            f"You're a sustainability champion!",
            SummaryTier.EXCELLENT,
        )
    if score >= GOOD_SCORE:
        return (
            "💚 Great Eco-Progress!",
            f"Well done! {count} {noun} this week with a {score}% eco-score. Keep up the good work!",
            SummaryTier.GOOD,
        )
    return (
        "🌿 Room for Improvement",
        f"You made {count} {noun} with a {score}% eco-score. "
        f"Let's find more sustainable options together!",
        SummaryTier.LOW,
    )


class WeeklySweepService:
    """Batch job run once a week by the notification worker."""

    def __init__(
        self,
        goals: Any,
        orders: Any,
        notifier: MilestoneNotifier,
        sender: NotificationSender,
        calculator: GoalProgressCalculator | None = None,
        batch_size: int = 10,
        batch_delay_seconds: float = 1.0,
    ):
        self.goals = goals
        self.orders = orders
        self.notifier = notifier
        self.sender = sender
        self.calculator = calculator or GoalProgressCalculator()
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds

    async def run_weekly_sweep(self, now: datetime | None = None) -> SweepResult:
        """
        Process every user with active goals.

        Users are handled in batches with a pause between batches. A failure
        for one user is recorded and the sweep moves on.

        Args:
            now: End of the weekly window; defaults to the current time

        Returns:
            Per-user outcomes and totals
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        user_ids = await self.goals.list_user_ids_with_active_goals()
        result = SweepResult(total=len(user_ids))

        logger.info("Starting weekly sweep", users=len(user_ids), batch_size=self.batch_size)

        for start in range(0, len(user_ids), self.batch_size):
            for user_id in user_ids[start : start + self.batch_size]:
                try:
                    user_result = await self.process_user(user_id, now)
                except Exception as e:
                    await self.goals.rollback()
                    logger.error("Weekly sweep failed for user", user_id=user_id, error=str(e))
                    user_result = SweepUserResult(user_id=user_id, success=False, error=str(e))

                result.results.append(user_result)
                if user_result.success:
                    result.succeeded += 1
                else:
                    result.failed += 1

            if start + self.batch_size < len(user_ids):
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(
            "Weekly sweep completed",
            total=result.total,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    async def process_user(self, user_id: str, now: datetime) -> SweepUserResult:
        goals = await self.goals.list_for_user(user_id, active_only=True)
        purchases = await self.orders.get_paid_purchases(user_id, until=now)

        goal_percentages: dict[str, float] = {}
        notifications_created = 0
        failed_milestones: dict[str, list[MilestoneType]] = {}
        for goal in goals:
            progress = self.calculator.calculate_progress(goal, purchases)
            previous = await self.goals.replace_progress(
                goal.id,
                progress.counters(),
                progress.current_percentage,
                [p.order_id for p in purchases],
                now,
            )
            await self.goals.commit()
            goal_percentages[goal.id] = progress.current_percentage

            milestones = await self.notifier.notify(goal, previous, progress.current_percentage)
            notifications_created += len(milestones.created)
            if milestones.failed:
                failed_milestones[goal.id] = milestones.failed

        week_start = now - timedelta(days=WEEKLY_WINDOW_DAYS)
        performance = weekly_performance([p for p in purchases if p.created_at >= week_start])
        title, message, tier = summary_message(performance)
        summary = WeeklySummary(
            user_id=user_id,
            title=title,
            message=message,
            tier=tier,
            performance=performance,
            goal_percentages=goal_percentages,
            created_at=now,
        )

        try:
            delivered = await self.sender.deliver_weekly_summary(summary)
        except Exception as e:
            logger.warning("Weekly summary delivery raised", user_id=user_id, error=str(e))
            delivered = False

        logger.info(
            "Processed weekly sweep user",
            user_id=user_id,
            goals=len(goals),
            notifications=notifications_created,
            failed_milestones=sum(len(m) for m in failed_milestones.values()),
            tier=tier.value,
            delivered=delivered,
        )
        return SweepUserResult(
            user_id=user_id,
            success=True,
            goals_updated=len(goals),
            notifications_created=notifications_created,
            failed_milestones=failed_milestones,
            tier=tier,
            delivered=delivered,
        )
