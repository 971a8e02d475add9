"""Milestone notifications for goal progress."""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

from personalization_service.schemas.goal import SustainabilityGoal
from personalization_service.schemas.notification import (
    MilestoneResult,
    MilestoneType,
    Notification,
)
from personalization_service.services.notification_sender import NotificationSender
from shared.constants import MILESTONE_THRESHOLDS

logger = structlog.get_logger()

MILESTONE_TYPES = {
    25: MilestoneType.MILESTONE_25,
    50: MilestoneType.MILESTONE_50,
    75: MilestoneType.MILESTONE_75,
}


def milestone_text(milestone_type: MilestoneType, goal_title: str) -> tuple[str, str]:
    """Title and message for a milestone notification."""
    if milestone_type == MilestoneType.MILESTONE_25:
        return (
            "🌱 25% Progress Milestone!",
            f'Great start! You\'ve reached 25% progress on "{goal_title}". '
            f"Keep up the sustainable shopping!",
        )
    if milestone_type == MilestoneType.MILESTONE_50:
        return (
            "🌿 50% Progress Milestone!",
            f'Halfway there! You\'re halfway to achieving "{goal_title}". You\'re doing amazing!',
        )
    if milestone_type == MilestoneType.MILESTONE_75:
        return (
            "🌳 75% Progress Milestone!",
            f'Almost there! You\'re 75% of the way to "{goal_title}". Just a little more to go!',
        )
    return (
        "🎉 Goal Achieved!",
        f'Congratulations! You\'ve achieved your sustainability goal: "{goal_title}". '
        f"Amazing work on making sustainable choices!",
    )


class MilestoneNotifier:
    """Creates at most one notification per (user, goal, milestone)."""

    def __init__(self, notifications: Any, sender: NotificationSender | None = None):
        self.notifications = notifications
        self.sender = sender

    def crossed_milestones(
        self, goal: SustainabilityGoal, previous: float, new: float
    ) -> list[tuple[float, MilestoneType]]:
        """
        Thresholds crossed moving from ``previous`` to ``new``.

        A threshold counts when previous < threshold <= new. The goal's target
        is the "achieved" milestone; when it equals another threshold both are
        returned, the fixed one first.
        """
        thresholds = [(float(t), MILESTONE_TYPES[t]) for t in MILESTONE_THRESHOLDS]
        thresholds.append((float(goal.target_percentage), MilestoneType.ACHIEVED))
        thresholds.sort(key=lambda pair: pair[0])
        return [(t, kind) for t, kind in thresholds if previous < t <= new]

    async def notify(
        self, goal: SustainabilityGoal, previous: float, new: float
    ) -> MilestoneResult:
        """
        Create notifications for every milestone crossed by a progress update.

        Each notification is committed on its own. A failure is logged and
        reported in ``failed``; it never undoes the progress update.

        Args:
            goal: The goal whose progress changed
            previous: Percentage before the update
            new: Percentage after the update

        Returns:
            Created, skipped (already notified) and failed milestones
        """
        result = MilestoneResult()

        for threshold, milestone_type in self.crossed_milestones(goal, previous, new):
            try:
                if await self.notifications.exists(goal.user_id, goal.id, milestone_type):
                    result.skipped.append(milestone_type)
                    continue

                title, message = milestone_text(milestone_type, goal.title)
                notification = Notification(
                    id=str(uuid4()),
                    user_id=goal.user_id,
                    goal_id=goal.id,
                    milestone_type=milestone_type,
                    title=title,
                    message=message,
                    percentage_at_creation=round(new, 1),
                    created_at=datetime.now(timezone.utc),
                )
                created = await self.notifications.create_if_absent(notification)
            except Exception as e:
                await self.notifications.rollback()
                logger.error(
                    "Failed to create milestone notification",
                    user_id=goal.user_id,
                    goal_id=goal.id,
                    milestone_type=milestone_type.value,
                    error=str(e),
                )
                result.failed.append(milestone_type)
                continue

            if created is None:
                # Lost the race to a concurrent update
                result.skipped.append(milestone_type)
                continue

            result.created.append(created)
            logger.info(
                "Created milestone notification",
                user_id=goal.user_id,
                goal_id=goal.id,
                milestone_type=milestone_type.value,
                threshold=threshold,
                percentage=created.percentage_at_creation,
            )
            await self._deliver(created)

        return result

    async def _deliver(self, notification: Notification) -> None:
        if self.sender is None:
            return
        try:
            delivered = await self.sender.deliver(notification)
        except Exception as e:
            logger.warning(
                "Notification delivery raised", notification_id=notification.id, error=str(e)
            )
            return
        if not delivered:
            logger.warning("Notification delivery failed", notification_id=notification.id)
