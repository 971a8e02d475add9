"""Weekly goal sweep task."""

import asyncio

import structlog
from celery import shared_task

from personalization_service.config import get_settings
from personalization_service.infrastructure.database.connection import (
    dispose_engine,
    get_db_session,
)
from personalization_service.infrastructure.database.repositories import (
    GoalRepository,
    NotificationRepository,
    OrderRepository,
)
from personalization_service.logging_config import configure_logging
from personalization_service.services.milestone_notifier import MilestoneNotifier
from personalization_service.services.notification_sender import get_notification_sender
from personalization_service.services.weekly_sweep import WeeklySweepService

logger = structlog.get_logger()


async def _run() -> dict:
    settings = get_settings()
    sender = get_notification_sender()
    try:
        async with get_db_session() as session:
            service = WeeklySweepService(
                goals=GoalRepository(session),
                orders=OrderRepository(session),
                notifier=MilestoneNotifier(NotificationRepository(session), sender),
                sender=sender,
                batch_size=settings.sweep_batch_size,
                batch_delay_seconds=settings.sweep_batch_delay_seconds,
            )
            result = await service.run_weekly_sweep()
    finally:
        # Pooled connections are bound to this event loop
        await dispose_engine()
    return result.model_dump(mode="json")


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def run_weekly_sweep(self) -> dict:
    """
    Recompute every active goal and send weekly summaries.

    This task runs weekly (see the beat schedule) to:
    1. Find users with at least one active goal
    2. Recompute each goal from the user's paid orders
    3. Create milestone notifications that were crossed
    4. Deliver a weekly performance summary per user

    Returns:
        dict: Sweep totals and per-user outcomes
    """
    configure_logging()
    logger.info("Starting weekly goal sweep task")

    try:
        result = asyncio.run(_run())
    except Exception as e:
        logger.error("Weekly goal sweep task failed", error=str(e))
        raise self.retry(exc=e)

    logger.info(
        "Weekly goal sweep task finished",
        total=result["total"],
        succeeded=result["succeeded"],
        failed=result["failed"],
    )
    return result
