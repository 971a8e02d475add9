"""Celery application for the notification worker."""

from celery import Celery
from celery.schedules import crontab

from personalization_service.config import get_settings

settings = get_settings()

# Create Celery app
app = Celery(
    "notification_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "notification_worker.tasks.weekly_summary",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1500,  # 25 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="notifications",
    task_routes={
        "notification_worker.tasks.*": {"queue": "notifications"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Recompute goals and send weekly summaries once a week
    "weekly-goal-sweep": {
        "task": "notification_worker.tasks.weekly_summary.run_weekly_sweep",
        "schedule": crontab(
            hour=settings.weekly_sweep_hour,
            minute=0,
            day_of_week=settings.weekly_sweep_day,
        ),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "notifications"])


if __name__ == "__main__":
    run()
