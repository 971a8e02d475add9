"""Notification delivery.

Persisted notification records are the source of truth; delivery is best
effort. Senders return False instead of raising so a transport problem never
undoes progress or notification writes.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from personalization_service.config import get_settings
from personalization_service.schemas.notification import Notification, WeeklySummary

logger = structlog.get_logger()


class NotificationSender(ABC):
    """Transport for milestone notifications and weekly summaries."""

    @abstractmethod
    async def deliver(self, notification: Notification) -> bool:
        """Deliver a milestone notification; returns False on failure."""

    @abstractmethod
    async def deliver_weekly_summary(self, summary: WeeklySummary) -> bool:
        """Deliver a weekly summary; returns False on failure."""


class MockNotificationSender(NotificationSender):
    """
    Mock notification transport for testing and development.

    Stores delivered notifications to the filesystem for inspection instead
    of pushing them to devices.
    """

    def __init__(self, storage_path: str | None = None):
        """
        Initialize the mock sender.

        Args:
            storage_path: Directory to store delivered notifications.
                         Defaults to the configured notification_storage_path
        """
        self.storage_path = Path(storage_path or get_settings().notification_storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.delivered: list[dict[str, Any]] = []

    async def deliver(self, notification: Notification) -> bool:
        return self._store(
            "milestone",
            notification.id,
            notification.user_id,
            notification.model_dump(mode="json"),
        )

    async def deliver_weekly_summary(self, summary: WeeklySummary) -> bool:
        record_id = f"weekly_{summary.user_id}_{summary.created_at.strftime('%Y%m%d')}"
        return self._store("weekly_summary", record_id, summary.user_id, summary.model_dump(mode="json"))

    def _store(self, kind: str, record_id: str, user_id: str, payload: dict[str, Any]) -> bool:
        timestamp = datetime.now(timezone.utc)
        record = {
            "kind": kind,
            "record_id": record_id,
            "user_id": user_id,
            "payload": payload,
            "delivered_at": timestamp.isoformat(),
        }

        try:
            filepath = self.storage_path / f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{record_id}.json"
            with open(filepath, "w") as f:
                json.dump(record, f, indent=2)
        except OSError as e:
            logger.error("Mock notification delivery failed", record_id=record_id, error=str(e))
            return False

        self.delivered.append(record)
        logger.info("Mock notification delivered", kind=kind, record_id=record_id, user_id=user_id)
        return True

    def get_delivered(self, user_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """
        Retrieve recently delivered records.

        Args:
            user_id: Optional filter by recipient
            limit: Maximum number of records to return
        """
        records = self.delivered
        if user_id:
            records = [r for r in records if r["user_id"] == user_id]
        return records[-limit:]

    def clear(self) -> int:
        """Delete stored records; returns how many files were removed."""
        count = 0
        for filepath in self.storage_path.glob("*.json"):
            filepath.unlink()
            count += 1
        self.delivered.clear()
        logger.info("Cleared mock notifications", count=count)
        return count


# Singleton instance for the application
_sender: NotificationSender | None = None


def get_notification_sender() -> NotificationSender:
    """Get the singleton notification sender."""
    global _sender
    if _sender is None:
        _sender = MockNotificationSender()
    return _sender
