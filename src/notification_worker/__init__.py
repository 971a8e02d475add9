"""Celery worker for scheduled notification jobs."""
