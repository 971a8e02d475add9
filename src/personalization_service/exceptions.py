"""Engine exceptions.

Each exception carries the HTTP status code the API responds with, so route
handlers can let them propagate to the application-level handler.
"""

from typing import Any


class EngineError(Exception):
    """Base exception for personalization engine errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class InvalidInputError(EngineError):
    """Raised when a request payload is malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, details=details)


class GoalValidationError(EngineError):
    """Raised when a goal configuration fails validation.

    ``field`` names the offending field of the goal payload.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message=message, status_code=400, details={"field": field})
        self.field = field


class GoalNotFoundError(EngineError):
    """Raised when a goal does not exist or belongs to another user."""

    def __init__(self, goal_id: str):
        super().__init__(
            message=f"Sustainability goal {goal_id} not found",
            status_code=404,
            details={"goal_id": goal_id},
        )


class OrderNotFoundError(EngineError):
    """Raised when a paid order cannot be found for the user."""

    def __init__(self, order_id: str):
        super().__init__(
            message=f"Order {order_id} not found",
            status_code=404,
            details={"order_id": order_id},
        )
