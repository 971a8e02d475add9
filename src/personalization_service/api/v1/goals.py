"""Sustainability goal API endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from personalization_service.api.v1.dependencies import (
    get_goal_service,
    get_notification_repository,
)
from personalization_service.infrastructure.database.repositories import NotificationRepository
from personalization_service.schemas.goal import (
    GoalConfigValidation,
    GoalCreate,
    GoalProgressDetail,
    GoalStats,
    GoalUpdate,
    ProductGoalAlignment,
    PurchaseTrackingResult,
    SustainabilityGoal,
)
from personalization_service.schemas.notification import Notification
from personalization_service.services.cache import CachedGoalService

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class GoalListResponse(BaseModel):
    goals: list[SustainabilityGoal]
    count: int


class GoalConfigRequest(BaseModel):
    goal_type: str
    goal_config: dict[str, Any] = Field(default_factory=dict)


class GoalDescriptionResponse(BaseModel):
    description: str


class ProgressStatusResponse(BaseModel):
    status: str


class TrackPurchaseRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


# =============================================================================
# Goal configuration helpers (no user scope)
# =============================================================================


@router.post("/validate", response_model=GoalConfigValidation)
async def validate_goal_config(
    request: GoalConfigRequest,
    service: CachedGoalService = Depends(get_goal_service),
) -> GoalConfigValidation:
    """Validate a goal configuration without creating a goal."""
    return await service.validate_goal_config(request.goal_type, request.goal_config)


@router.post("/describe", response_model=GoalDescriptionResponse)
async def describe_goal(
    request: GoalConfigRequest,
    service: CachedGoalService = Depends(get_goal_service),
) -> GoalDescriptionResponse:
    """Human-readable description for a goal configuration."""
    description = await service.generate_goal_description(request.goal_type, request.goal_config)
    return GoalDescriptionResponse(description=description)


@router.get("/progress-status", response_model=ProgressStatusResponse)
async def get_progress_status(
    progress: Annotated[float, Query(ge=0)],
    target: Annotated[float, Query(gt=0, le=100)],
    service: CachedGoalService = Depends(get_goal_service),
) -> ProgressStatusResponse:
    """Short status label for a progress percentage against a target."""
    return ProgressStatusResponse(status=await service.get_goal_progress_status(progress, target))


# =============================================================================
# User goals
# =============================================================================


@router.get("/{user_id}", response_model=GoalListResponse)
async def get_user_goals(
    user_id: str,
    active_only: bool = True,
    service: CachedGoalService = Depends(get_goal_service),
) -> GoalListResponse:
    goals = await service.get_user_goals(user_id, active_only=active_only)
    return GoalListResponse(goals=goals, count=len(goals))


@router.post("/{user_id}", response_model=SustainabilityGoal, status_code=status.HTTP_201_CREATED)
async def create_goal(
    user_id: str,
    payload: GoalCreate,
    service: CachedGoalService = Depends(get_goal_service),
) -> SustainabilityGoal:
    """
    Create a sustainability goal.

    **Goal types:**
    - `grade-based`: `target_grades` (e.g. `["A", "B"]`)
    - `score-based`: `minimum_score` between 0 and 100
    - `category-based`: `categories` plus optional `target_grades`

    Every type accepts `percentage` (1-100, default 80). A user can have at
    most 5 active goals.
    """
    return await service.create_goal(user_id, payload)


@router.get("/{user_id}/stats", response_model=GoalStats)
async def get_goal_stats(
    user_id: str,
    service: CachedGoalService = Depends(get_goal_service),
) -> GoalStats:
    return await service.get_goal_stats(user_id)


@router.get("/{user_id}/notifications", response_model=list[Notification])
async def get_notifications(
    user_id: str,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> list[Notification]:
    """Milestone notifications for a user, newest first."""
    return await notifications.list_for_user(user_id, limit=limit)


@router.post("/{user_id}/track-purchase", response_model=PurchaseTrackingResult)
async def track_purchase(
    user_id: str,
    request: TrackPurchaseRequest,
    service: CachedGoalService = Depends(get_goal_service),
) -> PurchaseTrackingResult:
    """
    Count a paid order towards every active goal of the user.

    Tracking the same order twice does not change progress again.
    """
    return await service.track_purchase(user_id, request.order_id)


@router.get("/{user_id}/products/{product_id}/alignment", response_model=ProductGoalAlignment)
async def check_product_meets_goals(
    user_id: str,
    product_id: str,
    service: CachedGoalService = Depends(get_goal_service),
) -> ProductGoalAlignment:
    """Which of the user's active goals a product would count towards."""
    return await service.check_product_meets_goals(user_id, product_id)


@router.get("/{user_id}/{goal_id}", response_model=SustainabilityGoal)
async def get_goal(
    user_id: str,
    goal_id: str,
    service: CachedGoalService = Depends(get_goal_service),
) -> SustainabilityGoal:
    return await service.get_goal(user_id, goal_id)


@router.put("/{user_id}/{goal_id}", response_model=SustainabilityGoal)
async def update_goal(
    user_id: str,
    goal_id: str,
    payload: GoalUpdate,
    service: CachedGoalService = Depends(get_goal_service),
) -> SustainabilityGoal:
    """Update a goal. A partial `goal_config` is merged into the current one."""
    return await service.update_goal(user_id, goal_id, payload)


@router.delete("/{user_id}/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal(
    user_id: str,
    goal_id: str,
    service: CachedGoalService = Depends(get_goal_service),
) -> Response:
    await service.delete_goal(user_id, goal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/{goal_id}/progress", response_model=GoalProgressDetail)
async def get_goal_progress(
    user_id: str,
    goal_id: str,
    service: CachedGoalService = Depends(get_goal_service),
) -> GoalProgressDetail:
    """
    Recalculate a goal's progress from the user's paid orders.

    Returns counters, status, breakdowns, streaks, insights and any
    milestone notifications created by this recalculation.
    """
    return await service.get_goal_progress(user_id, goal_id)
