"""User interaction tracking API endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from personalization_service.api.v1.dependencies import get_recommendation_service
from personalization_service.schemas.preference import (
    PreferenceProfile,
    SurveyPreferences,
    TrackResult,
)
from personalization_service.services.cache import CachedRecommendationService

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class InteractionRequest(BaseModel):
    """Request model for tracking a user interaction.

    ``type`` is kept as a plain string so unknown types are reported in the
    response instead of failing validation.
    """

    user_id: str = Field(..., min_length=1, description="User identifier")
    type: str | None = Field(
        None, description="search, view, click, add_to_cart or purchase"
    )
    product_id: str | None = Field(None, description="Product identifier")
    category: str | None = Field(None, description="Product or search category")
    search_query: str | None = Field(None, description="Search query (for search interactions)")
    time_spent: float | None = Field(None, ge=0, description="Seconds spent on the product")
    timestamp: datetime | None = Field(None, description="When the interaction happened")

    def event_payload(self) -> dict:
        return self.model_dump(exclude={"user_id"})


class InteractionResponse(BaseModel):
    """Response after recording an interaction."""

    success: bool
    result: TrackResult
    recorded_at: str


class BatchInteractionRequest(BaseModel):
    """Request model for batch interaction tracking for one user."""

    user_id: str = Field(..., min_length=1)
    interactions: list[InteractionRequest] = Field(
        ...,
        max_length=100,
        description="List of interactions to record (max 100)",
    )


class BatchInteractionResponse(BaseModel):
    """Response after recording batch interactions."""

    success: bool
    recorded_count: int
    rejected_count: int
    results: list[TrackResult]
    recorded_at: str


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=InteractionResponse)
async def track_interaction(
    interaction: InteractionRequest,
    service: CachedRecommendationService = Depends(get_recommendation_service),
) -> InteractionResponse:
    """
    Track a single user interaction.

    **Interaction weights:**
    - `search`: 1
    - `view`: 2
    - `click`: 3
    - `add_to_cart`: 5
    - `purchase`: 10

    Unknown types are rejected with `success=false` and do not change the
    profile. A missing type is a 400 error.
    """
    result = await service.track_interaction(interaction.user_id, interaction.event_payload())

    return InteractionResponse(
        success=result.accepted,
        result=result,
        recorded_at=datetime.now(timezone.utc).isoformat(),
    )


@router.post("/batch", response_model=BatchInteractionResponse)
async def track_interactions_batch(
    batch: BatchInteractionRequest,
    service: CachedRecommendationService = Depends(get_recommendation_service),
) -> BatchInteractionResponse:
    """
    Track multiple interactions for one user in order.

    Each interaction is accepted or rejected on its own; rejected ones are
    counted in `rejected_count`.
    """
    results = await service.track_interactions(
        batch.user_id, [i.event_payload() for i in batch.interactions]
    )
    recorded = sum(1 for r in results if r.accepted)

    return BatchInteractionResponse(
        success=recorded == len(results),
        recorded_count=recorded,
        rejected_count=len(results) - recorded,
        results=results,
        recorded_at=datetime.now(timezone.utc).isoformat(),
    )


@router.put("/{user_id}/survey", response_model=PreferenceProfile)
async def record_survey(
    user_id: str,
    survey: SurveyPreferences,
    service: CachedRecommendationService = Depends(get_recommendation_service),
) -> PreferenceProfile:
    """Store onboarding survey answers used as baseline preferences."""
    return await service.record_survey(user_id, survey)
