"""Recommendation API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from personalization_service.api.v1.dependencies import get_recommendation_service
from personalization_service.config import Settings, get_settings
from personalization_service.schemas.preference import BehaviorInsights
from personalization_service.schemas.product import RecommendationList
from personalization_service.services.cache import CachedRecommendationService

router = APIRouter()


@router.get("/{user_id}", response_model=RecommendationList)
async def get_recommendations(
    user_id: str,
    limit: Annotated[int | None, Query(ge=1, le=50)] = None,
    service: CachedRecommendationService = Depends(get_recommendation_service),
    settings: Settings = Depends(get_settings),
) -> RecommendationList:
    """
    Get personalized product recommendations for a user.

    **Algorithm:**
    1. Build a candidate filter from survey answers, overridden by
       interaction history once it is significant
    2. Fetch active candidates, falling back to the most sustainable
       products when none match
    3. Score each candidate (quality, survey and interaction alignment,
       recency decay) and return the top `limit`
    """
    limit = min(limit or settings.default_recommendation_limit, settings.max_recommendation_limit)
    return await service.get_recommendations(user_id, limit)


@router.get("/{user_id}/insights", response_model=BehaviorInsights)
async def get_behavior_insights(
    user_id: str,
    service: CachedRecommendationService = Depends(get_recommendation_service),
) -> BehaviorInsights:
    """Engagement score, top categories and recent searches for a user."""
    return await service.get_behavior_insights(user_id)
