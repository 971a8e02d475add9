"""FastAPI dependencies that assemble request-scoped services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from personalization_service.config import Settings, get_settings
from personalization_service.infrastructure.database.connection import get_session
from personalization_service.infrastructure.database.repositories import (
    GoalRepository,
    NotificationRepository,
    OrderRepository,
    PreferenceRepository,
    ProductCatalogReader,
)
from personalization_service.services.cache import (
    CachedGoalService,
    CachedRecommendationService,
    MemoCache,
    get_memo_cache,
)
from personalization_service.services.goal_service import GoalService
from personalization_service.services.interaction_tracker import InteractionTracker
from personalization_service.services.milestone_notifier import MilestoneNotifier
from personalization_service.services.notification_sender import get_notification_sender
from personalization_service.services.recommendation_engine import RecommendationEngine


def get_cache() -> MemoCache:
    return get_memo_cache()


async def get_recommendation_service(
    session: AsyncSession = Depends(get_session),
    cache: MemoCache = Depends(get_cache),
) -> CachedRecommendationService:
    preferences = PreferenceRepository(session)
    engine = RecommendationEngine(preferences, ProductCatalogReader(session))
    return CachedRecommendationService(engine, InteractionTracker(preferences), cache)


async def get_goal_service(
    session: AsyncSession = Depends(get_session),
    cache: MemoCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> CachedGoalService:
    notifier = MilestoneNotifier(NotificationRepository(session), get_notification_sender())
    service = GoalService(
        goals=GoalRepository(session),
        orders=OrderRepository(session),
        catalog=ProductCatalogReader(session),
        notifier=notifier,
        max_active_goals=settings.max_active_goals,
    )
    return CachedGoalService(service, cache)


async def get_notification_repository(
    session: AsyncSession = Depends(get_session),
) -> NotificationRepository:
    return NotificationRepository(session)
