"""Recommendation engine service.

Loads the user's preference profile, selects candidate products from the
catalog and ranks them with ``RecommendationScorer``.
"""

from datetime import datetime, timezone
from typing import Any

import structlog

from personalization_service.schemas.preference import (
    BehaviorInsights,
    CategoryCount,
    PreferenceProfile,
)
from personalization_service.schemas.product import RecommendationList, ScoredProduct
from personalization_service.services.recommendation_scorer import RecommendationScorer
from shared.constants import DEFAULT_RECOMMENDATION_LIMIT

logger = structlog.get_logger()

FALLBACK_SORT = (("sustainability_score", "desc"), ("rating", "desc"))
CANDIDATE_MULTIPLIER = 2
INSIGHT_TOP_CATEGORIES = 5
INSIGHT_RECENT_SEARCHES = 10


class RecommendationEngine:
    """Engine for generating product recommendations."""

    def __init__(
        self,
        preferences: Any,
        catalog: Any,
        scorer: RecommendationScorer | None = None,
    ):
        self.preferences = preferences
        self.catalog = catalog
        self.scorer = scorer or RecommendationScorer()

    async def get_recommendations(
        self, user_id: str, limit: int = DEFAULT_RECOMMENDATION_LIMIT
    ) -> RecommendationList:
        """
        Get personalized recommendations for a user.

        Users without a profile get the fallback list (most sustainable,
        then best rated). Otherwise candidates are selected from survey
        answers and interaction history, falling back when the filtered
        candidate set is empty.

        Args:
            user_id: The user's ID
            limit: Maximum number of recommendations

        Returns:
            Ranked recommendations with the strategy used
        """
        now = datetime.now(timezone.utc)
        profile = await self.preferences.get(user_id)

        if profile is None:
            recommendations = await self._fallback(user_id, limit, now)
            return RecommendationList(
                user_id=user_id,
                recommendations=recommendations,
                strategy="fallback",
                generated_at=now,
            )

        interacted = []
        if self.scorer.has_significant_history(profile):
            interacted = await self.catalog.get_products_by_ids(
                [p.product_id for p in profile.product_interactions]
            )

        candidate_filter = self.scorer.build_candidate_filter(profile, interacted)
        candidates = await self.catalog.get_active_products(
            candidate_filter, None, limit * CANDIDATE_MULTIPLIER
        )
        strategy = "personalized"

        if not candidates:
            logger.info(
                "No candidates for filter, using fallback",
                user_id=user_id,
                filter=candidate_filter.model_dump(mode="json"),
            )
            candidates = await self.catalog.get_active_products(
                None, FALLBACK_SORT, limit * CANDIDATE_MULTIPLIER
            )
            strategy = "fallback"

        recommendations = self.scorer.rank(profile, candidates, limit, now)

        logger.info(
            "Generated recommendations",
            user_id=user_id,
            strategy=strategy,
            candidates=len(candidates),
            returned=len(recommendations),
        )

        return RecommendationList(
            user_id=user_id,
            recommendations=recommendations,
            strategy=strategy,
            generated_at=now,
        )

    async def get_behavior_insights(self, user_id: str) -> BehaviorInsights:
        """Summarize a user's tracked behaviour. Users without a profile get zeros."""
        profile = await self.preferences.get(user_id)
        if profile is None:
            return BehaviorInsights()

        top_categories = sorted(
            profile.category_frequency.items(), key=lambda kv: kv[1], reverse=True
        )[:INSIGHT_TOP_CATEGORIES]

        return BehaviorInsights(
            engagement_score=profile.engagement_score,
            top_categories=[CategoryCount(category=c, count=n) for c, n in top_categories],
            recent_searches=profile.search_history[:INSIGHT_RECENT_SEARCHES],
            interaction_count=len(profile.product_interactions),
            last_updated=profile.last_updated,
        )

    async def _fallback(
        self, user_id: str, limit: int, now: datetime
    ) -> list[ScoredProduct]:
        products = await self.catalog.get_active_products(None, FALLBACK_SORT, limit)
        empty = PreferenceProfile(user_id=user_id)
        return [
            ScoredProduct(
                product=product,
                score=self.scorer.score_product(product, empty, now),
                position=position,
            )
            for position, product in enumerate(
                (p for p in products if p.is_active), start=1
            )
        ]
