"""Recommendation scoring.

Pure scoring and candidate-selection logic. Database access lives in
``recommendation_engine``; everything here works on already-loaded profiles
and products so it can be tested without a session.
"""

import math
from collections import Counter
from datetime import datetime, timezone

import numpy as np

from personalization_service.schemas.preference import (
    EcoPreference,
    PreferenceProfile,
    PriceRange,
)
from personalization_service.schemas.product import Product, ProductFilter, ScoredProduct
from shared.constants import (
    BUDGET_PRICE_CEILING,
    ECO_FRIENDLY_GRADES,
    MID_RANGE_PRICE_CEILING,
    RECENT_INTERACTION_DAYS,
    SIGNIFICANT_PRODUCT_INTERACTIONS,
    SIGNIFICANT_SEARCHES,
    TIME_DECAY_FACTOR,
)

SECONDS_PER_DAY = 86400.0

# Survey alignment bonuses
SURVEY_CATEGORY_BONUS = 40
SURVEY_PRICE_BONUS = 20
SURVEY_ECO_BONUS = 20
SURVEY_ECO_NEUTRAL_BONUS = 10
SURVEY_INTEREST_BONUS = 20

# Interaction alignment multipliers
CATEGORY_WEIGHT_MULTIPLIER = 2
INTERACTION_COUNT_MULTIPLIER = 5
RECENT_INTERACTION_BONUS = 10
SEARCH_MATCH_BONUS = 3


def price_band(price: float) -> PriceRange:
    """Map a price onto the budget / mid-range / premium bands."""
    if price < BUDGET_PRICE_CEILING:
        return PriceRange.BUDGET
    if price <= MID_RANGE_PRICE_CEILING:
        return PriceRange.MID_RANGE
    return PriceRange.PREMIUM


class RecommendationScorer:
    """Scores and ranks candidate products for a preference profile."""

    def __init__(self, time_decay_factor: float = TIME_DECAY_FACTOR):
        self.time_decay_factor = time_decay_factor

    # ==========================================================================
    # Candidate selection
    # ==========================================================================

    def has_significant_history(self, profile: PreferenceProfile) -> bool:
        return (
            len(profile.product_interactions) > SIGNIFICANT_PRODUCT_INTERACTIONS
            or len(profile.search_history) > SIGNIFICANT_SEARCHES
        )

    def build_candidate_filter(
        self, profile: PreferenceProfile, interacted_products: list[Product]
    ) -> ProductFilter:
        """
        Build the candidate query for a profile.

        Survey answers come first. Users with significant interaction
        history get behaviour-derived categories, grade and price band
        instead, each overriding the survey value when it can be inferred.
        """
        candidate_filter = ProductFilter()

        if profile.survey_completed:
            survey = profile.survey
            if survey.dashboard_categories:
                candidate_filter.categories = list(survey.dashboard_categories)
            if survey.price_range is not None:
                candidate_filter.price_range = survey.price_range
            if survey.eco_preference == EcoPreference.YES:
                candidate_filter.grades = list(ECO_FRIENDLY_GRADES)

        if self.has_significant_history(profile):
            merged = {**profile.category_weights, **profile.category_frequency}
            top_categories = [
                category
                for category, _ in sorted(merged.items(), key=lambda kv: kv[1], reverse=True)[:3]
            ]
            if top_categories:
                candidate_filter.categories = top_categories

            grade = self.infer_sustainability_preference(interacted_products)
            if grade:
                candidate_filter.grades = [grade]

            price_range = self.infer_price_preference(interacted_products)
            if price_range:
                candidate_filter.price_range = price_range

        return candidate_filter

    def infer_sustainability_preference(self, products: list[Product]) -> str | None:
        """Most common grade among interacted products."""
        grades = Counter(p.sustainability_grade for p in products if p.sustainability_grade)
        if not grades:
            return None
        return grades.most_common(1)[0][0]

    def infer_price_preference(self, products: list[Product]) -> PriceRange | None:
        """Price band of the mean price of interacted products."""
        if not products:
            return None
        return price_band(float(np.mean([p.price for p in products])))

    # ==========================================================================
    # Scoring
    # ==========================================================================

    def score_product(
        self, product: Product, profile: PreferenceProfile, now: datetime | None = None
    ) -> int:
        now = now or datetime.now(timezone.utc)
        raw = self._additive_score(product, profile, now)
        decay = math.exp(-self.time_decay_factor * self._age_days(product, now))
        return int(math.floor(raw * decay + 0.5))

    def rank(
        self,
        profile: PreferenceProfile,
        candidates: list[Product],
        limit: int,
        now: datetime | None = None,
    ) -> list[ScoredProduct]:
        """
        Rank candidates by descending score.

        Inactive products are skipped. Equal scores keep candidate order.

        Args:
            profile: The user's preference profile
            candidates: Products to score
            limit: Maximum number of results
            now: Reference time for recency calculations

        Returns:
            Scored products with 1-based positions
        """
        now = now or datetime.now(timezone.utc)
        products = [p for p in candidates if p.is_active]
        if not products:
            return []

        raw = np.array([self._additive_score(p, profile, now) for p in products], dtype=np.float64)
        ages = np.array([self._age_days(p, now) for p in products], dtype=np.float64)
        scores = np.floor(raw * np.exp(-self.time_decay_factor * ages) + 0.5)

        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            ScoredProduct(product=products[i], score=int(scores[i]), position=position)
            for position, i in enumerate(order, start=1)
        ]

    def _additive_score(
        self, product: Product, profile: PreferenceProfile, now: datetime
    ) -> float:
        score = product.rating * 10 + product.sustainability_score * 0.5

        if profile.survey_completed:
            score += self._survey_alignment(product, profile)

        score += self._interaction_alignment(product, profile, now)
        return score

    def _survey_alignment(self, product: Product, profile: PreferenceProfile) -> float:
        survey = profile.survey
        score = 0.0

        if product.category in survey.dashboard_categories:
            score += SURVEY_CATEGORY_BONUS

        if survey.price_range is not None and price_band(product.price) == survey.price_range:
            score += SURVEY_PRICE_BONUS

        if (
            survey.eco_preference == EcoPreference.YES
            and product.sustainability_grade in ECO_FRIENDLY_GRADES
        ):
            score += SURVEY_ECO_BONUS
        elif survey.eco_preference == EcoPreference.NO_PREFERENCE:
            score += SURVEY_ECO_NEUTRAL_BONUS

        category = product.category.lower()
        keywords = [interest.lower().split(" ")[0] for interest in survey.product_interests]
        if any(keyword in category for keyword in keywords if keyword):
            score += SURVEY_INTEREST_BONUS

        return score

    def _interaction_alignment(
        self, product: Product, profile: PreferenceProfile, now: datetime
    ) -> float:
        score = profile.category_weights.get(product.category, 0.0) * CATEGORY_WEIGHT_MULTIPLIER

        interaction = profile.find_product_interaction(product.id)
        if interaction:
            score += interaction.interaction_count * INTERACTION_COUNT_MULTIPLIER
            days_since = (now - interaction.last_interaction).total_seconds() / SECONDS_PER_DAY
            if days_since < RECENT_INTERACTION_DAYS:
                score += RECENT_INTERACTION_BONUS

        name = product.name.lower()
        description = product.description.lower()
        for search in profile.search_history:
            query = search.query.lower()
            if query in name or query in description:
                score += SEARCH_MATCH_BONUS

        return score

    def _age_days(self, product: Product, now: datetime) -> float:
        created_at = product.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return max(0.0, (now - created_at).total_seconds() / SECONDS_PER_DAY)
