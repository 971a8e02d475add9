"""Interaction tracking service.

Folds user interaction events into the preference profile: category
affinities, bounded search and product histories, engagement score and the
derived dashboard categories.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from personalization_service.exceptions import InvalidInputError
from personalization_service.schemas.preference import (
    InteractionEvent,
    InteractionType,
    PreferenceProfile,
    ProductInteraction,
    SearchEntry,
    SurveyPreferences,
    TrackResult,
)
from shared.constants import (
    DASHBOARD_CATEGORIES,
    DASHBOARD_CATEGORY_COUNT,
    ENGAGEMENT_MULTIPLIER,
    INTERACTION_TYPE_ALIASES,
    INTERACTION_WEIGHTS,
    MAX_ENGAGEMENT_SCORE,
    MAX_PRODUCT_INTERACTIONS,
    MAX_SEARCH_HISTORY,
)

logger = structlog.get_logger()


class InteractionTracker:
    """Service for applying interaction events to user preference profiles."""

    def __init__(self, preferences: Any):
        self.preferences = preferences

    async def track_interaction(
        self, user_id: str, payload: Mapping[str, Any] | InteractionEvent
    ) -> TrackResult:
        """
        Track a single interaction for a user.

        Unknown interaction types are rejected without failing the request.
        A payload without a type raises ``InvalidInputError``.

        Args:
            user_id: The user's ID
            payload: Raw event mapping or an already-built event

        Returns:
            Outcome including the updated engagement score
        """
        event = self.parse_event(payload)
        if event is None:
            raw_type = str(_raw_type(payload))
            profile = await self.preferences.get(user_id)
            return TrackResult(
                accepted=False,
                interaction_type=raw_type,
                engagement_score=profile.engagement_score if profile else 0.0,
                dashboard_categories=profile.dashboard_categories if profile else [],
                reason=f"Unknown interaction type: {raw_type}",
            )

        profile = await self.preferences.update_profile(
            user_id, lambda current: self.apply_interaction(current, event)
        )

        logger.info(
            "Tracked interaction",
            user_id=user_id,
            interaction_type=event.type.value,
            engagement_score=round(profile.engagement_score, 2),
            dashboard_categories=profile.dashboard_categories,
        )

        return TrackResult(
            accepted=True,
            interaction_type=event.type.value,
            engagement_score=profile.engagement_score,
            dashboard_categories=profile.dashboard_categories,
        )

    async def track_interactions(
        self, user_id: str, payloads: Iterable[Mapping[str, Any] | InteractionEvent]
    ) -> list[TrackResult]:
        """Track several interactions in order; each is accepted or rejected on its own."""
        return [await self.track_interaction(user_id, payload) for payload in payloads]

    async def record_survey(self, user_id: str, survey: SurveyPreferences) -> PreferenceProfile:
        """Store onboarding survey answers as the profile's baseline preferences."""

        def apply(current: PreferenceProfile) -> PreferenceProfile:
            updated = current.model_copy(deep=True)
            updated.survey = survey
            updated.survey_completed = True
            updated.last_updated = datetime.now(timezone.utc)
            return updated

        profile = await self.preferences.update_profile(user_id, apply)
        logger.info(
            "Recorded survey",
            user_id=user_id,
            categories=survey.dashboard_categories,
            price_range=survey.price_range.value if survey.price_range else None,
        )
        return profile

    def parse_event(
        self, payload: Mapping[str, Any] | InteractionEvent
    ) -> InteractionEvent | None:
        """Build an event from a raw payload, or return None for an unknown type."""
        if isinstance(payload, InteractionEvent):
            return payload

        raw_type = _raw_type(payload)
        if not raw_type:
            raise InvalidInputError("Interaction type is required", details={"field": "type"})

        raw_type = str(raw_type)
        interaction_type = INTERACTION_TYPE_ALIASES.get(raw_type, raw_type)
        if interaction_type not in INTERACTION_WEIGHTS:
            logger.warning("Rejected unknown interaction type", interaction_type=raw_type)
            return None

        data = {k: v for k, v in payload.items() if k not in ("type", "interaction_type")}
        data = {k: v for k, v in data.items() if v is not None}
        try:
            return InteractionEvent(type=interaction_type, **data)
        except ValidationError as e:
            raise InvalidInputError(
                "Malformed interaction event", details={"errors": e.errors(include_url=False)}
            ) from e

    def apply_interaction(
        self,
        profile: PreferenceProfile,
        event: InteractionEvent,
        now: datetime | None = None,
    ) -> PreferenceProfile:
        """Return a copy of ``profile`` with ``event`` folded in."""
        updated = profile.model_copy(deep=True)
        weight = INTERACTION_WEIGHTS[event.type.value]

        if event.category:
            updated.category_frequency[event.category] = (
                updated.category_frequency.get(event.category, 0.0) + weight
            )
            updated.category_weights[event.category] = (
                updated.category_weights.get(event.category, 0.0) + weight
            )

        if event.search_query:
            updated.search_history.insert(
                0,
                SearchEntry(
                    query=event.search_query,
                    timestamp=event.timestamp,
                    weight=weight,
                    category=event.category,
                ),
            )
            updated.search_history = sorted(
                updated.search_history, key=lambda s: s.timestamp, reverse=True
            )[:MAX_SEARCH_HISTORY]

        if event.product_id:
            self._record_product_interaction(updated, event)

        updated.engagement_score = min(
            MAX_ENGAGEMENT_SCORE,
            max(0.0, updated.engagement_score + weight * ENGAGEMENT_MULTIPLIER),
        )
        updated.dashboard_categories = self.top_dashboard_categories(updated.category_frequency)
        updated.last_updated = now or datetime.now(timezone.utc)
        return updated

    def top_dashboard_categories(self, category_frequency: dict[str, float]) -> list[str]:
        """Top categories by weight, limited to ones the dashboard can show.

        ``sorted`` is stable, so equal weights keep first-seen order.
        """
        ranked = sorted(
            (
                (category, weight)
                for category, weight in category_frequency.items()
                if category in DASHBOARD_CATEGORIES
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        return [category for category, _ in ranked[:DASHBOARD_CATEGORY_COUNT]]

    def _record_product_interaction(
        self, profile: PreferenceProfile, event: InteractionEvent
    ) -> None:
        existing = profile.find_product_interaction(event.product_id)
        if existing:
            existing.interaction_count += 1
            existing.last_interaction = event.timestamp
            existing.interaction_types.append(event.type)
            if event.category and not existing.category:
                existing.category = event.category
        else:
            profile.product_interactions.append(
                ProductInteraction(
                    product_id=event.product_id,
                    interaction_count=1,
                    first_interaction=event.timestamp,
                    last_interaction=event.timestamp,
                    interaction_types=[InteractionType(event.type)],
                    category=event.category,
                )
            )

        profile.product_interactions = sorted(
            profile.product_interactions, key=lambda p: p.last_interaction, reverse=True
        )[:MAX_PRODUCT_INTERACTIONS]


def _raw_type(payload: Mapping[str, Any] | InteractionEvent) -> Any:
    if isinstance(payload, InteractionEvent):
        return payload.type.value
    return payload.get("type") or payload.get("interaction_type")
