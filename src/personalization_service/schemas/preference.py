"""Interaction events and the per-user preference profile."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InteractionType(str, Enum):
    """Types of user interactions."""

    SEARCH = "search"
    VIEW = "view"
    CLICK = "click"
    ADD_TO_CART = "add_to_cart"
    PURCHASE = "purchase"


class PriceRange(str, Enum):
    """Price band a user declared in the onboarding survey."""

    BUDGET = "budget"
    MID_RANGE = "mid-range"
    PREMIUM = "premium"


class EcoPreference(str, Enum):
    YES = "yes"
    NO_PREFERENCE = "no-preference"
    NOT_IMPORTANT = "not-important"


_PRICE_RANGE_SPELLINGS = {
    "budget": PriceRange.BUDGET,
    "budget-friendly": PriceRange.BUDGET,
    "budget_friendly": PriceRange.BUDGET,
    "mid-range": PriceRange.MID_RANGE,
    "mid_range": PriceRange.MID_RANGE,
    "premium": PriceRange.PREMIUM,
}


class InteractionEvent(BaseModel):
    """A single user action. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    type: InteractionType
    product_id: str | None = None
    category: str | None = None
    search_query: str | None = None
    time_spent: float = Field(default=0.0, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # Client clocks sometimes send naive timestamps; treat them as UTC.
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class SurveyPreferences(BaseModel):
    """Baseline preferences declared in the onboarding survey."""

    dashboard_categories: list[str] = Field(default_factory=list)
    price_range: PriceRange | None = None
    eco_preference: EcoPreference | None = None
    product_interests: list[str] = Field(default_factory=list)

    @field_validator("price_range", mode="before")
    @classmethod
    def normalize_price_range(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _PRICE_RANGE_SPELLINGS.get(v.strip().lower(), PriceRange.MID_RANGE)
        return v


class SearchEntry(BaseModel):
    query: str
    timestamp: datetime
    weight: float
    category: str | None = None


class ProductInteraction(BaseModel):
    """Aggregate of every interaction a user had with one product."""

    product_id: str
    interaction_count: int = 1
    first_interaction: datetime
    last_interaction: datetime
    interaction_types: list[InteractionType] = Field(default_factory=list)
    category: str | None = None


class PreferenceProfile(BaseModel):
    """Per-user preference record.

    Combines survey-declared baseline preferences with weights accumulated
    from interaction events. Only the interaction tracker mutates it.
    """

    user_id: str
    survey_completed: bool = False
    survey: SurveyPreferences = Field(default_factory=SurveyPreferences)
    category_frequency: dict[str, float] = Field(default_factory=dict)
    category_weights: dict[str, float] = Field(default_factory=dict)
    search_history: list[SearchEntry] = Field(default_factory=list)
    product_interactions: list[ProductInteraction] = Field(default_factory=list)
    engagement_score: float = Field(default=0.0, ge=0, le=100)
    dashboard_categories: list[str] = Field(default_factory=list)
    last_updated: datetime | None = None
    version: int = 0

    def find_product_interaction(self, product_id: str) -> ProductInteraction | None:
        for interaction in self.product_interactions:
            if interaction.product_id == product_id:
                return interaction
        return None


class TrackResult(BaseModel):
    """Outcome of tracking one interaction."""

    accepted: bool
    interaction_type: str
    engagement_score: float
    dashboard_categories: list[str] = Field(default_factory=list)
    reason: str | None = None


class CategoryCount(BaseModel):
    category: str
    count: float


class BehaviorInsights(BaseModel):
    engagement_score: float = 0.0
    top_categories: list[CategoryCount] = Field(default_factory=list)
    recent_searches: list[SearchEntry] = Field(default_factory=list)
    interaction_count: int = 0
    last_updated: datetime | None = None
