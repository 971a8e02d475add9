"""Read-only product views and catalog query options."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from personalization_service.schemas.preference import PriceRange


class Product(BaseModel):
    """Product attributes as exposed by the catalog."""

    id: str
    name: str = ""
    description: str = ""
    category: str
    price: float = 0.0
    sustainability_grade: str
    sustainability_score: float = Field(default=0.0, ge=0, le=100)
    rating: float = 0.0
    created_at: datetime
    is_active: bool = True


class ProductFilter(BaseModel):
    """Filter applied when selecting recommendation candidates."""

    categories: list[str] | None = None
    grades: list[str] | None = None
    price_range: PriceRange | None = None

    def is_empty(self) -> bool:
        return not self.categories and not self.grades and self.price_range is None


class ScoredProduct(BaseModel):
    product: Product
    score: int
    position: int = 0


class RecommendationList(BaseModel):
    """Ranked recommendations for one user."""

    user_id: str
    recommendations: list[ScoredProduct] = Field(default_factory=list)
    strategy: Literal["personalized", "fallback"]
    generated_at: datetime
