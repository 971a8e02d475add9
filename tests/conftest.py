"""Pytest configuration and fixtures.

Repositories are replaced by in-memory fakes that follow the same contracts
as the SQL implementations: profile updates bump the version, progress
deltas are counted once per (goal, order) and notifications are unique per
(user, goal, milestone).
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from personalization_service.api.v1.dependencies import (
    get_cache,
    get_goal_service,
    get_notification_repository,
    get_recommendation_service,
)
from personalization_service.config import Settings, get_settings
from personalization_service.main import create_app
from personalization_service.schemas.goal import (
    ProgressCounters,
    Purchase,
    PurchaseItem,
    SustainabilityGoal,
)
from personalization_service.schemas.notification import (
    MilestoneType,
    Notification,
    WeeklySummary,
)
from personalization_service.schemas.preference import PreferenceProfile
from personalization_service.schemas.product import Product, ProductFilter
from personalization_service.services.cache import (
    CachedGoalService,
    CachedRecommendationService,
    MemoCache,
)
from personalization_service.services.goal_service import GoalService
from personalization_service.services.interaction_tracker import InteractionTracker
from personalization_service.services.milestone_notifier import MilestoneNotifier
from personalization_service.services.notification_sender import NotificationSender
from personalization_service.services.recommendation_engine import RecommendationEngine
from personalization_service.services.recommendation_scorer import price_band

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# In-memory repositories
# =============================================================================


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class FakePreferenceRepository(FakeSession):
    def __init__(self) -> None:
        super().__init__()
        self.profiles: dict[str, PreferenceProfile] = {}

    async def get(self, user_id: str) -> PreferenceProfile | None:
        profile = self.profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def update_profile(
        self, user_id: str, mutate: Callable[[PreferenceProfile], PreferenceProfile]
    ) -> PreferenceProfile:
        current = self.profiles.get(user_id) or PreferenceProfile(user_id=user_id)
        updated = mutate(current.model_copy(deep=True))
        updated.version = current.version + 1
        self.profiles[user_id] = updated
        await self.commit()
        return updated.model_copy(deep=True)


class FakeCatalog:
    def __init__(self, products: list[Product] | None = None) -> None:
        self.products = list(products or [])
        self.queries: list[tuple[ProductFilter | None, Any, int]] = []

    async def get_active_products(
        self,
        product_filter: ProductFilter | None = None,
        sort: Any = None,
        limit: int = 40,
    ) -> list[Product]:
        self.queries.append((product_filter, sort, limit))
        products = [p for p in self.products if p.is_active]
        if product_filter is not None:
            if product_filter.categories:
                products = [p for p in products if p.category in product_filter.categories]
            if product_filter.grades:
                products = [p for p in products if p.sustainability_grade in product_filter.grades]
            if product_filter.price_range is not None:
                products = [p for p in products if price_band(p.price) == product_filter.price_range]
        for column, direction in reversed(list(sort or [])):
            products.sort(key=lambda p: getattr(p, column), reverse=direction == "desc")
        return products[:limit]

    async def get_products_by_ids(self, product_ids: list[str]) -> list[Product]:
        wanted = set(product_ids)
        return [p for p in self.products if p.id in wanted]


class FakeOrderRepository(FakeSession):
    def __init__(self) -> None:
        super().__init__()
        self.purchases: dict[str, list[Purchase]] = {}
        self.failing_users: set[str] = set()

    def add(self, user_id: str, purchase: Purchase) -> None:
        self.purchases.setdefault(user_id, []).append(purchase)

    async def get_paid_purchases(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Purchase]:
        if user_id in self.failing_users:
            raise RuntimeError(f"order lookup failed for {user_id}")
        purchases = sorted(self.purchases.get(user_id, []), key=lambda p: p.created_at)
        if since is not None:
            purchases = [p for p in purchases if p.created_at >= since]
        if until is not None:
            purchases = [p for p in purchases if p.created_at <= until]
        return purchases

    async def get_paid_purchase(self, user_id: str, order_id: str) -> Purchase | None:
        for purchase in self.purchases.get(user_id, []):
            if purchase.order_id == order_id:
                return purchase
        return None


class FakeGoalRepository(FakeSession):
    def __init__(self) -> None:
        super().__init__()
        self.goals: dict[str, SustainabilityGoal] = {}
        self.ledger: set[tuple[str, str]] = set()
        self._created = 0

    async def count_active(self, user_id: str) -> int:
        return sum(1 for g in self.goals.values() if g.user_id == user_id and g.is_active)

    async def list_for_user(
        self, user_id: str, active_only: bool = False
    ) -> list[SustainabilityGoal]:
        goals = [
            g.model_copy(deep=True)
            for g in self.goals.values()
            if g.user_id == user_id and (g.is_active or not active_only)
        ]
        return sorted(goals, key=lambda g: g.created_at, reverse=True)

    async def get(self, user_id: str, goal_id: str) -> SustainabilityGoal | None:
        goal = self.goals.get(goal_id)
        if goal is None or goal.user_id != user_id:
            return None
        return goal.model_copy(deep=True)

    async def create(self, goal: SustainabilityGoal) -> SustainabilityGoal:
        self._created += 1
        created_at = NOW + timedelta(seconds=self._created)
        stored = goal.model_copy(deep=True, update={"created_at": created_at, "updated_at": created_at})
        self.goals[goal.id] = stored
        return stored.model_copy(deep=True)

    async def update(self, goal: SustainabilityGoal) -> SustainabilityGoal:
        current = self.goals[goal.id]
        stored = goal.model_copy(deep=True, update={"progress": current.progress})
        self.goals[goal.id] = stored
        return stored.model_copy(deep=True)

    async def delete(self, user_id: str, goal_id: str) -> bool:
        goal = self.goals.get(goal_id)
        if goal is None or goal.user_id != user_id:
            return False
        del self.goals[goal_id]
        return True

    async def apply_progress_delta(
        self, goal_id: str, order_id: str, delta: ProgressCounters
    ) -> tuple[float, ProgressCounters] | None:
        if (goal_id, order_id) in self.ledger:
            return None
        self.ledger.add((goal_id, order_id))
        progress = self.goals[goal_id].progress
        previous = progress.current_percentage
        for name, value in delta.model_dump().items():
            setattr(progress, name, getattr(progress, name) + value)
        counters = ProgressCounters(**progress.model_dump(include=set(ProgressCounters.model_fields)))
        return previous, counters

    async def set_percentage(self, goal_id: str, percentage: float, now: datetime) -> None:
        progress = self.goals[goal_id].progress
        progress.current_percentage = percentage
        progress.last_updated = now

    async def replace_progress(
        self,
        goal_id: str,
        counters: ProgressCounters,
        percentage: float,
        order_ids: list[str],
        now: datetime,
    ) -> float:
        progress = self.goals[goal_id].progress
        previous = progress.current_percentage
        for name, value in counters.model_dump().items():
            setattr(progress, name, value)
        progress.current_percentage = percentage
        progress.last_updated = now
        self.ledger.update((goal_id, order_id) for order_id in order_ids)
        return previous

    async def list_user_ids_with_active_goals(self) -> list[str]:
        return sorted({g.user_id for g in self.goals.values() if g.is_active})


class FakeNotificationRepository(FakeSession):
    def __init__(self) -> None:
        super().__init__()
        self.records: dict[tuple[str, str, MilestoneType], Notification] = {}
        self.failing_types: set[MilestoneType] = set()

    async def exists(self, user_id: str, goal_id: str, milestone_type: MilestoneType) -> bool:
        return (user_id, goal_id, milestone_type) in self.records

    async def create_if_absent(self, notification: Notification) -> Notification | None:
        if notification.milestone_type in self.failing_types:
            raise RuntimeError("notification store unavailable")
        key = (notification.user_id, notification.goal_id, notification.milestone_type)
        if key in self.records:
            return None
        self.records[key] = notification
        return notification

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        records = [n for n in self.records.values() if n.user_id == user_id]
        return sorted(records, key=lambda n: n.created_at, reverse=True)[:limit]

    def for_goal(self, goal_id: str) -> list[MilestoneType]:
        return [n.milestone_type for n in self.records.values() if n.goal_id == goal_id]


class RecordingSender(NotificationSender):
    """Sender that keeps everything it was asked to deliver."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.notifications: list[Notification] = []
        self.summaries: list[WeeklySummary] = []

    async def deliver(self, notification: Notification) -> bool:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.notifications.append(notification)
        return True

    async def deliver_weekly_summary(self, summary: WeeklySummary) -> bool:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.summaries.append(summary)
        return True


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def product_factory() -> Callable[..., Product]:
    def make(product_id: str = "prod-1", **overrides: Any) -> Product:
        data = {
            "id": product_id,
            "name": f"Product {product_id}",
            "description": "",
            "category": "Electronics",
            "price": 50.0,
            "sustainability_grade": "B",
            "sustainability_score": 70.0,
            "rating": 4.0,
            "created_at": NOW,
            "is_active": True,
        }
        data.update(overrides)
        return Product(**data)

    return make


@pytest.fixture
def purchase_factory() -> Callable[..., Purchase]:
    def make(
        order_id: str,
        items: list[dict[str, Any]],
        created_at: datetime = NOW,
    ) -> Purchase:
        purchase_items = [
            PurchaseItem(product_id=f"{order_id}-item-{i}", **item) for i, item in enumerate(items)
        ]
        total = sum(item.price * item.quantity for item in purchase_items)
        return Purchase(order_id=order_id, created_at=created_at, items=purchase_items, total_amount=total)

    return make


# =============================================================================
# Repositories and services
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
    )


@pytest.fixture
def preference_repository() -> FakePreferenceRepository:
    return FakePreferenceRepository()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def order_repository() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def goal_repository() -> FakeGoalRepository:
    return FakeGoalRepository()


@pytest.fixture
def notification_repository() -> FakeNotificationRepository:
    return FakeNotificationRepository()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def memo_cache() -> MemoCache:
    return MemoCache(max_entries=100)


@pytest.fixture
def notifier(
    notification_repository: FakeNotificationRepository, sender: RecordingSender
) -> MilestoneNotifier:
    return MilestoneNotifier(notification_repository, sender)


@pytest.fixture
def goal_service(
    goal_repository: FakeGoalRepository,
    order_repository: FakeOrderRepository,
    catalog: FakeCatalog,
    notifier: MilestoneNotifier,
) -> GoalService:
    return GoalService(
        goals=goal_repository,
        orders=order_repository,
        catalog=catalog,
        notifier=notifier,
        max_active_goals=5,
    )


@pytest.fixture
def tracker(preference_repository: FakePreferenceRepository) -> InteractionTracker:
    return InteractionTracker(preference_repository)


@pytest.fixture
def recommendation_engine(
    preference_repository: FakePreferenceRepository, catalog: FakeCatalog
) -> RecommendationEngine:
    return RecommendationEngine(preference_repository, catalog)


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def app(
    test_settings: Settings,
    memo_cache: MemoCache,
    recommendation_engine: RecommendationEngine,
    tracker: InteractionTracker,
    goal_service: GoalService,
    notification_repository: FakeNotificationRepository,
) -> FastAPI:
    """Create test application wired to the in-memory repositories."""
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_cache] = lambda: memo_cache
    app.dependency_overrides[get_recommendation_service] = lambda: CachedRecommendationService(
        recommendation_engine, tracker, memo_cache
    )
    app.dependency_overrides[get_goal_service] = lambda: CachedGoalService(goal_service, memo_cache)
    app.dependency_overrides[get_notification_repository] = lambda: notification_repository
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest.fixture
def sample_user_id() -> str:
    """Sample user ID for tests."""
    return "test-user-123"


@pytest.fixture
def sample_product_id() -> str:
    """Sample product ID for tests."""
    return "test-product-456"
