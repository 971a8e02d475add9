"""Repositories over the async SQLAlchemy session.

Engine tables live in the 'personalization' schema. Products and orders are
owned by the shop and only read from the public schema.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import orjson
import structlog
from sqlalchemy import JSON, bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from personalization_service.schemas.goal import (
    GoalProgressRecord,
    ProgressCounters,
    Purchase,
    PurchaseItem,
    SustainabilityGoal,
)
from personalization_service.schemas.notification import MilestoneType, Notification
from personalization_service.schemas.preference import (
    PreferenceProfile,
    PriceRange,
    SurveyPreferences,
)
from personalization_service.schemas.product import Product, ProductFilter
from shared.constants import BUDGET_PRICE_CEILING, MID_RANGE_PRICE_CEILING

logger = structlog.get_logger()


def _json(value: Any) -> Any:
    """Decode JSON columns that the driver hands back as text."""
    if isinstance(value, (str, bytes)):
        return orjson.loads(value)
    return value


class _SessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


# =============================================================================
# Preference Profiles
# =============================================================================

PROFILE_COLUMNS = """
    user_id, survey_completed, survey, category_frequency, category_weights,
    search_history, product_interactions, dashboard_categories,
    engagement_score, version, updated_at
"""

PROFILE_JSON_COLUMNS = (
    "survey",
    "category_frequency",
    "category_weights",
    "search_history",
    "product_interactions",
    "dashboard_categories",
)


class PreferenceRepository(_SessionRepository):
    """Load and update preference profiles.

    Updates are applied under a row lock so concurrent requests for the same
    user serialize instead of overwriting each other.
    """

    async def get(self, user_id: str) -> PreferenceProfile | None:
        query = text(f"""
            SELECT {PROFILE_COLUMNS}
            FROM personalization.user_preference_profiles
            WHERE user_id = :user_id
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        row = result.fetchone()
        return self._to_profile(row) if row else None

    async def update_profile(
        self,
        user_id: str,
        mutate: Callable[[PreferenceProfile], PreferenceProfile],
    ) -> PreferenceProfile:
        """
        Apply ``mutate`` to the user's profile inside one locked transaction.

        Creates an empty profile first if the user has none.
        """
        await self._ensure_profile(user_id)

        query = text(f"""
            SELECT {PROFILE_COLUMNS}
            FROM personalization.user_preference_profiles
            WHERE user_id = :user_id
            FOR UPDATE
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        current = self._to_profile(result.fetchone())

        try:
            updated = mutate(current)
            await self._write(updated, expected_version=current.version)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        updated.version = current.version + 1
        return updated

    async def _ensure_profile(self, user_id: str) -> None:
        query = text("""
            INSERT INTO personalization.user_preference_profiles
            (user_id, survey_completed, survey, category_frequency, category_weights,
             search_history, product_interactions, dashboard_categories,
             engagement_score, version, created_at, updated_at)
            VALUES
            (:user_id, false, :survey, :empty_map, :empty_map,
             :empty_list, :empty_list, :empty_list, 0, 0, now(), now())
            ON CONFLICT (user_id) DO NOTHING
        """).bindparams(
            bindparam("survey", type_=JSON),
            bindparam("empty_map", type_=JSON),
            bindparam("empty_list", type_=JSON),
        )
        await self.session.execute(
            query,
            {
                "user_id": user_id,
                "survey": SurveyPreferences().model_dump(mode="json"),
                "empty_map": {},
                "empty_list": [],
            },
        )

    async def _write(self, profile: PreferenceProfile, expected_version: int) -> None:
        data = profile.model_dump(mode="json")
        query = text("""
            UPDATE personalization.user_preference_profiles SET
                survey_completed = :survey_completed,
                survey = :survey,
                category_frequency = :category_frequency,
                category_weights = :category_weights,
                search_history = :search_history,
                product_interactions = :product_interactions,
                dashboard_categories = :dashboard_categories,
                engagement_score = :engagement_score,
                version = version + 1,
                updated_at = now()
            WHERE user_id = :user_id AND version = :expected_version
        """).bindparams(*(bindparam(name, type_=JSON) for name in PROFILE_JSON_COLUMNS))
        await self.session.execute(
            query,
            {
                "user_id": profile.user_id,
                "survey_completed": profile.survey_completed,
                "engagement_score": profile.engagement_score,
                "expected_version": expected_version,
                **{name: data[name] for name in PROFILE_JSON_COLUMNS},
            },
        )

    def _to_profile(self, row: Any) -> PreferenceProfile:
        data = dict(row._mapping)
        for name in PROFILE_JSON_COLUMNS:
            data[name] = _json(data[name])
        data["last_updated"] = data.pop("updated_at", None)
        return PreferenceProfile.model_validate(data)


# =============================================================================
# Product Catalog (read-only)
# =============================================================================

PRODUCT_COLUMNS = """
    id, name, description, category, price, sustainability_grade,
    sustainability_score, rating, created_at, is_active
"""

SORTABLE_PRODUCT_COLUMNS = {"sustainability_score", "rating", "price", "created_at"}


class ProductCatalogReader(_SessionRepository):
    """Read-only access to the shop's product table."""

    async def get_active_products(
        self,
        product_filter: ProductFilter | None = None,
        sort: Sequence[tuple[str, str]] | None = None,
        limit: int = 40,
    ) -> list[Product]:
        """
        Get active products matching a filter.

        Args:
            product_filter: Category, grade and price band constraints
            sort: (column, "asc" | "desc") pairs; defaults to insertion order
            limit: Maximum number of products

        Returns:
            Matching products
        """
        conditions = ["is_active = true"]
        params: dict[str, Any] = {"limit": limit}
        product_filter = product_filter or ProductFilter()

        if product_filter.categories:
            conditions.append("category = ANY(:categories)")
            params["categories"] = list(product_filter.categories)
        if product_filter.grades:
            conditions.append("sustainability_grade = ANY(:grades)")
            params["grades"] = list(product_filter.grades)
        if product_filter.price_range == PriceRange.BUDGET:
            conditions.append("price < :budget_ceiling")
            params["budget_ceiling"] = BUDGET_PRICE_CEILING
        elif product_filter.price_range == PriceRange.MID_RANGE:
            conditions.append("price >= :budget_ceiling AND price <= :mid_ceiling")
            params["budget_ceiling"] = BUDGET_PRICE_CEILING
            params["mid_ceiling"] = MID_RANGE_PRICE_CEILING
        elif product_filter.price_range == PriceRange.PREMIUM:
            conditions.append("price > :mid_ceiling")
            params["mid_ceiling"] = MID_RANGE_PRICE_CEILING

        order_by = self._order_by(sort)
        query = text(f"""
            SELECT {PRODUCT_COLUMNS}
            FROM public.products
            WHERE {" AND ".join(conditions)}
            ORDER BY {order_by}
            LIMIT :limit
        """)
        result = await self.session.execute(query, params)
        return [self._to_product(row) for row in result.fetchall()]

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[Product]:
        """Get active products by ID. Missing or inactive IDs are skipped."""
        if not product_ids:
            return []
        query = text(f"""
            SELECT {PRODUCT_COLUMNS}
            FROM public.products
            WHERE id = ANY(:ids) AND is_active = true
        """)
        result = await self.session.execute(query, {"ids": list(product_ids)})
        return [self._to_product(row) for row in result.fetchall()]

    def _order_by(self, sort: Sequence[tuple[str, str]] | None) -> str:
        clauses = []
        for column, direction in sort or []:
            if column not in SORTABLE_PRODUCT_COLUMNS:
                raise ValueError(f"Unsupported sort column: {column}")
            clauses.append(f"{column} {'DESC' if direction == 'desc' else 'ASC'}")
        clauses.extend(["created_at ASC", "id ASC"])
        return ", ".join(clauses)

    def _to_product(self, row: Any) -> Product:
        data = dict(row._mapping)
        data["id"] = str(data["id"])
        data["name"] = data.get("name") or ""
        data["description"] = data.get("description") or ""
        return Product.model_validate(data)


# =============================================================================
# Orders (read-only)
# =============================================================================


class OrderRepository(_SessionRepository):
    """Paid orders with line-item snapshots, oldest first."""

    async def get_paid_purchases(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Purchase]:
        conditions = ["o.user_id = :user_id", "o.payment_status = 'paid'"]
        params: dict[str, Any] = {"user_id": user_id}
        if since is not None:
            conditions.append("o.created_at >= :since")
            params["since"] = since
        if until is not None:
            conditions.append("o.created_at <= :until")
            params["until"] = until
        return await self._fetch(" AND ".join(conditions), params)

    async def get_paid_purchase(self, user_id: str, order_id: str) -> Purchase | None:
        purchases = await self._fetch(
            "o.user_id = :user_id AND o.id = :order_id AND o.payment_status = 'paid'",
            {"user_id": user_id, "order_id": order_id},
        )
        return purchases[0] if purchases else None

    async def _fetch(self, where: str, params: dict[str, Any]) -> list[Purchase]:
        query = text(f"""
            SELECT
                o.id AS order_id,
                o.created_at,
                o.total_amount,
                oi.product_id,
                oi.name,
                oi.category,
                oi.sustainability_grade,
                oi.sustainability_score,
                oi.price,
                oi.quantity
            FROM public.orders o
            LEFT JOIN public.order_items oi ON oi.order_id = o.id
            WHERE {where}
            ORDER BY o.created_at ASC, o.id ASC, oi.id ASC
        """)
        result = await self.session.execute(query, params)

        purchases: dict[str, Purchase] = {}
        for row in result.fetchall():
            order_id = str(row.order_id)
            purchase = purchases.get(order_id)
            if purchase is None:
                purchase = Purchase(
                    order_id=order_id,
                    created_at=row.created_at,
                    total_amount=row.total_amount or 0.0,
                )
                purchases[order_id] = purchase
            if row.product_id is not None:
                purchase.items.append(
                    PurchaseItem(
                        product_id=str(row.product_id),
                        name=row.name or "",
                        category=row.category,
                        sustainability_grade=row.sustainability_grade,
                        sustainability_score=row.sustainability_score or 0.0,
                        price=row.price or 0.0,
                        quantity=row.quantity or 1,
                    )
                )
        return list(purchases.values())


# =============================================================================
# Sustainability Goals
# =============================================================================

GOAL_COLUMNS = """
    id, user_id, title, description, goal_type, goal_config, is_active,
    total_items, goal_met_items, total_value, goal_met_value,
    total_purchases, goal_met_purchases, current_percentage, last_updated,
    created_at, updated_at
"""

COUNTER_COLUMNS = tuple(ProgressCounters.model_fields)


class GoalRepository(_SessionRepository):
    """Goal persistence with atomic progress counter updates."""

    async def count_active(self, user_id: str) -> int:
        query = text("""
            SELECT COUNT(*) FROM personalization.sustainability_goals
            WHERE user_id = :user_id AND is_active = true
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return int(result.scalar_one())

    async def list_for_user(
        self, user_id: str, active_only: bool = False
    ) -> list[SustainabilityGoal]:
        active_clause = "AND is_active = true" if active_only else ""
        query = text(f"""
            SELECT {GOAL_COLUMNS}
            FROM personalization.sustainability_goals
            WHERE user_id = :user_id {active_clause}
            ORDER BY created_at DESC
        """)
        result = await self.session.execute(query, {"user_id": user_id})
        return [self._to_goal(row) for row in result.fetchall()]

    async def get(self, user_id: str, goal_id: str) -> SustainabilityGoal | None:
        query = text(f"""
            SELECT {GOAL_COLUMNS}
            FROM personalization.sustainability_goals
            WHERE id = :goal_id AND user_id = :user_id
        """)
        result = await self.session.execute(query, {"goal_id": goal_id, "user_id": user_id})
        row = result.fetchone()
        return self._to_goal(row) if row else None

    async def create(self, goal: SustainabilityGoal) -> SustainabilityGoal:
        query = text("""
            INSERT INTO personalization.sustainability_goals
            (id, user_id, title, description, goal_type, goal_config, is_active,
             total_items, goal_met_items, total_value, goal_met_value,
             total_purchases, goal_met_purchases, current_percentage,
             last_updated, created_at, updated_at)
            VALUES
            (:id, :user_id, :title, :description, :goal_type, :goal_config, :is_active,
             0, 0, 0, 0, 0, 0, 0, :now, :now, :now)
        """).bindparams(bindparam("goal_config", type_=JSON))
        now = datetime.now(timezone.utc)
        await self.session.execute(
            query,
            {
                "id": goal.id,
                "user_id": goal.user_id,
                "title": goal.title,
                "description": goal.description,
                "goal_type": goal.goal_type.value,
                "goal_config": goal.goal_config.model_dump(mode="json"),
                "is_active": goal.is_active,
                "now": now,
            },
        )
        await self.session.commit()
        return goal.model_copy(
            update={
                "created_at": now,
                "updated_at": now,
                "progress": GoalProgressRecord(last_updated=now),
            }
        )

    async def update(self, goal: SustainabilityGoal) -> SustainabilityGoal:
        query = text("""
            UPDATE personalization.sustainability_goals SET
                title = :title,
                description = :description,
                goal_type = :goal_type,
                goal_config = :goal_config,
                is_active = :is_active,
                updated_at = :now
            WHERE id = :id AND user_id = :user_id
        """).bindparams(bindparam("goal_config", type_=JSON))
        now = datetime.now(timezone.utc)
        await self.session.execute(
            query,
            {
                "id": goal.id,
                "user_id": goal.user_id,
                "title": goal.title,
                "description": goal.description,
                "goal_type": goal.goal_type.value,
                "goal_config": goal.goal_config.model_dump(mode="json"),
                "is_active": goal.is_active,
                "now": now,
            },
        )
        await self.session.commit()
        return goal.model_copy(update={"updated_at": now})

    async def delete(self, user_id: str, goal_id: str) -> bool:
        query = text("""
            DELETE FROM personalization.sustainability_goals
            WHERE id = :goal_id AND user_id = :user_id
        """)
        result = await self.session.execute(query, {"goal_id": goal_id, "user_id": user_id})
        await self.session.commit()
        return result.rowcount > 0

    async def apply_progress_delta(
        self, goal_id: str, order_id: str, delta: ProgressCounters
    ) -> tuple[float, ProgressCounters] | None:
        """
        Add one purchase's contribution to the goal counters.

        The ledger insert and the counter increment run in one statement, so
        the same order is never counted twice for a goal.

        Returns:
            (previous percentage, updated counters), or None when the order
            was already counted
        """
        increments = ",\n".join(f"{c} = g.{c} + :{c}" for c in COUNTER_COLUMNS)
        returning = ", ".join(f"g.{c}" for c in COUNTER_COLUMNS)
        query = text(f"""
            WITH counted AS (
                INSERT INTO personalization.goal_purchase_ledger (goal_id, order_id)
                VALUES (:goal_id, :order_id)
                ON CONFLICT DO NOTHING
                RETURNING goal_id
            ),
            previous AS (
                SELECT g.id, g.current_percentage
                FROM personalization.sustainability_goals g
                JOIN counted c ON c.goal_id = g.id
                FOR UPDATE OF g
            )
            UPDATE personalization.sustainability_goals g SET
                {increments}
            FROM previous
            WHERE g.id = previous.id
            RETURNING previous.current_percentage AS previous_percentage, {returning}
        """)
        result = await self.session.execute(
            query, {"goal_id": goal_id, "order_id": order_id, **delta.model_dump()}
        )
        row = result.fetchone()
        if row is None:
            return None
        data = dict(row._mapping)
        previous = float(data.pop("previous_percentage") or 0.0)
        return previous, ProgressCounters.model_validate(data)

    async def set_percentage(self, goal_id: str, percentage: float, now: datetime) -> None:
        query = text("""
            UPDATE personalization.sustainability_goals
            SET current_percentage = :percentage, last_updated = :now
            WHERE id = :goal_id
        """)
        await self.session.execute(
            query, {"goal_id": goal_id, "percentage": percentage, "now": now}
        )

    async def replace_progress(
        self,
        goal_id: str,
        counters: ProgressCounters,
        percentage: float,
        order_ids: Sequence[str],
        now: datetime,
    ) -> float:
        """
        Overwrite the goal counters with a full recompute.

        Every counted order is recorded in the ledger so later incremental
        updates for those orders are ignored.

        Returns:
            The percentage stored before the overwrite
        """
        assignments = ",\n".join(f"{c} = :{c}" for c in COUNTER_COLUMNS)
        query = text(f"""
            WITH previous AS (
                SELECT id, current_percentage
                FROM personalization.sustainability_goals
                WHERE id = :goal_id
                FOR UPDATE
            )
            UPDATE personalization.sustainability_goals g SET
                {assignments},
                current_percentage = :percentage,
                last_updated = :now
            FROM previous
            WHERE g.id = previous.id
            RETURNING previous.current_percentage AS previous_percentage
        """)
        result = await self.session.execute(
            query,
            {"goal_id": goal_id, "percentage": percentage, "now": now, **counters.model_dump()},
        )
        previous = result.scalar_one_or_none()

        if order_ids:
            ledger_query = text("""
                INSERT INTO personalization.goal_purchase_ledger (goal_id, order_id)
                SELECT :goal_id, unnest(CAST(:order_ids AS text[]))
                ON CONFLICT DO NOTHING
            """)
            await self.session.execute(
                ledger_query, {"goal_id": goal_id, "order_ids": list(order_ids)}
            )
        return float(previous or 0.0)

    async def list_user_ids_with_active_goals(self) -> list[str]:
        query = text("""
            SELECT DISTINCT user_id
            FROM personalization.sustainability_goals
            WHERE is_active = true
            ORDER BY user_id
        """)
        result = await self.session.execute(query)
        return [str(row.user_id) for row in result.fetchall()]

    def _to_goal(self, row: Any) -> SustainabilityGoal:
        data = dict(row._mapping)
        config = _json(data.pop("goal_config"))
        config["goal_type"] = data.pop("goal_type")
        progress = {c: data.pop(c) for c in COUNTER_COLUMNS}
        progress["current_percentage"] = data.pop("current_percentage")
        progress["last_updated"] = data.pop("last_updated")
        return SustainabilityGoal.model_validate(
            {**data, "goal_config": config, "progress": progress}
        )


# =============================================================================
# Notifications
# =============================================================================


class NotificationRepository(_SessionRepository):
    """Milestone notification records."""

    async def exists(self, user_id: str, goal_id: str, milestone_type: MilestoneType) -> bool:
        query = text("""
            SELECT 1 FROM personalization.goal_notifications
            WHERE user_id = :user_id AND goal_id = :goal_id AND milestone_type = :milestone_type
        """)
        result = await self.session.execute(
            query,
            {"user_id": user_id, "goal_id": goal_id, "milestone_type": milestone_type.value},
        )
        return result.first() is not None

    async def create_if_absent(self, notification: Notification) -> Notification | None:
        """Insert unless a notification for the same milestone exists; returns None then."""
        query = text("""
            INSERT INTO personalization.goal_notifications
            (id, user_id, goal_id, milestone_type, title, message, percentage, is_read, created_at)
            VALUES
            (:id, :user_id, :goal_id, :milestone_type, :title, :message, :percentage, false, :created_at)
            ON CONFLICT ON CONSTRAINT uq_goal_notifications_milestone DO NOTHING
            RETURNING id
        """)
        result = await self.session.execute(
            query,
            {
                "id": notification.id,
                "user_id": notification.user_id,
                "goal_id": notification.goal_id,
                "milestone_type": notification.milestone_type.value,
                "title": notification.title,
                "message": notification.message,
                "percentage": notification.percentage_at_creation,
                "created_at": notification.created_at,
            },
        )
        inserted = result.scalar_one_or_none()
        await self.session.commit()
        return notification if inserted else None

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        query = text("""
            SELECT id, user_id, goal_id, milestone_type, title, message,
                   percentage AS percentage_at_creation, is_read, created_at
            FROM personalization.goal_notifications
            WHERE user_id = :user_id
            ORDER BY created_at DESC
            LIMIT :limit
        """)
        result = await self.session.execute(query, {"user_id": user_id, "limit": limit})
        return [Notification.model_validate(dict(row._mapping)) for row in result.fetchall()]
