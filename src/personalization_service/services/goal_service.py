"""Sustainability goal service.

Goal CRUD with validation, purchase tracking with atomic counter updates and
milestone checks after every progress change.
"""

import math
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from pydantic import TypeAdapter, ValidationError

from personalization_service.exceptions import (
    GoalNotFoundError,
    GoalValidationError,
    OrderNotFoundError,
)
from personalization_service.schemas.goal import (
    CategoryBasedConfig,
    FieldError,
    GoalConfig,
    GoalConfigValidation,
    GoalCreate,
    GoalMatch,
    GoalProgressDetail,
    GoalStats,
    GoalType,
    GoalTypeCounts,
    GoalUpdate,
    GoalUpdateSummary,
    ProductGoalAlignment,
    PurchaseTrackingResult,
    SustainabilityGoal,
)
from personalization_service.schemas.notification import MilestoneResult
from personalization_service.services.goal_progress import GoalProgressCalculator
from personalization_service.services.milestone_notifier import MilestoneNotifier
from shared.constants import (
    DEFAULT_TARGET_PERCENTAGE,
    ECO_FRIENDLY_GRADES,
    SUSTAINABILITY_GRADES,
)

logger = structlog.get_logger()

goal_config_adapter: TypeAdapter[GoalConfig] = TypeAdapter(GoalConfig)

GOAL_TYPES = [t.value for t in GoalType]
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 300


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class GoalService:
    """Service for managing sustainability goals and their progress."""

    def __init__(
        self,
        goals: Any,
        orders: Any,
        catalog: Any,
        notifier: MilestoneNotifier,
        calculator: GoalProgressCalculator | None = None,
        max_active_goals: int = 5,
    ):
        self.goals = goals
        self.orders = orders
        self.catalog = catalog
        self.notifier = notifier
        self.calculator = calculator or GoalProgressCalculator()
        self.max_active_goals = max_active_goals

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validate_goal_config(
        self, goal_type: str | None, goal_config: dict[str, Any] | None
    ) -> GoalConfigValidation:
        """Check a raw goal configuration, collecting one error per offending field."""
        errors: list[FieldError] = []
        config = goal_config or {}

        percentage = config.get("percentage", DEFAULT_TARGET_PERCENTAGE)
        if not _is_number(percentage) or not 1 <= percentage <= 100:
            errors.append(FieldError(field="percentage", message="Goal percentage must be between 1 and 100"))

        if goal_type == GoalType.GRADE_BASED.value:
            errors.extend(self._validate_grades(config, required=True))
        elif goal_type == GoalType.SCORE_BASED.value:
            minimum_score = config.get("minimum_score")
            if not _is_number(minimum_score) or not 0 <= minimum_score <= 100:
                errors.append(
                    FieldError(field="minimum_score", message="Minimum score must be between 0 and 100")
                )
        elif goal_type == GoalType.CATEGORY_BASED.value:
            categories = config.get("categories")
            if not isinstance(categories, list) or not categories:
                errors.append(
                    FieldError(field="categories", message="At least one category must be selected")
                )
            errors.extend(self._validate_grades(config, required=False))
        else:
            errors.append(
                FieldError(
                    field="goal_type",
                    message="Invalid goal type. Must be grade-based, score-based, or category-based",
                )
            )

        return GoalConfigValidation(is_valid=not errors, errors=errors)

    def _validate_grades(self, config: dict[str, Any], required: bool) -> list[FieldError]:
        grades = config.get("target_grades")
        if grades is None and not required:
            return []
        if not isinstance(grades, list) or not grades:
            return [FieldError(field="target_grades", message="At least one target grade must be selected")]
        unknown = [g for g in grades if g not in SUSTAINABILITY_GRADES]
        if unknown:
            return [FieldError(field="target_grades", message=f"Unknown sustainability grades: {unknown}")]
        return []

    def build_goal_config(self, goal_type: str | None, goal_config: dict[str, Any] | None) -> GoalConfig:
        """Validate a raw configuration and build the typed variant."""
        validation = self.validate_goal_config(goal_type, goal_config)
        if not validation.is_valid:
            error = validation.errors[0]
            raise GoalValidationError(error.field, error.message)

        data = {k: v for k, v in (goal_config or {}).items() if k != "goal_type"}
        try:
            config = goal_config_adapter.validate_python({**data, "goal_type": goal_type})
        except ValidationError as e:
            first = e.errors(include_url=False)[0]
            field = str(first["loc"][-1]) if first["loc"] else "goal_config"
            raise GoalValidationError(field, first["msg"]) from e

        if isinstance(config, CategoryBasedConfig) and config.target_grades is None:
            config.target_grades = list(ECO_FRIENDLY_GRADES)
        return config

    # ==========================================================================
    # CRUD
    # ==========================================================================

    async def create_goal(self, user_id: str, payload: GoalCreate) -> SustainabilityGoal:
        """
        Create a goal for a user.

        Raises:
            GoalValidationError: Missing fields, invalid configuration or
                the active-goal cap is reached
        """
        if not payload.goal_type:
            raise GoalValidationError("goal_type", "Goal type is required")
        if payload.goal_config is None:
            raise GoalValidationError("goal_config", "Goal configuration is required")
        title = (payload.title or "").strip()
        if not title:
            raise GoalValidationError("title", "Title is required")
        if len(title) > TITLE_MAX_LENGTH:
            raise GoalValidationError("title", f"Title must be at most {TITLE_MAX_LENGTH} characters")

        config = self.build_goal_config(payload.goal_type, payload.goal_config)

        active = await self.goals.count_active(user_id)
        if active >= self.max_active_goals:
            raise GoalValidationError(
                "is_active",
                f"You can have maximum {self.max_active_goals} active goals. "
                f"Please deactivate some goals first.",
            )

        description = (payload.description or "").strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise GoalValidationError(
                "description", f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"
            )

        goal = SustainabilityGoal(
            id=str(uuid4()),
            user_id=user_id,
            title=title,
            description=description or self.calculator.generate_goal_description(config),
            goal_config=config,
            is_active=True,
        )
        goal = await self.goals.create(goal)

        logger.info("Created goal", user_id=user_id, goal_id=goal.id, goal_type=goal.goal_type.value)
        return goal

    async def update_goal(
        self, user_id: str, goal_id: str, payload: GoalUpdate
    ) -> SustainabilityGoal:
        goal = await self.get_goal(user_id, goal_id)
        changes: dict[str, Any] = {}

        if payload.goal_type or payload.goal_config:
            goal_type = payload.goal_type or goal.goal_type.value
            merged = goal.goal_config.model_dump(exclude={"goal_type"})
            merged.update(payload.goal_config or {})
            changes["goal_config"] = self.build_goal_config(goal_type, merged)

        if payload.title is not None:
            title = payload.title.strip()
            if not title:
                raise GoalValidationError("title", "Title is required")
            if len(title) > TITLE_MAX_LENGTH:
                raise GoalValidationError("title", f"Title must be at most {TITLE_MAX_LENGTH} characters")
            changes["title"] = title

        if payload.description is not None:
            description = payload.description.strip()
            if len(description) > DESCRIPTION_MAX_LENGTH:
                raise GoalValidationError(
                    "description", f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"
                )
            changes["description"] = description

        if payload.is_active is not None:
            if payload.is_active and not goal.is_active:
                active = await self.goals.count_active(user_id)
                if active >= self.max_active_goals:
                    raise GoalValidationError(
                        "is_active",
                        f"You can have maximum {self.max_active_goals} active goals. "
                        f"Please deactivate some goals first.",
                    )
            changes["is_active"] = payload.is_active

        updated = await self.goals.update(goal.model_copy(update=changes))
        logger.info("Updated goal", user_id=user_id, goal_id=goal_id, fields=sorted(changes))
        return updated

    async def delete_goal(self, user_id: str, goal_id: str) -> None:
        deleted = await self.goals.delete(user_id, goal_id)
        if not deleted:
            raise GoalNotFoundError(goal_id)
        logger.info("Deleted goal", user_id=user_id, goal_id=goal_id)

    async def get_goal(self, user_id: str, goal_id: str) -> SustainabilityGoal:
        goal = await self.goals.get(user_id, goal_id)
        if goal is None:
            raise GoalNotFoundError(goal_id)
        return goal

    async def get_user_goals(
        self, user_id: str, active_only: bool = True
    ) -> list[SustainabilityGoal]:
        return await self.goals.list_for_user(user_id, active_only=active_only)

    async def get_goal_stats(self, user_id: str) -> GoalStats:
        goals = await self.goals.list_for_user(user_id, active_only=False)
        if not goals:
            return GoalStats()

        average = sum(g.progress.current_percentage for g in goals) / len(goals)
        return GoalStats(
            total_goals=len(goals),
            active_goals=sum(1 for g in goals if g.is_active),
            achieved_goals=sum(1 for g in goals if g.is_achieved),
            average_progress=math.floor(average + 0.5),
            goal_types=GoalTypeCounts(
                grade_based=sum(1 for g in goals if g.goal_type == GoalType.GRADE_BASED),
                score_based=sum(1 for g in goals if g.goal_type == GoalType.SCORE_BASED),
                category_based=sum(1 for g in goals if g.goal_type == GoalType.CATEGORY_BASED),
            ),
        )

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def get_goal_progress(self, user_id: str, goal_id: str) -> GoalProgressDetail:
        """
        Recompute a goal's progress from the user's full paid-order history.

        The recomputed counters replace the stored ones, so repeated calls
        never double-count. Milestones crossed since the stored percentage
        are notified.
        """
        goal = await self.get_goal(user_id, goal_id)
        purchases = await self.orders.get_paid_purchases(user_id)
        progress = self.calculator.calculate_progress(goal, purchases)
        now = datetime.now(timezone.utc)

        try:
            previous = await self.goals.replace_progress(
                goal.id,
                progress.counters(),
                progress.current_percentage,
                [p.order_id for p in purchases],
                now,
            )
            await self.goals.commit()
        except Exception:
            await self.goals.rollback()
            raise

        milestones = MilestoneResult()
        if goal.is_active:
            milestones = await self.notifier.notify(goal, previous, progress.current_percentage)

        stored = goal.progress.model_copy(
            update={
                **progress.counters().model_dump(),
                "current_percentage": progress.current_percentage,
                "last_updated": now,
            }
        )
        return GoalProgressDetail(
            goal=goal.model_copy(update={"progress": stored}),
            progress=progress,
            previous_percentage=previous,
            notifications=milestones.created,
            failed_milestones=milestones.failed,
        )

    async def track_purchase(self, user_id: str, order_id: str) -> PurchaseTrackingResult:
        """
        Add one paid order to every active goal of the user.

        Counters are incremented in the database, and an order already
        counted for a goal is left out. Milestones are checked after each
        goal's update is committed.

        Raises:
            OrderNotFoundError: The order is not a paid order of this user
        """
        purchase = await self.orders.get_paid_purchase(user_id, order_id)
        if purchase is None:
            raise OrderNotFoundError(order_id)

        result = PurchaseTrackingResult(order_id=order_id)
        goals = await self.goals.list_for_user(user_id, active_only=True)

        for goal in goals:
            delta = self.calculator.purchase_contribution(goal, purchase)
            now = datetime.now(timezone.utc)

            try:
                applied = await self.goals.apply_progress_delta(goal.id, purchase.order_id, delta)
                if applied is None:
                    await self.goals.rollback()
                    current = goal.progress.current_percentage
                    result.updated_goals.append(
                        GoalUpdateSummary(
                            goal_id=goal.id,
                            title=goal.title,
                            counted=False,
                            previous_percentage=current,
                            new_percentage=current,
                            is_achieved=goal.is_achieved,
                            progress_status=self.calculator.determine_status(
                                current, goal.target_percentage, goal.progress.total_items
                            ),
                        )
                    )
                    continue

                previous, counters = applied
                progress = self.calculator.summarize(counters, goal.target_percentage)
                await self.goals.set_percentage(goal.id, progress.current_percentage, now)
                await self.goals.commit()
            except Exception:
                await self.goals.rollback()
                raise

            milestones = await self.notifier.notify(goal, previous, progress.current_percentage)
            result.updated_goals.append(
                GoalUpdateSummary(
                    goal_id=goal.id,
                    title=goal.title,
                    counted=True,
                    previous_percentage=previous,
                    new_percentage=progress.current_percentage,
                    is_achieved=progress.is_achieved,
                    progress_status=progress.progress_status,
                    notifications=milestones.created,
                    failed_milestones=milestones.failed,
                )
            )

        logger.info(
            "Tracked purchase",
            user_id=user_id,
            order_id=order_id,
            goals=len(goals),
            counted=sum(1 for g in result.updated_goals if g.counted),
        )
        return result

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def check_product_meets_goals(self, user_id: str, product_id: str) -> ProductGoalAlignment:
        """Which active goals a catalog product would count towards."""
        products = await self.catalog.get_products_by_ids([product_id])
        goals = await self.goals.list_for_user(user_id, active_only=True)
        if not products or not goals:
            return ProductGoalAlignment(total_goals=len(goals))

        product = products[0]
        matches = [
            GoalMatch(goal_id=g.id, goal_title=g.title, goal_type=g.goal_type)
            for g in goals
            if self.calculator.meets_goal(g.goal_config, product)
        ]
        return ProductGoalAlignment(
            meets_any_goal=bool(matches),
            matching_goals=matches,
            total_goals=len(goals),
            alignment_percentage=len(matches) / len(goals) * 100,
        )

    def generate_goal_description(self, goal_type: str, goal_config: dict[str, Any]) -> str:
        if goal_type not in GOAL_TYPES:
            return "Custom sustainability goal"
        return self.calculator.generate_goal_description(
            self.build_goal_config(goal_type, goal_config)
        )

    def get_goal_progress_status(self, progress_percentage: float, target_percentage: float) -> str:
        return self.calculator.get_goal_progress_status(progress_percentage, target_percentage)
