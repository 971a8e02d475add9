"""Unit tests for goal progress calculation."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from personalization_service.schemas.goal import (
    CategoryBasedConfig,
    GoalProgress,
    GradeBasedConfig,
    ProgressCounters,
    ProgressStatus,
    Purchase,
    PurchaseItem,
    ScoreBasedConfig,
    SustainabilityGoal,
)
from personalization_service.services.goal_progress import (
    GoalProgressCalculator,
    ProgressOptions,
)

from conftest import NOW

GRADE_A = {"sustainability_grade": "A", "sustainability_score": 92.0, "category": "Fashion"}
GRADE_D = {"sustainability_grade": "D", "sustainability_score": 35.0, "category": "Electronics"}


@pytest.fixture
def calculator() -> GoalProgressCalculator:
    return GoalProgressCalculator()


@pytest.fixture
def grade_goal() -> SustainabilityGoal:
    return SustainabilityGoal(
        id="goal-1",
        user_id="u1",
        title="Buy A/B",
        goal_config=GradeBasedConfig(target_grades=["A", "B"], percentage=80),
    )


def _history(purchase_factory: Callable[..., Purchase], pattern: list[bool]) -> list[Purchase]:
    return [
        purchase_factory(
            f"order-{i}",
            [GRADE_A if met else GRADE_D],
            created_at=NOW + timedelta(days=i),
        )
        for i, met in enumerate(pattern)
    ]


class TestCalculateProgress:
    def test_six_of_ten_items_is_on_track(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = [
            purchase_factory("order-1", [GRADE_A, GRADE_A, GRADE_A, GRADE_D, GRADE_D]),
            purchase_factory(
                "order-2",
                [GRADE_A, {**GRADE_A, "sustainability_grade": "B"}, GRADE_A, GRADE_D, GRADE_D],
                created_at=NOW + timedelta(days=1),
            ),
        ]

        progress = calculator.calculate_progress(grade_goal, purchases)

        assert progress.total_items == 10
        assert progress.goal_met_items == 6
        assert progress.current_percentage == pytest.approx(60)
        assert progress.progress_status == ProgressStatus.ON_TRACK
        assert progress.is_achieved is False
        assert progress.total_purchases == 2
        assert progress.goal_met_purchases == 2

    def test_no_purchases_is_not_started(
        self, calculator: GoalProgressCalculator, grade_goal: SustainabilityGoal
    ) -> None:
        progress = calculator.calculate_progress(grade_goal, [])

        assert progress.current_percentage == 0
        assert progress.progress_status == ProgressStatus.NOT_STARTED
        assert progress.insights == []

    def test_quantity_weighting(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = [purchase_factory("order-1", [{**GRADE_A, "quantity": 3}, GRADE_D])]

        weighted = calculator.calculate_progress(grade_goal, purchases)
        unweighted = calculator.calculate_progress(
            grade_goal, purchases, ProgressOptions(weight_by_quantity=False)
        )

        assert weighted.current_percentage == pytest.approx(75)
        assert unweighted.current_percentage == pytest.approx(50)

    def test_price_weighting_only_fills_value_counters(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = [
            purchase_factory("order-1", [{**GRADE_A, "price": 30.0}, {**GRADE_D, "price": 10.0}])
        ]

        plain = calculator.calculate_progress(grade_goal, purchases)
        priced = calculator.calculate_progress(
            grade_goal, purchases, ProgressOptions(weight_by_price=True)
        )

        assert plain.total_value == 0
        assert priced.total_value == pytest.approx(40)
        assert priced.goal_met_value == pytest.approx(30)
        assert priced.current_percentage == plain.current_percentage == pytest.approx(50)

    def test_timeframe_excludes_other_purchases(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, False, False])
        options = ProgressOptions(timeframe=(NOW + timedelta(days=1), NOW + timedelta(days=2)))

        progress = calculator.calculate_progress(grade_goal, purchases, options)

        assert progress.total_purchases == 2
        assert progress.goal_met_items == 0

    def test_percentage_matches_counters(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, False, True, True, False, False, True])

        progress = calculator.calculate_progress(grade_goal, purchases)

        assert progress.current_percentage == pytest.approx(
            progress.goal_met_items / progress.total_items * 100
        )


class TestIncrementalProgress:
    def test_incremental_matches_full_recompute(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, True, False, True, True, True, False, True])

        progress = GoalProgress(target_percentage=grade_goal.target_percentage)
        for purchase in purchases:
            progress = calculator.apply_purchase(progress, purchase, grade_goal)

        full = calculator.calculate_progress(grade_goal, purchases)
        assert progress.counters() == full.counters()
        assert progress.current_percentage == pytest.approx(full.current_percentage)
        assert progress.streaks == full.streaks
        assert progress.breakdown == full.breakdown

    def test_price_weighted_values_converge(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = [
            purchase_factory("order-1", [{**GRADE_A, "price": 0.1}]),
            purchase_factory(
                "order-2",
                [{**GRADE_A, "price": 0.2}, {**GRADE_A, "price": 0.3}],
                created_at=NOW + timedelta(days=1),
            ),
        ]
        options = ProgressOptions(weight_by_price=True)

        progress = GoalProgress(target_percentage=grade_goal.target_percentage)
        stored = ProgressCounters()
        for purchase in purchases:
            progress = calculator.apply_purchase(progress, purchase, grade_goal, options)
            delta = calculator.purchase_contribution(grade_goal, purchase, options)
            stored = ProgressCounters(
                **{name: getattr(stored, name) + value for name, value in delta.model_dump().items()}
            )

        full = calculator.calculate_progress(grade_goal, purchases, options)
        assert progress.counters() == full.counters()
        assert stored == full.counters()

    def test_summarize_derives_from_counters(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, True, True, True, False])
        full = calculator.calculate_progress(grade_goal, purchases)

        summary = calculator.summarize(full.counters(), grade_goal.target_percentage)

        assert summary.current_percentage == pytest.approx(80)
        assert summary.is_achieved is True
        assert summary.progress_status == ProgressStatus.ACHIEVED

    def test_purchase_contribution(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchase = purchase_factory("order-1", [{**GRADE_A, "quantity": 2}, GRADE_D])

        delta = calculator.purchase_contribution(grade_goal, purchase)

        assert delta.total_items == 3
        assert delta.goal_met_items == 2
        assert delta.total_purchases == 1
        assert delta.goal_met_purchases == 1


class TestStreaksAndBreakdown:
    def test_streaks(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, True, True, True, False, True, True])

        streaks = calculator.calculate_progress(grade_goal, purchases).streaks

        assert streaks.current == 2
        assert streaks.longest == 4
        assert streaks.recent == [True, True, False, True, True, True, True]

    def test_recent_window_is_bounded(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [False] * 3 + [True] * 10)

        streaks = calculator.calculate_progress(grade_goal, purchases).streaks

        assert streaks.recent == [True] * 10

    def test_breakdown_counts_goal_met_items(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        created_at = datetime(2026, 10, 1, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        purchases = [purchase_factory("order-1", [GRADE_A, {**GRADE_A, "quantity": 2}, GRADE_D], created_at)]

        breakdown = calculator.calculate_progress(grade_goal, purchases).breakdown

        assert breakdown.by_category == {"Fashion": 3}
        assert breakdown.by_grade == {"A": 3}
        assert breakdown.by_score == {"90-100": 3}
        assert breakdown.by_month["2026-09"].total == 4
        assert breakdown.by_month["2026-09"].goal_met == 3


class TestMeetsGoal:
    def test_score_based(self, calculator: GoalProgressCalculator) -> None:
        config = ScoreBasedConfig(minimum_score=70)

        assert calculator.meets_goal(config, PurchaseItem(product_id="p", sustainability_score=70))
        assert not calculator.meets_goal(config, PurchaseItem(product_id="p", sustainability_score=69.9))

    def test_category_based_with_grades(self, calculator: GoalProgressCalculator) -> None:
        config = CategoryBasedConfig(categories=["Fashion"], target_grades=["A"])

        assert calculator.meets_goal(config, PurchaseItem(product_id="p", **GRADE_A))
        assert not calculator.meets_goal(
            config, PurchaseItem(product_id="p", **{**GRADE_A, "sustainability_grade": "C"})
        )
        assert not calculator.meets_goal(config, PurchaseItem(product_id="p", **GRADE_D))

    def test_category_based_without_grades(self, calculator: GoalProgressCalculator) -> None:
        config = CategoryBasedConfig(categories=["Electronics"])

        assert calculator.meets_goal(config, PurchaseItem(product_id="p", **GRADE_D))

    def test_category_based_with_empty_grade_list(self, calculator: GoalProgressCalculator) -> None:
        config = CategoryBasedConfig(categories=["Electronics"], target_grades=[])

        assert not calculator.meets_goal(config, PurchaseItem(product_id="p", **GRADE_D))

    def test_unsupported_config(self, calculator: GoalProgressCalculator) -> None:
        with pytest.raises(TypeError):
            calculator.meets_goal(object(), PurchaseItem(product_id="p"))


class TestStatusAndText:
    @pytest.mark.parametrize(
        "current,expected",
        [
            (80, ProgressStatus.ACHIEVED),
            (64, ProgressStatus.ALMOST_THERE),
            (63.9, ProgressStatus.ON_TRACK),
            (40, ProgressStatus.ON_TRACK),
            (20, ProgressStatus.GETTING_STARTED),
            (19.9, ProgressStatus.NEEDS_IMPROVEMENT),
        ],
    )
    def test_determine_status(
        self, calculator: GoalProgressCalculator, current: float, expected: ProgressStatus
    ) -> None:
        assert calculator.determine_status(current, 80, total_items=10) == expected

    @pytest.mark.parametrize(
        "progress,expected",
        [(80, "Achieved"), (56, "Almost There"), (24, "In Progress"), (10, "Getting Started")],
    )
    def test_progress_status_label(
        self, calculator: GoalProgressCalculator, progress: float, expected: str
    ) -> None:
        assert calculator.get_goal_progress_status(progress, 80) == expected

    def test_goal_descriptions(self, calculator: GoalProgressCalculator) -> None:
        assert calculator.generate_goal_description(
            GradeBasedConfig(target_grades=["A", "B"])
        ) == "Only buy products with A, B sustainability rating (80% of purchases)"
        assert calculator.generate_goal_description(
            ScoreBasedConfig(minimum_score=75, percentage=60)
        ) == "Only buy products with 75+ sustainability score (60% of purchases)"
        assert calculator.generate_goal_description(
            CategoryBasedConfig(categories=["Fashion", "Electronics"], target_grades=["A"])
        ) == "Only buy A rated products in Fashion, Electronics (80% of purchases)"

    def test_insights(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [True, True, True])

        insights = calculator.calculate_progress(grade_goal, purchases).insights

        assert [i.type for i in insights] == ["achievement", "streak", "category"]
        assert insights[0].priority == "high"
        assert "3-purchase" in insights[1].message

    def test_almost_there_insight(
        self,
        calculator: GoalProgressCalculator,
        grade_goal: SustainabilityGoal,
        purchase_factory: Callable[..., Purchase],
    ) -> None:
        purchases = _history(purchase_factory, [False, True, True, False, True, True, True, True])

        progress = calculator.calculate_progress(grade_goal, purchases)

        assert progress.current_percentage == 75
        assert "almost_there" in [i.type for i in progress.insights]
        assert "5.0%" in next(i.message for i in progress.insights if i.type == "almost_there")
