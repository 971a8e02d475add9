"""Unit tests for goal endpoints."""

from collections.abc import Callable

from fastapi.testclient import TestClient

from personalization_service.schemas.goal import Purchase
from personalization_service.schemas.product import Product

from conftest import FakeCatalog, FakeOrderRepository

GOAL_PAYLOAD = {
    "goal_type": "grade-based",
    "goal_config": {"target_grades": ["A", "B"], "percentage": 80},
    "title": "Only eco-friendly clothes",
}
GRADE_A = {"sustainability_grade": "A", "sustainability_score": 90.0, "category": "Fashion"}
GRADE_D = {"sustainability_grade": "D", "sustainability_score": 30.0, "category": "Fashion"}


def _create_goal(client: TestClient, user_id: str, **overrides) -> dict:
    response = client.post(f"/api/v1/goals/{user_id}", json={**GOAL_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.json()


def test_validate_goal_config(client: TestClient) -> None:
    response = client.post(
        "/api/v1/goals/validate",
        json={"goal_type": "score-based", "goal_config": {"minimum_score": 150}},
    )
    assert response.status_code == 200

    data = response.json()
    assert data["is_valid"] is False
    assert data["errors"][0]["field"] == "minimum_score"


def test_describe_goal(client: TestClient) -> None:
    response = client.post(
        "/api/v1/goals/describe",
        json={"goal_type": "score-based", "goal_config": {"minimum_score": 70, "percentage": 50}},
    )
    assert response.status_code == 200
    assert response.json()["description"] == (
        "Only buy products with 70+ sustainability score (50% of purchases)"
    )


def test_progress_status_label(client: TestClient) -> None:
    response = client.get("/api/v1/goals/progress-status", params={"progress": 56, "target": 80})
    assert response.status_code == 200
    assert response.json()["status"] == "Almost There"


def test_create_and_list_goals(client: TestClient, sample_user_id: str) -> None:
    assert client.get(f"/api/v1/goals/{sample_user_id}").json()["count"] == 0

    goal = _create_goal(client, sample_user_id)

    assert goal["goal_config"]["goal_type"] == "grade-based"
    assert goal["description"].startswith("Only buy products with A, B")

    listing = client.get(f"/api/v1/goals/{sample_user_id}").json()
    assert listing["count"] == 1
    assert listing["goals"][0]["id"] == goal["id"]


def test_create_goal_validation_error(client: TestClient, sample_user_id: str) -> None:
    response = client.post(
        f"/api/v1/goals/{sample_user_id}",
        json={**GOAL_PAYLOAD, "goal_config": {"target_grades": ["A"], "percentage": 0}},
    )
    assert response.status_code == 400

    data = response.json()
    assert data["details"]["field"] == "percentage"
    assert "between 1 and 100" in data["error"]


def test_active_goal_cap(client: TestClient, sample_user_id: str) -> None:
    for i in range(5):
        _create_goal(client, sample_user_id, title=f"goal {i}")

    response = client.post(f"/api/v1/goals/{sample_user_id}", json=GOAL_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["details"]["field"] == "is_active"


def test_get_update_delete_goal(client: TestClient, sample_user_id: str) -> None:
    goal = _create_goal(client, sample_user_id)
    url = f"/api/v1/goals/{sample_user_id}/{goal['id']}"

    assert client.get(url).json()["title"] == GOAL_PAYLOAD["title"]

    response = client.put(url, json={"title": "Renamed", "goal_config": {"percentage": 60}})
    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"
    assert response.json()["goal_config"]["percentage"] == 60

    assert client.delete(url).status_code == 204

    response = client.get(url)
    assert response.status_code == 404
    assert response.json()["details"] == {"goal_id": goal["id"]}


def test_goal_stats(client: TestClient, sample_user_id: str) -> None:
    _create_goal(client, sample_user_id)
    _create_goal(
        client,
        sample_user_id,
        goal_type="category-based",
        goal_config={"categories": ["Fashion"]},
    )

    data = client.get(f"/api/v1/goals/{sample_user_id}/stats").json()

    assert data["total_goals"] == 2
    assert data["active_goals"] == 2
    assert data["goal_types"]["category_based"] == 1


def test_track_purchase_and_notifications(
    client: TestClient,
    sample_user_id: str,
    order_repository: FakeOrderRepository,
    purchase_factory: Callable[..., Purchase],
) -> None:
    goal = _create_goal(client, sample_user_id)
    order_repository.add(sample_user_id, purchase_factory("order-1", [GRADE_A, GRADE_A, GRADE_D]))

    response = client.post(
        f"/api/v1/goals/{sample_user_id}/track-purchase", json={"order_id": "order-1"}
    )
    assert response.status_code == 200

    summary = response.json()["updated_goals"][0]
    assert summary["goal_id"] == goal["id"]
    assert summary["counted"] is True
    assert summary["progress_status"] == "almost_there"
    assert [n["milestone_type"] for n in summary["notifications"]] == ["25", "50"]

    repeat = client.post(
        f"/api/v1/goals/{sample_user_id}/track-purchase", json={"order_id": "order-1"}
    )
    assert repeat.json()["updated_goals"][0]["counted"] is False

    notifications = client.get(f"/api/v1/goals/{sample_user_id}/notifications").json()
    assert sorted(n["milestone_type"] for n in notifications) == ["25", "50"]


def test_track_unknown_order(client: TestClient, sample_user_id: str) -> None:
    response = client.post(
        f"/api/v1/goals/{sample_user_id}/track-purchase", json={"order_id": "missing"}
    )
    assert response.status_code == 404
    assert response.json()["details"] == {"order_id": "missing"}


def test_goal_progress(
    client: TestClient,
    sample_user_id: str,
    order_repository: FakeOrderRepository,
    purchase_factory: Callable[..., Purchase],
) -> None:
    goal = _create_goal(client, sample_user_id)
    order_repository.add(sample_user_id, purchase_factory("order-1", [GRADE_A, GRADE_D]))

    response = client.get(f"/api/v1/goals/{sample_user_id}/{goal['id']}/progress")
    assert response.status_code == 200

    data = response.json()
    assert data["progress"]["current_percentage"] == 50
    assert data["progress"]["total_items"] == 2
    assert data["previous_percentage"] == 0
    assert data["goal"]["progress"]["current_percentage"] == 50
    assert [n["milestone_type"] for n in data["notifications"]] == ["25", "50"]


def test_product_alignment(
    client: TestClient,
    sample_user_id: str,
    catalog: FakeCatalog,
    product_factory: Callable[..., Product],
) -> None:
    catalog.products = [product_factory("p1", sustainability_grade="A")]
    _create_goal(client, sample_user_id)

    response = client.get(f"/api/v1/goals/{sample_user_id}/products/p1/alignment")
    assert response.status_code == 200

    data = response.json()
    assert data["meets_any_goal"] is True
    assert data["alignment_percentage"] == 100
