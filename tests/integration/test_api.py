"""Integration tests for API endpoints"""

import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient
from budget_engine.domain.exceptions import RecordStoreError
from budget_engine.infrastructure.database.models import ScenarioRow

HEADERS = {"X-User-ID": "user-1"}


@pytest.fixture
def scenario_id(db) -> str:
    """Seed a USD scenario for user-1"""
    row = ScenarioRow(
        user_id="user-1",
        slug="main",
        name="Main plan",
        base_currency="USD",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    db.add(row)
    db.commit()
    return row.id


def create(client: TestClient, scenario_id: str, entity: str, body: dict):
    return client.post(f"/v1/scenarios/{scenario_id}/{entity}", json=body, headers=HEADERS)


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "budget_conversion_requests_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_user_header_required(client: TestClient, scenario_id: str):
    assert client.get("/v1/scenarios").status_code == 422


def test_list_scenarios(client: TestClient, scenario_id: str):
    response = client.get("/v1/scenarios", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "user-1"
    assert [s["id"] for s in data["scenarios"]] == [scenario_id]
    assert data["scenarios"][0]["base_currency"] == "USD"


def test_foreign_scenario_is_not_found(client: TestClient, scenario_id: str):
    response = client.get(f"/v1/scenarios/{scenario_id}/summary", headers={"X-User-ID": "user-2"})
    assert response.status_code == 404


def test_create_and_list_incomes(client: TestClient, scenario_id: str):
    """Test POST then GET returns the record and its converted total"""
    response = create(client, scenario_id, "incomes", {"amount": 3000, "currency": "usd", "type": "salary"})
    assert response.status_code == 201
    record = response.json()["record"]
    assert record["currency"] == "USD"
    assert not record["id"].startswith("temp-")

    create(client, scenario_id, "incomes", {"amount": 100, "currency": "EUR", "type": "rent", "frequency": "monthly"})

    response = client.get(f"/v1/scenarios/{scenario_id}/incomes", headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "resolved"
    assert data["base_currency"] == "USD"
    assert [r["type"] for r in data["records"]] == ["rent", "salary"]
    # 3000 + round(100 × 1.084)
    assert data["total"] == 3108


def test_invalid_payload_rejected(client: TestClient, scenario_id: str):
    response = create(client, scenario_id, "incomes", {"amount": -5, "currency": "USD", "type": "salary"})
    assert response.status_code == 422

    response = create(client, scenario_id, "incomes", {"amount": 5, "currency": "EURO", "type": "salary"})
    assert response.status_code == 422


def test_unknown_entity_type(client: TestClient, scenario_id: str):
    assert client.get(f"/v1/scenarios/{scenario_id}/loans", headers=HEADERS).status_code == 404
    assert create(client, scenario_id, "loans", {"amount": 1}).status_code == 404


def test_update_record(client: TestClient, scenario_id: str):
    record = create(client, scenario_id, "expenses", {"amount": 1200, "currency": "USD", "type": "rent"}).json()["record"]

    response = client.patch(
        f"/v1/scenarios/{scenario_id}/expenses/{record['id']}",
        json={"amount": 1300},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["record"]["amount"] == 1300
    listing = client.get(f"/v1/scenarios/{scenario_id}/expenses", headers=HEADERS).json()
    assert listing["total"] == 1300


def test_update_unknown_record(client: TestClient, scenario_id: str):
    response = client.patch(
        f"/v1/scenarios/{scenario_id}/expenses/does-not-exist",
        json={"amount": 1},
        headers=HEADERS,
    )
    assert response.status_code == 404


def test_update_of_another_users_record_is_not_found(client: TestClient, scenario_id: str, db):
    """Test a record cannot be patched through someone else's scenario"""
    record = create(client, scenario_id, "incomes", {"amount": 1000, "currency": "USD", "type": "salary"}).json()["record"]
    other = ScenarioRow(user_id="user-2", slug="main", base_currency="USD")
    db.add(other)
    db.commit()

    response = client.patch(
        f"/v1/scenarios/{other.id}/incomes/{record['id']}",
        json={"amount": 1},
        headers={"X-User-ID": "user-2"},
    )

    assert response.status_code == 404
    listing = client.get(f"/v1/scenarios/{scenario_id}/incomes", headers=HEADERS).json()
    assert [r["amount"] for r in listing["records"]] == [1000]


def test_store_failure_maps_to_bad_gateway(client: TestClient, scenario_id: str, sql_store):
    """Test a rejected write is rolled back and reported as 502"""

    async def failing_create(entity_type, payload):
        raise RecordStoreError("database unavailable")

    sql_store.create = failing_create
    response = create(client, scenario_id, "incomes", {"amount": 10, "currency": "USD", "type": "gift"})

    assert response.status_code == 502
    listing = client.get(f"/v1/scenarios/{scenario_id}/incomes", headers=HEADERS).json()
    assert listing["records"] == []


def test_set_base_currency(client: TestClient, scenario_id: str):
    create(client, scenario_id, "incomes", {"amount": 100, "currency": "USD", "type": "salary"})
    assert client.get(f"/v1/scenarios/{scenario_id}/incomes", headers=HEADERS).json()["total"] == 100

    response = client.patch(f"/v1/scenarios/{scenario_id}", json={"base_currency": "eur"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["base_currency"] == "EUR"
    listing = client.get(f"/v1/scenarios/{scenario_id}/incomes", headers=HEADERS).json()
    assert listing["base_currency"] == "EUR"
    assert listing["total"] == 92


def test_set_base_currency_of_foreign_scenario(client: TestClient, scenario_id: str):
    response = client.patch(
        f"/v1/scenarios/{scenario_id}",
        json={"base_currency": "EUR"},
        headers={"X-User-ID": "user-2"},
    )
    assert response.status_code == 404


def test_summary(client: TestClient, scenario_id: str):
    create(client, scenario_id, "incomes", {"amount": 3000, "currency": "USD", "type": "salary"})
    create(client, scenario_id, "expenses", {"amount": 2400, "currency": "USD", "type": "insurance", "frequency": "annual"})
    create(client, scenario_id, "savings", {"amount": 500, "currency": "GBP"})

    response = client.get(f"/v1/scenarios/{scenario_id}/summary", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["income"] == 3000
    assert data["expense"] == 200
    assert data["goal"] == 0
    # 500 GBP × 1.25
    assert data["savings"] == 625
    assert data["balance"] == 2800


def test_goal_payments(client: TestClient, scenario_id: str):
    goal = create(
        client,
        scenario_id,
        "goals",
        {"name": "Trip", "target_amount": 1200, "currency": "USD", "target_date": "2099-01-01"},
    ).json()["record"]

    response = client.get(f"/v1/scenarios/{scenario_id}/goals/payments", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert set(data["payments"]) == {goal["id"]}
    assert data["payments"][goal["id"]] > 0
    assert data["total"] == data["payments"][goal["id"]]


def test_display_currency(client: TestClient, scenario_id: str):
    record = create(client, scenario_id, "incomes", {"amount": 100, "currency": "USD", "type": "salary"}).json()["record"]

    data = client.get(
        f"/v1/scenarios/{scenario_id}/incomes",
        params={"display_currency": "eur"},
        headers=HEADERS,
    ).json()

    assert data["display_currency"] == "EUR"
    assert data["display_amounts"] == {record["id"]: 92}
    assert data["total"] == 100


def test_savings_listing_reports_principal_and_interest(client: TestClient, scenario_id: str):
    create(
        client,
        scenario_id,
        "savings",
        {
            "amount": 1000,
            "currency": "USD",
            "interest_rate": 12,
            "capitalization_period": "monthly",
            "deposit_date": "2020-01-01T00:00:00Z",
        },
    )

    data = client.get(f"/v1/scenarios/{scenario_id}/savings", headers=HEADERS).json()

    assert data["totals"]["total_principal"] == 1000
    assert data["totals"]["total_with_interest"] > 1000
    assert data["total"] == pytest.approx(data["totals"]["total_with_interest"], abs=0.01)
