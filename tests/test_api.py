from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from ride_core.api.dependencies import get_external_client, get_session, get_settings
from ride_core.main import app
from ride_shared.db.enums import DiscountType, PlanType
from ride_shared.db.models import PricingConfig, PricingPlan, PricingRule, Promotion

START = {"latitude": 3.8480, "longitude": 11.5021}
END = {"latitude": 3.8660, "longitude": 11.5021}


@pytest.fixture
def client(session_factory, settings, external_client):
    def _get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_external_client] = lambda: external_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def _deposit(client, rider_id, amount):
    response = client.post(f"/api/v1/wallets/{rider_id}/deposit", json={"amount": str(amount)})
    assert response.status_code == 200
    return response.json()


def _start(client, rider_id="rider-1", bike_id="bike-a"):
    return client.post(
        "/api/v1/rides/start", json={"rider_id": rider_id, "bike_id": bike_id, **START}
    )


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_circuit_breaker_health(client, external_client):
    external_client.get_circuit_breaker_stats.return_value = {
        "gps": {"state": "closed", "fail_counter": 0, "fail_max": 5, "reset_timeout": 30}
    }

    response = client.get("/api/v1/health/circuit-breakers")

    assert response.status_code == 200
    assert response.json()["circuit_breakers"]["gps"]["state"] == "closed"


def test_wallet_deposit_and_balance(client):
    body = _deposit(client, "rider-1", "12.50")
    assert Decimal(body["balance"]) == Decimal("12.50")

    response = client.get("/api/v1/wallets/rider-1")
    assert Decimal(response.json()["balance"]) == Decimal("12.50")


def test_wallet_withdraw(client):
    _deposit(client, "rider-1", "20")

    response = client.post(
        "/api/v1/wallets/rider-1/withdraw", json={"amount": "15", "fees": "1"}
    )
    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("4.00")

    overdraft = client.post("/api/v1/wallets/rider-1/withdraw", json={"amount": "5"})
    assert overdraft.status_code == 402
    assert overdraft.json()["detail"]["code"] == "insufficient_balance"
    assert client.get("/api/v1/wallets/rider-1/reconcile").json()["consistent"] is True


def test_wallet_rejects_non_positive_amount(client):
    response = client.post("/api/v1/wallets/rider-1/deposit", json={"amount": "0"})
    assert response.status_code == 422


def test_ride_flow(client, add_bike, external_client):
    add_bike("bike-a")
    _deposit(client, "rider-1", 10)

    started = _start(client)
    assert started.status_code == 201
    ride_id = started.json()["id"]
    assert started.json()["status"] == "IN_PROGRESS"

    active = client.get("/api/v1/riders/rider-1/rides/active")
    assert active.json()["id"] == ride_id

    ended = client.post(f"/api/v1/rides/{ride_id}/end", json=END)
    assert ended.status_code == 200
    body = ended.json()
    assert body["status"] == "COMPLETED"
    assert body["duration"] == 0
    assert Decimal(body["cost"]) == Decimal("1.00")

    again = client.post(f"/api/v1/rides/{ride_id}/end", json=END)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ride_not_active"

    balance = client.get("/api/v1/wallets/rider-1").json()["balance"]
    assert Decimal(balance) == Decimal("9.00")

    transactions = client.get("/api/v1/wallets/rider-1/transactions").json()
    assert transactions["pagination"]["total"] == 2
    assert transactions["transactions"][0]["type"] in {"DEPOSIT", "RIDE_PAYMENT"}

    reconcile = client.get("/api/v1/wallets/rider-1/reconcile").json()
    assert reconcile["consistent"] is True

    assert client.get(f"/api/v1/rides/{ride_id}").json()["status"] == "COMPLETED"
    assert client.get("/api/v1/riders/rider-1/rides/active").json() is None

    stats = client.get("/api/v1/riders/rider-1/rides/stats").json()
    assert stats["total_rides"] == 1

    history = client.get("/api/v1/riders/rider-1/rides", params={"page": 1, "limit": 5}).json()
    assert [r["id"] for r in history["rides"]] == [ride_id]


def test_start_errors_are_distinguishable(client, add_bike):
    add_bike("bike-a")

    assert _start(client, bike_id="ghost").json()["detail"]["code"] == "bike_not_found"

    poor = _start(client)
    assert poor.status_code == 402
    assert poor.json()["detail"]["code"] == "insufficient_balance"

    _deposit(client, "rider-1", 20)
    assert _start(client).status_code == 201

    twice = _start(client)
    assert twice.status_code == 409
    assert twice.json()["detail"]["code"] == "ride_already_active"

    _deposit(client, "rider-2", 20)
    taken = _start(client, rider_id="rider-2")
    assert taken.status_code == 409
    assert taken.json()["detail"]["code"] == "bike_unavailable"


def test_cancel_ride(client, add_bike):
    add_bike("bike-a")
    _deposit(client, "rider-1", 10)
    ride_id = _start(client).json()["id"]

    wrong = client.post(f"/api/v1/rides/{ride_id}/cancel", json={"rider_id": "rider-2"})
    assert wrong.status_code == 404

    cancelled = client.post(f"/api/v1/rides/{ride_id}/cancel", json={"rider_id": "rider-1"})
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"
    assert cancelled.json()["cost"] is None


def test_unknown_ride(client):
    assert client.get("/api/v1/rides/missing").status_code == 404


def test_refund(client):
    response = client.post(
        "/api/v1/wallets/rider-1/refund",
        json={"amount": "2.5", "reason": "bike fault", "ride_id": "r1"},
    )
    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("2.50")


def test_pricing_without_config(client):
    response = client.get("/api/v1/pricing/current")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "no_pricing_config"


def test_pricing_current_and_redeem(client, db_session):
    now = datetime.now(timezone.utc)
    config = PricingConfig(id="cfg-1", unlock_fee=100, base_hourly_rate=200)
    plan = PricingPlan(
        id="plan-1",
        name="basic",
        type=PlanType.HOURLY,
        hourly_rate=200,
        daily_rate=4000,
        weekly_rate=20000,
        monthly_rate=60000,
    )
    promo = Promotion(
        id="promo-1",
        name="launch",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=10,
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=1),
        usage_limit=1,
    )
    config.plans.append(plan)
    config.rules.append(
        PricingRule(id="rule-1", name="night", start_hour=22, end_hour=6, multiplier=1.5, priority=10)
    )
    config.promotions.append(promo)
    plan.promotions.append(promo)
    db_session.add(config)
    db_session.commit()

    response = client.get(
        "/api/v1/pricing/current", params={"date": "2025-03-12T00:00:00+00:00", "hour": 23}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["multiplier"] == 1.5
    assert body["applied_rule"]["name"] == "night"
    assert body["plans"][0]["hourly_rate"] == 270
    assert body["plans"][0]["original_hourly_rate"] == 200

    redeemed = client.post("/api/v1/pricing/promotions/promo-1/redeem")
    assert redeemed.status_code == 200
    assert redeemed.json()["usage_count"] == 1

    exhausted = client.post("/api/v1/pricing/promotions/promo-1/redeem")
    assert exhausted.status_code == 409
    assert client.post("/api/v1/pricing/promotions/nope/redeem").status_code == 404
