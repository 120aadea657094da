"""Tests for the FastAPI application."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

import api.main
from conftest import create_monitored
from rebalancer.guards import sign_callback
from rebalancer.units import SCALE

POSITION_ID = b"\x11" * 32


@pytest.fixture
def client(monkeypatch, deployment):
    monkeypatch.setattr(api.main, "_deployment", deployment)
    return TestClient(api.main.app)


@pytest.fixture
def callback_body(accounts, deployment) -> dict:
    signature = sign_callback(accounts.relay.key, POSITION_ID, deployment.destination.chain_id)
    return {
        "callback_id": "0x" + "01" * 32,
        "position_id": "0x" + POSITION_ID.hex(),
        "action_data": {"action_type": "rebalance", "amount": 100},
        "signature": "0x" + signature.hex(),
        "timestamp": int(time.time()),
    }


class TestCallback:
    def test_valid_callback(self, client, callback_body, deployment) -> None:
        response = client.post("/callback", json=callback_body)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["action_success"] is True

        [log] = deployment.store.list_reactive_logs(position_id=callback_body["position_id"])
        assert log.id == data["log_id"]
        assert log.status == "success"
        assert deployment.destination.exposure_of(POSITION_ID) == 100
        events = deployment.store.list_position_events(position_id=callback_body["position_id"])
        assert [e.event_type for e in events] == ["threshold_breach"]

    def test_inner_failure_is_reported(self, client, callback_body) -> None:
        callback_body["action_data"] = {"action_type": "liquidate", "amount": 100}

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 200
        assert response.json()["action_success"] is False

    @pytest.mark.parametrize("missing", ["callback_id", "position_id", "action_data", "signature", "timestamp"])
    def test_missing_field(self, client, callback_body, missing) -> None:
        del callback_body[missing]

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Missing required callback data"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("signature", "0x1234"),
            ("signature", "not-hex"),
            ("callback_id", "0x" + "zz" * 32),
            ("position_id", "11" * 32),
        ],
    )
    def test_bad_hex(self, client, callback_body, field, value) -> None:
        callback_body[field] = value

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == f"Invalid {field} format"

    def test_stale_timestamp(self, client, callback_body) -> None:
        callback_body["timestamp"] = int(time.time()) - 301

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Callback timestamp too old"

    def test_negative_amount(self, client, callback_body) -> None:
        callback_body["action_data"]["amount"] = -1

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "ValidationError"

    @pytest.mark.parametrize("field", ["amount", "min_amount_out"])
    def test_amount_above_uint256(self, client, callback_body, deployment, field) -> None:
        callback_body["action_data"][field] = 2**256

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "ValidationError"
        assert deployment.store.list_reactive_logs() == []
        assert len(deployment.destination.processed_callbacks) == 0

    def test_duplicate_callback(self, client, callback_body, deployment) -> None:
        assert client.post("/callback", json=callback_body).status_code == 200

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "EventAlreadyProcessed"
        statuses = [log.status for log in deployment.store.list_reactive_logs()]
        assert statuses == ["success", "failed"]

    def test_unauthorized_signer(self, client, callback_body, accounts, deployment) -> None:
        forged = sign_callback(accounts.outsider.key, POSITION_ID, deployment.destination.chain_id)
        callback_body["signature"] = "0x" + forged.hex()

        response = client.post("/callback", json=callback_body)

        assert response.status_code == 403
        assert response.json()["detail"]["message"] == "Invalid callback signature"


class TestQueries:
    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert set(data["domains"]) == {"origin", "manager", "destination"}
        assert data["relay"] == {"pending": 0, "failures": 0}

    def test_position_lookup(self, client, deployment, accounts) -> None:
        pid = create_monitored(deployment.manager, accounts.owner.address, threshold=SCALE // 5)

        response = client.get(f"/positions/0x{pid.hex()}")

        assert response.status_code == 200
        data = response.json()
        assert data["position"]["owner"] == accounts.owner.address
        assert data["position"]["threshold"] == str(SCALE // 5)
        assert data["position"]["active"] is True
        assert [e["event_type"] for e in data["events"]] == ["created"]

    def test_unknown_position(self, client) -> None:
        response = client.get("/positions/0x" + "99" * 32)
        assert response.status_code == 404

    def test_owner_positions(self, client, deployment, accounts) -> None:
        pid = create_monitored(deployment.manager, accounts.owner.address, threshold=SCALE)

        response = client.get(f"/owners/{accounts.owner.address.lower()}/positions")

        assert response.status_code == 200
        assert response.json() == {"owner": accounts.owner.address, "position_ids": ["0x" + pid.hex()]}

    def test_stats(self, client, deployment, accounts, callback_body) -> None:
        create_monitored(deployment.manager, accounts.owner.address, threshold=SCALE)
        client.post("/callback", json=callback_body)

        data = client.get("/stats").json()

        assert data["total_positions"] == 1
        assert data["total_reactive_actions"] == 0
        assert data["gas_fee_balance"] == str(SCALE // 10)
        assert data["processed_callbacks"] == 1
        assert data["reactive_logs"] == {"pending": 0, "success": 1, "failed": 0}
