"""
Energy Trade Settlement (ETS) - HTTP Gateway Tests
Version: 1.0.0

Exercises the FastAPI routes end to end against a fresh in-memory ledger.
"""

import json

from fastapi.testclient import TestClient

from ets_main_api import app, app_state
from ets_enforcement_integration import EnergyTradingContract, KeyScheme

client = TestClient(app)

JSON_HEADERS = {"Content-Type": "application/json"}

ENERGY2 = {
    "token_id": "energy2",
    "buyer_address": "buyer1",
    "seller_address": "seller1",
    "energy_amount": 50.0,
    "transaction_price": 0.3,
    "timestamp": "2025-05-04T09:00:00Z",
    "buyer_deposit": 5.0,
    "seller_deposit": 5.0
}

class TestHealthEndpoints:

    def setup_method(self):
        app_state.reset()

    def test_root(self):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "operational"

    def test_health_on_empty_ledger(self):
        response = client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["total_records"] == 0
        assert body["ledger_integrity"] == True

    def test_metrics_exposed(self):
        client.post("/api/v1/ledger/init")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "ets_invocations_total" in response.text

    def test_invariant_checks_labelled_by_criticality(self):
        client.post("/api/v1/ledger/init")
        client.post("/api/v1/assets", json=ENERGY2)
        response = client.get("/metrics")

        assert 'criticality="critical"' in response.text

class TestAssetEndpoints:
    """Asset creation and lookup over HTTP."""

    def setup_method(self):
        app_state.reset()
        client.post("/api/v1/ledger/init")

    def test_init_counts(self):
        app_state.reset()
        response = client.post("/api/v1/ledger/init")

        assert response.json() == {"accounts": 2, "assets": 1, "reputations": 2}

    def test_create_and_read(self):
        """Seeded buyer1 (80) and seller1 (85) may trade energy2."""
        response = client.post("/api/v1/assets", json=ENERGY2)

        assert response.status_code == 201
        assert response.json()["transaction_state"] == "CREATED"

        read = client.get("/api/v1/assets/energy2").json()
        assert read["energy_amount"] == 50.0
        assert read["buyer_signature"] is None

        exists = client.get("/api/v1/assets/energy2/exists").json()
        assert exists == {"token_id": "energy2", "exists": True}

    def test_seeded_asset_carries_signatures(self):
        read = client.get("/api/v1/assets/energy1").json()

        assert read["buyer_signature"] == "buyer_signature_example"
        assert read["transaction_price"] == 0.25

    def test_duplicate_is_conflict(self):
        client.post("/api/v1/assets", json=ENERGY2)
        response = client.post("/api/v1/assets", json=ENERGY2)

        assert response.status_code == 409
        assert response.json()["kind"] == "already_exists"

    def test_low_reputation_is_forbidden(self):
        client.post("/api/v1/reputations/buyer1/adjust", json={"delta": -50})
        response = client.post("/api/v1/assets", json=ENERGY2)

        assert response.status_code == 403
        assert response.json()["detail"] == "buyer buyer1 reputation too low"
        assert client.get("/api/v1/assets/energy2/exists").json()["exists"] == False

    def test_missing_asset(self):
        response = client.get("/api/v1/assets/nope")

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_negative_amount_rejected(self):
        response = client.post("/api/v1/assets", json={**ENERGY2, "energy_amount": -1})

        assert response.status_code == 422

    def test_infinite_amount_rejected(self):
        body = json.dumps({**ENERGY2, "energy_amount": float("inf")})
        response = client.post("/api/v1/assets", content=body, headers=JSON_HEADERS)

        assert response.status_code == 422
        assert client.get("/api/v1/assets/energy2/exists").json()["exists"] == False

class TestReputationEndpoints:

    def setup_method(self):
        app_state.reset()

    def test_unknown_participant_default(self):
        body = client.get("/api/v1/reputations/newcomer").json()

        assert body == {"participant_address": "newcomer", "score": 50.0, "penalized": False}

    def test_adjust_clamps_and_penalizes(self):
        body = client.post("/api/v1/reputations/p1/adjust", json={"delta": -200}).json()

        assert body["score"] == 0
        assert body["penalized"] == True

    def test_adjust_upper_bound(self):
        body = client.post("/api/v1/reputations/p1/adjust", json={"delta": 1000}).json()

        assert body["score"] == 100
        assert body["penalized"] == False

    def test_nan_delta_rejected(self):
        """A penalized participant cannot reset the score with NaN."""
        client.post("/api/v1/reputations/p1/adjust", json={"delta": -200})
        response = client.post("/api/v1/reputations/p1/adjust", content='{"delta": NaN}', headers=JSON_HEADERS)

        assert response.status_code == 422
        body = client.get("/api/v1/reputations/p1").json()
        assert body["score"] == 0
        assert body["penalized"] == True

    def test_infinite_delta_rejected(self):
        response = client.post("/api/v1/reputations/p1/adjust", content='{"delta": Infinity}', headers=JSON_HEADERS)

        assert response.status_code == 422

class TestAccountEndpoints:

    def setup_method(self):
        app_state.reset()
        app_state.contract = EnergyTradingContract(key_scheme=KeyScheme.prefixed())

    def test_seeded_balance(self):
        client.post("/api/v1/ledger/init")
        body = client.get("/api/v1/accounts/seller1").json()

        assert body == {"account_id": "seller1", "balance": 100.0}

    def test_missing_account(self):
        response = client.get("/api/v1/accounts/ghost")

        assert response.status_code == 404
