"""
Integration tests for the Token Ledger API
Tests end-to-end flows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from token_ledger.api import create_app

import identities


DEPLOYER = {"X-Caller": identities.DEPLOYER}
MINTER = {"X-Caller": identities.MINTER}
ALICE = {"X-Caller": identities.ALICE}


@pytest.fixture
def client(ledger):
    """Test client bound to a fresh in-memory ledger"""
    return TestClient(create_app(ledger))


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["system"] == "Token Ledger"
        assert data["token"] == "ITK"
        assert "endpoints" in data

    def test_token_info(self, client):
        r = client.get("/token")
        assert r.status_code == 200
        assert r.json() == {
            "name": "IncentiveToken",
            "symbol": "ITK",
            "decimals": 6,
            "total_supply": 0,
            "token_uri": None,
            "paused": False,
            "admin": "deployer",
            "mint_counter": 0
        }


class TestTokenFlow:
    """End-to-end mint, transfer and burn"""

    def test_mint_transfer_burn(self, client):
        r = client.post("/admin/minters", json={"account": "wallet_1"}, headers=DEPLOYER)
        assert r.status_code == 200
        assert r.json() == {"ok": True, "value": True}

        r = client.post("/mint", json={
            "amount": 1_000_000, "recipient": "wallet_2", "metadata": "Reward"
        }, headers=MINTER)
        assert r.json() == {"ok": True, "value": True}

        r = client.post("/transfer", json={
            "amount": 250_000, "sender": "wallet_2", "recipient": "wallet_3", "memo": "hi"
        }, headers=ALICE)
        assert r.status_code == 200

        r = client.post("/burn", json={"amount": 50_000}, headers=ALICE)
        assert r.status_code == 200

        assert client.get("/balances/wallet_2").json() == {"account": "wallet_2", "balance": 700_000}
        assert client.get("/balances/wallet_3").json()["balance"] == 250_000
        assert client.get("/token").json()["total_supply"] == 950_000

        record = client.get("/mint-records/1").json()
        assert record["ok"] is True
        assert record["value"]["amount"] == 1_000_000
        assert record["value"]["metadata"] == "Reward"

        records = client.get("/mint-records", params={"recipient": "wallet_2"}).json()
        assert len(records["mint_records"]) == 1

    def test_unknown_mint_record_is_null(self, client):
        r = client.get("/mint-records/42")
        assert r.status_code == 200
        assert r.json() == {"ok": True, "value": None}

    def test_missing_caller_header(self, client):
        r = client.post("/burn", json={"amount": 1})
        assert r.status_code == 422


class TestErrorMapping:
    """Test that ledger error codes reach HTTP callers"""

    def test_non_minter(self, client):
        r = client.post("/mint", json={"amount": 1, "recipient": "wallet_2"}, headers=ALICE)
        assert r.status_code == 403
        assert r.json()["error"] == 104
        assert r.json()["name"] == "INVALID_MINTER"

    def test_insufficient_balance(self, client):
        r = client.post("/burn", json={"amount": 10}, headers=ALICE)
        assert r.status_code == 409
        assert r.json()["error"] == 107

    def test_paused(self, client):
        assert client.post("/admin/pause", headers=DEPLOYER).status_code == 200
        r = client.post("/transfer", json={
            "amount": 1, "sender": "wallet_2", "recipient": "wallet_3"
        }, headers=ALICE)
        assert r.status_code == 423
        assert r.json()["error"] == 109

        assert client.post("/admin/unpause", headers=DEPLOYER).status_code == 200
        assert client.get("/token").json()["paused"] is False

    def test_validation_errors(self, client):
        r = client.post("/mint", json={"amount": 0, "recipient": "wallet_2"}, headers=DEPLOYER)
        assert r.status_code == 400
        assert r.json()["error"] == 102

        r = client.put("/admin/token-uri", json={"token_uri": "x" * 257}, headers=DEPLOYER)
        assert r.status_code == 400
        assert r.json()["error"] == 113

    @pytest.mark.parametrize("amount", [True, "3", 2.0, 1.5, None])
    def test_non_integer_amounts_rejected_by_ledger(self, client, amount):
        """Test that amounts are never coerced before the ledger checks them"""
        r = client.post("/mint", json={"amount": amount, "recipient": "wallet_2"}, headers=DEPLOYER)
        assert r.status_code == 400
        assert r.json()["error"] == 102

        r = client.post("/transfer", json={
            "amount": amount, "sender": "deployer", "recipient": "wallet_2"
        }, headers=DEPLOYER)
        assert r.status_code == 400
        assert r.json()["error"] == 102

        r = client.post("/burn", json={"amount": amount}, headers=DEPLOYER)
        assert r.status_code == 400
        assert r.json()["error"] == 102

        assert client.get("/balances/wallet_2").json()["balance"] == 0
        assert client.get("/token").json()["total_supply"] == 0

    def test_error_body_matches_result_shape(self, client, ledger):
        r = client.post("/burn", json={"amount": 1}, headers=ALICE)
        assert r.json() == ledger.burn("wallet_2", 1).to_dict()
        assert r.json()["detail"]

    def test_admin_only(self, client):
        r = client.post("/admin/admin", json={"new_admin": "wallet_2"}, headers=ALICE)
        assert r.status_code == 403
        assert r.json()["error"] == 100


class TestAdminEndpoints:
    """Test configuration endpoints"""

    def test_minter_lifecycle(self, client):
        client.post("/admin/minters", json={"account": "wallet_1"}, headers=DEPLOYER)
        assert client.get("/minters/wallet_1").json()["is_minter"] is True

        r = client.delete("/admin/minters/wallet_1", headers=DEPLOYER)
        assert r.status_code == 200
        assert client.get("/minters/wallet_1").json()["is_minter"] is False

        r = client.post("/admin/minters", json={"account": "wallet_1"}, headers=DEPLOYER)
        assert r.status_code == 409
        assert r.json()["error"] == 105

    def test_token_uri_and_admin(self, client):
        r = client.put("/admin/token-uri", json={"token_uri": "https://example.com"}, headers=DEPLOYER)
        assert r.status_code == 200
        assert client.get("/token").json()["token_uri"] == "https://example.com"

        r = client.post("/admin/admin", json={"new_admin": "wallet_2"}, headers=DEPLOYER)
        assert r.status_code == 200
        assert client.get("/token").json()["admin"] == "wallet_2"


class TestAuditEndpoints:
    """Test audit queries"""

    def test_audit_events_and_integrity(self, client):
        client.post("/mint", json={"amount": 5, "recipient": "wallet_2"}, headers=DEPLOYER)

        events = client.get("/audit/events").json()["events"]
        assert [e["event_type"] for e in events] == ["ledger_initialized", "tokens_minted"]

        events = client.get("/audit/events", params={
            "entity_type": "mint_record", "entity_id": "1"
        }).json()["events"]
        assert len(events) == 1

        assert client.get("/audit/events", params={"limit": 0}).json()["events"] == []
        assert len(client.get("/audit/events", params={"limit": 1}).json()["events"]) == 1

        integrity = client.get("/audit/integrity").json()
        assert integrity["valid"] is True
        assert integrity["total_events"] == 2
