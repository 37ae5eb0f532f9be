# tests/test_api.py

"""
HTTP tests for the FastAPI app, backed by the in-memory store.
"""

import asyncio
import pytest
from fastapi.testclient import TestClient

from cardrecon.dependencies import get_current_user, get_store
from cardrecon.errors import ConflictError
from cardrecon.main import app
from cardrecon.store import InMemoryStore

from conftest import USER_ID


STATEMENT = [
    {
        "source": "credit_card",
        "date": "2024-02-14",
        "description": "FACEBK *94ED4BD5F2",
        "amount_minor": 5000,
        "card_last_four": "1234",
        "billing_date": "2024-03-10",
    },
    {
        "source": "credit_card",
        "date": "2024-02-20",
        "description": "Netflix",
        "amount_minor": 4000,
        "card_last_four": "1234",
        "billing_date": "2024-03-10",
    },
    {
        "source": "credit_card",
        "date": "2024-03-01",
        "description": "AMZN Marketplace",
        "amount_minor": 6000,
        "card_last_four": "1234",
        "billing_date": "2024-03-10",
    },
    {
        "source": "bank",
        "date": "2024-03-12",
        "description": "ויזה 4580 1234",
        "amount_minor": -15200,
    },
]


@pytest.fixture
def client(store):
    app.dependency_overrides[get_current_user] = lambda: USER_ID
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class ConflictingStore(InMemoryStore):
    """Every match write loses a race."""

    async def create_matches(self, user_id, matches):
        raise ConflictError("Bank charge is already matched")


@pytest.fixture
def imported(client):
    response = client.post("/imports", json={"rows": STATEMENT})
    assert response.status_code == 200
    return response.json()


def only_match(client) -> dict:
    matches = client.get("/matches").json()["matches"]
    assert len(matches) == 1
    return matches[0]


# ============================================
# Health
# ============================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.json()["checks"]["store"] == "InMemoryStore"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


# ============================================
# Import
# ============================================

class TestImportEndpoint:

    def test_import_then_auto_reconcile(self, imported):
        assert imported["success"] is True
        assert imported["inserted_count"] == 4
        assert imported["duplicate_count"] == 0
        assert imported["matched_count"] == 1

    def test_reimport(self, client, imported):
        response = client.post("/imports", json={"rows": STATEMENT})

        body = response.json()
        assert body["inserted_count"] == 0
        assert body["duplicate_count"] == 4
        assert body["matched_count"] == 0

    def test_failed_auto_reconcile_keeps_import(self):
        conflicting = ConflictingStore()
        app.dependency_overrides[get_current_user] = lambda: USER_ID
        app.dependency_overrides[get_store] = lambda: conflicting
        try:
            with TestClient(app) as test_client:
                response = test_client.post("/imports", json={"rows": STATEMENT})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        body = response.json()
        assert body["inserted_count"] == 4
        assert body["matched_count"] == 0
        assert len(asyncio.run(conflicting.get_card_charges(USER_ID))) == 1

    def test_invalid_row(self, client):
        response = client.post("/imports", json={"rows": [{"source": "fax"}]})
        assert response.status_code == 422


# ============================================
# Matches
# ============================================

class TestMatchEndpoints:

    def test_list(self, client, imported):
        match = only_match(client)

        assert match["status"] == "pending"
        assert match["confidence"] == 57
        assert match["confidence_level"] == "medium"
        assert match["discrepancy_minor"] == 200
        assert match["purchase_count"] == 3
        assert match["vat_minor"] == 2319
        assert match["net_minor"] == 12881

    def test_list_filtered(self, client, imported):
        assert client.get("/matches", params={"status": "approved"}).json()["count"] == 0
        assert client.get("/matches", params={"status": "pending"}).json()["count"] == 1

    def test_vat_rate_override(self, client, imported):
        match = client.get("/matches", params={"vat_percent": 0}).json()["matches"][0]

        assert match["vat_minor"] == 0
        assert match["net_minor"] == 15200

    def test_get_single(self, client, imported):
        match_id = only_match(client)["id"]

        response = client.get(f"/matches/{match_id}")
        assert response.status_code == 200
        assert response.json()["match"]["id"] == match_id

    def test_get_missing(self, client):
        response = client.get("/matches/missing")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "not_found",
            "detail": "Match missing not found",
        }

    def test_approve_then_conflict(self, client, imported):
        match_id = only_match(client)["id"]

        first = client.post(f"/matches/{match_id}/approve")
        second = client.post(f"/matches/{match_id}/approve")

        assert first.status_code == 200
        assert first.json()["match"]["status"] == "approved"
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

    def test_reject(self, client, imported):
        match_id = only_match(client)["id"]

        response = client.post(f"/matches/{match_id}/reject")
        assert response.json()["match"]["status"] == "rejected"

    def test_unmatch_and_reconcile(self, client, imported):
        match = only_match(client)
        client.post(f"/matches/{match['id']}/approve")

        response = client.post(f"/matches/{match['id']}/unmatch", json={"purchase_ids": []})
        assert response.json()["deleted"] is True

        rerun = client.post("/reconcile", json={}).json()
        assert len(rerun["matches"]) == 1
        assert sorted(rerun["matches"][0]["purchase_ids"]) == sorted(match["purchase_ids"])

    def test_partial_unmatch(self, client, imported):
        match = only_match(client)

        response = client.post(
            f"/matches/{match['id']}/unmatch",
            json={"purchase_ids": match["purchase_ids"][:1]},
        )

        body = response.json()
        assert body["deleted"] is False
        assert body["match"]["purchase_count"] == 2

    def test_unmatch_non_member(self, client, imported):
        match_id = only_match(client)["id"]

        response = client.post(f"/matches/{match_id}/unmatch", json={"purchase_ids": ["nope"]})
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_summary(self, client, imported):
        summary = client.get("/matches/summary").json()["summary"]

        assert summary["total_matches"] == 1
        assert summary["pending_count"] == 1
        assert summary["total_purchases"] == 3

    def test_manual_link(self, client, imported):
        match = only_match(client)
        client.post(f"/matches/{match['id']}/unmatch", json={})

        response = client.post("/matches/manual", json={
            "bank_charge_id": match["bank_charge_id"],
            "purchase_ids": match["purchase_ids"],
        })

        assert response.status_code == 200
        assert response.json()["match"]["is_manual"] is True
        assert response.json()["match"]["confidence"] == 100


# ============================================
# Reconcile
# ============================================

class TestReconcileEndpoint:

    def test_negative_tolerance(self, client):
        response = client.post("/reconcile", json={"date_tolerance_days": -1})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_nothing_to_do(self, client, imported):
        body = client.post("/reconcile", json={}).json()

        assert body["matches"] == []
        assert body["summary"]["matched_groups"] == 0


# ============================================
# Merchants
# ============================================

class TestMerchantEndpoints:

    def test_alias_lifecycle(self, client):
        created = client.post("/aliases", json={
            "alias_pattern": "FACEBK",
            "canonical_name": "Meta Ads",
        }).json()["alias"]

        normalized = client.get("/merchants/normalize", params={"description": "FACEBK *94ED4BD5F2"}).json()
        assert normalized["merchant_name"] == "Meta Ads"
        assert normalized["merchant_key"] == "meta ads"

        assert len(client.get("/aliases").json()["aliases"]) == 1
        assert client.delete(f"/aliases/{created['id']}").status_code == 200
        assert client.delete(f"/aliases/{created['id']}").status_code == 404

    def test_normalize_without_alias(self, client):
        body = client.get("/merchants/normalize", params={"description": "Uber -878873220XYZ"}).json()
        assert body["merchant_key"] == "uber"

    def test_groups(self, client):
        rows = [dict(row, billing_date="2024-05-10") for row in STATEMENT[:3]]
        client.post("/imports", json={"rows": rows})

        groups = client.get("/merchants/groups").json()["groups"]

        assert [g["merchant_key"] for g in groups] == ["amazon", "facebook", "netflix"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
