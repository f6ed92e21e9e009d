"""
Admin API Tests

Token guard, payment analytics, and fraud alert review endpoints.
"""
import pytest


class TestAdminAuth:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/admin/payments/stats")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_token(self, client):
        response = await client.get("/api/admin/payments/stats", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_ascii_token(self, client):
        response = await client.get(
            "/api/admin/payments/stats", headers={"X-Admin-Token": "café".encode("latin-1")}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_without_configured_token(self, client, admin_headers, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "admin_api_token", None)

        response = await client.get("/api/admin/payments/stats", headers=admin_headers)

        assert response.status_code == 503


class TestPaymentAnalytics:

    @pytest.mark.asyncio
    async def test_stats(self, client, core, admin_headers):
        await core.ledger.record_initialized("T1", "user_1", "fan@example.com", 25000)
        await core.ledger.record_initialized("T2", "user_1", "fan@example.com", 5000)
        await core.ledger.mark_rejected("T2", "Amount mismatch")

        response = await client.get("/api/admin/payments/stats", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["rejected"] == 1
        assert data["pending"] == 1
        assert data["total_amount"] == 30000
        assert data["avg_amount"] == 15000

    @pytest.mark.asyncio
    async def test_failures(self, client, core, admin_headers):
        await core.ledger.record_initialized("T1", "user_1", "fan@example.com", 25000)
        await core.ledger.mark_failed("T1", "Declined")

        response = await client.get("/api/admin/payments/failures?hours_back=6", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["transactions"][0]["reference"] == "T1"
        assert data["transactions"][0]["failure_reason"] == "Declined"

    @pytest.mark.asyncio
    async def test_duplicates(self, client, core, admin_headers):
        await core.ledger.record_initialized("T1", "user_1", "fan@example.com", 25000)
        await core.ledger.record_initialized("T2", "user_1", "fan@example.com", 25000)

        response = await client.get("/api/admin/payments/duplicates/user_1", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_reconcile(self, client, core, admin_headers):
        await core.ledger.record_initialized("T1", "user_1", "fan@example.com", 25000)

        response = await client.post("/api/admin/payments/reconcile", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"scanned": 1, "matched": 1, "discrepancies": []}


class TestFraudAlertReview:

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, core, admin_headers):
        await core.alerts.create_alert("T1", "amount_mismatch", 25000, 30000, "mismatch")
        await core.alerts.create_alert("T2", "unknown_transaction", 0, 100, "unknown")

        response = await client.get("/api/admin/fraud-alerts", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["count"] == 2

        response = await client.get("/api/admin/fraud-alerts?type=unknown_transaction", headers=admin_headers)
        alerts = response.json()["alerts"]
        assert [a["reference"] for a in alerts] == ["T2"]

        response = await client.get("/api/admin/fraud-alerts?severity=critical", headers=admin_headers)
        alerts = response.json()["alerts"]
        assert [a["discrepancy"] for a in alerts] == [5000]

    @pytest.mark.asyncio
    async def test_invalid_filter_value(self, client, admin_headers):
        response = await client.get("/api/admin/fraud-alerts?severity=low", headers=admin_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_resolve_once(self, client, core, admin_headers):
        alert = await core.alerts.create_alert("T1", "amount_mismatch", 25000, 30000, "mismatch")
        url = f"/api/admin/fraud-alerts/{alert.id}/resolve"

        first = await client.post(url, json={"resolution": "confirmed_fraud"}, headers=admin_headers)
        assert first.status_code == 200
        assert first.json()["alert"]["status"] == "reviewed"
        assert first.json()["alert"]["resolution"] == "confirmed_fraud"

        second = await client.post(url, json={"resolution": "false_positive"}, headers=admin_headers)
        assert second.status_code == 409
        assert second.json()["error_code"] == "fraud:alert_already_reviewed"

    @pytest.mark.asyncio
    async def test_resolve_unknown_alert(self, client, admin_headers):
        response = await client.post(
            "/api/admin/fraud-alerts/alert_missing/resolve",
            json={"resolution": "other"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_resolve_rejects_unknown_resolution(self, client, core, admin_headers):
        alert = await core.alerts.create_alert("T1", "amount_mismatch", 1, 2, "x")

        response = await client.post(
            f"/api/admin/fraud-alerts/{alert.id}/resolve",
            json={"resolution": "ignored"},
            headers=admin_headers,
        )
        assert response.status_code == 422
