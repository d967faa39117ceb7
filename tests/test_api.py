"""
Tests for the HTTP entry points.

The app is wired to an in-memory store; tokens are registered on it
directly.
"""

from datetime import date
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.main import app
from conftest import seed
from prospera.models import BankAccount, Bill, IncomeSource
from prospera.orchestrator import create_app_components
from prospera.services.storage import InMemoryRowStore
from prospera.services.storage.repository import (
    BANK_ACCOUNTS,
    BILLS,
    INCOME_SOURCES,
    TRANSACTIONS,
)


TOKEN = "token-ana"


@pytest.fixture
def api_store():
    return InMemoryRowStore()


@pytest.fixture
def client(api_store):
    app.state.components = create_app_components(store=api_store)
    with TestClient(app) as test_client:
        yield test_client
    app.state.components = None


@pytest.fixture
def ana(api_store):
    user_id = uuid4()
    api_store.register_user(user_id, "ana@example.com", access_token=TOKEN)
    return user_id


def auth(token=TOKEN):
    return {"Authorization": f"Bearer {token}"}


class TestAuthorization:
    """Tests for the checks every user endpoint runs first."""

    @pytest.mark.parametrize("path", [
        "/functions/generate-ai-insights",
        "/functions/generate-alerts",
        "/functions/monthly-renewal",
        "/functions/financial-summary",
        "/functions/pay-bills",
    ])
    def test_missing_user_id(self, client, ana, path):
        response = client.post(path, json={}, headers=auth())
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required parameter: userId"}

    def test_missing_token(self, client, ana):
        response = client.post("/functions/monthly-renewal", json={"userId": str(ana)})
        assert response.status_code == 401
        assert response.json() == {"error": "Failed to authenticate user"}

    def test_invalid_token(self, client, ana):
        response = client.post(
            "/functions/monthly-renewal",
            json={"userId": str(ana)},
            headers=auth("forged"),
        )
        assert response.status_code == 401

    def test_other_users_id(self, client, ana, api_store):
        """Test a valid token cannot act on another user's id."""
        other = uuid4()
        seed(api_store, INCOME_SOURCES, IncomeSource(user_id=other, name="Salário", amount=1))

        response = client.post(
            "/functions/monthly-renewal",
            json={"userId": str(other)},
            headers=auth(),
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized access"}
        assert api_store.rows(TRANSACTIONS) == []


class TestUserEndpoints:
    """Tests for the per-user functions."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["settings"]["app"] is True

    def test_generate_insights(self, client, ana):
        response = client.post(
            "/functions/generate-ai-insights",
            json={"userId": str(ana)},
            headers=auth(),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["score"] == 70
        assert body["recommendations"] == []
        assert [i["type"] for i in body["insights"]] == ["feature", "feature"]
        assert "alert_type" not in body["insights"][0]

    def test_monthly_renewal(self, client, ana, api_store):
        """Test the renewal runs once; a second call reports skipped."""
        seed(api_store, INCOME_SOURCES, IncomeSource(user_id=ana, name="Salário", amount=5000))

        first = client.post("/functions/monthly-renewal", json={"userId": str(ana)}, headers=auth())
        second = client.post("/functions/monthly-renewal", json={"userId": str(ana)}, headers=auth())

        assert first.status_code == 200
        assert first.json()["status"] == "completed"
        assert first.json()["income_created"] == 1
        assert second.json()["status"] == "skipped"
        assert len(api_store.rows(TRANSACTIONS)) == 1

    def test_generate_alerts(self, client, ana, api_store):
        seed(
            api_store, BILLS,
            Bill(user_id=ana, name="Luz", company="Enel", amount=200, due_day=1,
                 next_due=date.today()),
        )

        response = client.post(
            "/functions/generate-alerts",
            json={"userId": str(ana), "persist": True},
            headers=auth(),
        )

        alerts = [a for a in response.json() if a["type"] == "bill"]
        assert response.status_code == 200
        assert alerts[0]["title"] == "Conta a vencer: Luz"
        assert alerts[0]["priority"] == "high"

    def test_storage_error_is_500(self, client, ana, api_store):
        api_store.inject_failure("insert", "renewal_markers")

        response = client.post("/functions/monthly-renewal", json={"userId": str(ana)}, headers=auth())

        assert response.status_code == 500
        assert "error" in response.json()

    def test_financial_summary(self, client, ana, api_store):
        """Test the summary is computed from the caller's rows only."""
        seed(api_store, INCOME_SOURCES, IncomeSource(user_id=ana, name="Salário", amount=5000))
        seed(api_store, BANK_ACCOUNTS, BankAccount(user_id=ana, bank_name="Nubank", balance=2000))
        seed(api_store, BANK_ACCOUNTS, BankAccount(user_id=uuid4(), bank_name="Outro", balance=9999))

        response = client.post(
            "/functions/financial-summary",
            json={"userId": str(ana)},
            headers=auth(),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["monthly_income"] == 5000
        assert body["total_bank_balance"] == 2000
        assert body["net_worth"] == 2000
        assert body["allocation"]["bank_accounts"] == 100
        assert body["unavailable"] == []


class TestPayBillsEndpoint:
    """Tests for paying bills over HTTP."""

    def test_pay_one_bill_partially(self, client, ana, api_store):
        bill = Bill(user_id=ana, name="Luz", amount=200, due_day=10)
        seed(api_store, BILLS, bill)

        response = client.post(
            "/functions/pay-bills",
            json={"userId": str(ana), "billIds": [str(bill.id)], "amount": 50,
                  "paymentDate": "2026-10-09"},
            headers=auth(),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["paid"] == 1
        assert body["bill"]["payment_status"] == "partial"
        assert body["bill"]["payment_date"] == "2026-10-09"

    def test_pay_all_due(self, client, ana, api_store):
        """Test an empty id list pays every bill already due."""
        seed(
            api_store, BILLS,
            Bill(user_id=ana, name="Luz", amount=200, due_day=1, next_due=date(2026, 10, 1)),
            Bill(user_id=ana, name="Água", amount=90, due_day=25, next_due=date(2026, 10, 25)),
        )

        response = client.post(
            "/functions/pay-bills",
            json={"userId": str(ana), "paymentDate": "2026-10-19"},
            headers=auth(),
        )

        statuses = {r["name"]: r["payment_status"] for r in api_store.rows(BILLS)}
        assert response.json() == {"paid": 1}
        assert statuses == {"Luz": "paid", "Água": "pending"}

    def test_other_users_bill_is_404(self, client, ana, api_store):
        bill = Bill(user_id=uuid4(), name="Luz", amount=200, due_day=10)
        seed(api_store, BILLS, bill)

        response = client.post(
            "/functions/pay-bills",
            json={"userId": str(ana), "billIds": [str(bill.id)]},
            headers=auth(),
        )

        assert response.status_code == 404
        assert api_store.rows(BILLS)[0]["payment_status"] == "pending"


class TestEmailQueueEndpoint:
    """Tests for the cron-triggered queue processing."""

    def test_requires_configured_key(self, client, monkeypatch):
        monkeypatch.delenv("APP_CRON_JOB_KEY", raising=False)
        response = client.post("/functions/process-email-queue", headers={"x-admin-key": "anything"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_wrong_key(self, client, monkeypatch):
        monkeypatch.setenv("APP_CRON_JOB_KEY", "s3cret")
        response = client.post("/functions/process-email-queue", headers={"x-admin-key": "nope"})
        assert response.status_code == 401

    def test_runs_queue(self, client, monkeypatch):
        monkeypatch.setenv("APP_CRON_JOB_KEY", "s3cret")

        response = client.post("/functions/process-email-queue", headers={"x-admin-key": "s3cret"})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["results"]["immediate"] == {"processed": 0, "success": 0, "failed": 0}
        assert set(body["results"]["daily"]) == {"usersProcessed", "digestsSent", "errors"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
