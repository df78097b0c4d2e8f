"""Tests for the Flask development server."""

import pytest

from main import app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def payload():
    return {
        "as_of": "2025-12-31",
        "sales": [
            {"sale_id": "f-1", "partner": "Fit Energia", "gross_proposal": 10000, "discount_pct": 10,
             "completed_at": "2025-03-12", "reference_month": 3, "reference_year": 2025,
             "financial_status": "Adimplente"},
        ],
        "ledger": {"f-1": ["2025-07", "2025-08"]},
    }


class TestFlaskRoutes:
    """Test the Flask routes and error mapping."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_api_info(self, client):
        response = client.get("/api")
        assert response.status_code == 200
        assert "dashboard" in response.get_json()["endpoints"]

    def test_schedule(self, client, payload):
        response = client.post("/schedule", json=payload)
        assert response.status_code == 200

        view = response.get_json()["views"][0]
        assert view["company_net_profit"] == 4200.0
        assert view["recurrence"]["monthly_amount"] == 1500.0
        assert view["recurrence"]["paid_installments"] == 2

    def test_dashboard_recurrence(self, client, payload):
        payload["filter"] = {"start": "2025-07-01", "end": "2025-08-31"}
        response = client.post("/dashboard", json=payload)
        assert response.status_code == 200
        assert response.get_json()["totals"]["recurrence_received"] == 3000.0

    def test_toggle_paid(self, client):
        response = client.post("/toggle_paid", json={"sale_id": "f-1", "month_key": "2025-07"})
        assert response.status_code == 200
        assert response.get_json()["is_paid"] is True

    def test_empty_body(self, client):
        response = client.post("/schedule", data="")
        assert response.status_code == 400
        assert response.get_json()["status"] == "failed"

    def test_validation_error(self, client, payload):
        payload["rules"] = {"Enersim": {"immediate_pct": 0.5}}
        response = client.post("/schedule", json=payload)
        assert response.status_code == 400
        assert response.get_json()["status"] == "validation_failed"

    def test_unexpected_error_is_hidden(self, client, payload, monkeypatch):
        import main

        def explode(data):
            raise RuntimeError("database password is hunter2")

        monkeypatch.setattr(main.processor, "process_from_dict", explode)
        response = client.post("/schedule", json=payload)
        assert response.status_code == 500
        assert "hunter2" not in response.get_data(as_text=True)
