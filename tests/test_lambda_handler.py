"""Tests for AWS Lambda handler."""

import base64
import json

from lambda_handler import lambda_handler

SCHEDULE_PAYLOAD = {
    "as_of": "2025-12-31",
    "sales": [
        {
            "sale_id": "bc-1",
            "partner": "BC",
            "gross_proposal": 10000,
            "discount_pct": 20,
            "completed_at": "2025-03-12",
        }
    ],
}


class TestLambdaHandler:
    """Test the Lambda handler routes and responses."""

    def test_health_check(self):
        """GET /health returns healthy status."""
        event = {"httpMethod": "GET", "path": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "healthy"

    def test_api_info(self):
        """GET /api returns API information."""
        event = {"httpMethod": "GET", "path": "/api"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "ok"
        assert "schedule" in body["endpoints"]

    def test_cors_preflight(self):
        """OPTIONS requests return CORS headers."""
        event = {"httpMethod": "OPTIONS", "path": "/schedule"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert "Access-Control-Allow-Origin" in response["headers"]
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_not_found(self):
        """Unknown paths return 404."""
        event = {"httpMethod": "GET", "path": "/unknown"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 404

    def test_schedule_success(self):
        """POST /schedule computes every sale in the batch."""
        event = {"httpMethod": "POST", "path": "/schedule", "body": json.dumps(SCHEDULE_PAYLOAD)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        amounts = [t["amount"] for t in body["views"][0]["tranches"]]
        assert amounts == [5000.0, 4500.0, 6000.0]

    def test_schedule_base64_body(self):
        """API Gateway may base64-encode the body."""
        encoded = base64.b64encode(json.dumps(SCHEDULE_PAYLOAD).encode("utf-8")).decode("ascii")
        event = {"httpMethod": "POST", "path": "/schedule", "body": encoded, "isBase64Encoded": True}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200

    def test_schedule_defaults_as_of(self):
        """Requests without as_of are computed as of today."""
        payload = {"sales": SCHEDULE_PAYLOAD["sales"]}
        event = {"httpMethod": "POST", "path": "/schedule", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200

    def test_dashboard(self):
        """POST /dashboard returns window totals."""
        payload = dict(SCHEDULE_PAYLOAD, filter={"month_key": "2025-05"})
        event = {"httpMethod": "POST", "path": "/dashboard", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["totals"]["tranche_receivable"] == 4500.0

    def test_toggle_paid(self):
        """POST /toggle_paid returns the new ledger."""
        payload = {"sale_id": "bc-1", "month_key": "2025-07", "ledger": {}}
        event = {"httpMethod": "POST", "path": "/toggle_paid", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["ledger"] == {"bc-1": ["2025-07"]}

    def test_empty_body(self):
        """POST /schedule with empty body returns 400."""
        event = {"httpMethod": "POST", "path": "/schedule", "body": ""}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert "error" in body

    def test_invalid_json(self):
        """POST /schedule with invalid JSON returns 400."""
        event = {"httpMethod": "POST", "path": "/schedule", "body": "not valid json"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert "Invalid JSON" in body["error"]

    def test_non_object_body(self):
        """A JSON array is not a valid request."""
        event = {"httpMethod": "POST", "path": "/schedule", "body": "[1, 2]"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400

    def test_validation_error(self):
        """Malformed month keys return 400."""
        payload = {"sale_id": "bc-1", "month_key": "July"}
        event = {"httpMethod": "POST", "path": "/toggle_paid", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert body["status"] == "validation_failed"

    def test_http_api_format(self):
        """Supports HTTP API v2 event format."""
        event = {"requestContext": {"http": {"method": "GET"}}, "rawPath": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
