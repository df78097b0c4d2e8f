from datetime import date

from flask import Flask, request, jsonify
from flask_cors import CORS
from tranche_engine import SaleProcessor
from tranche_engine.config import EngineConfig
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (the CRM dashboard calls the API from the browser)
CORS(app)

# Initialize the sale processor
processor = SaleProcessor(config=EngineConfig.from_env())


def _read_payload():
    payload = request.get_json(force=True, silent=True)
    if not payload:
        return None
    # Dashboards re-render with "today" unless they pin a reporting date
    payload.setdefault("as_of", date.today().isoformat())
    return payload


def _run(operation, label):
    """Run an engine operation on the request body and shape the response."""
    try:
        payload = _read_payload()
        if payload is None:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        logger.info(f"{label}: {len(payload.get('sales', []))} sales as of {payload.get('as_of')}")
        result = operation(payload)
        return jsonify(result), 200

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors
        logger.error(f"Processing error: {str(e)}", exc_info=True)
        return jsonify({
            "error": "An unexpected error occurred during processing",
            "status": "failed"
        }), 500


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Tranche Scheduling & Revenue Recognition API",
        "version": "1.0",
        "endpoints": {
            "schedule": "/schedule [POST]",
            "dashboard": "/dashboard [POST]",
            "toggle_paid": "/toggle_paid [POST]",
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


@app.route("/schedule", methods=["POST"])
def schedule():
    """Compute tranches, costs and recurrence for a batch of sales"""
    return _run(processor.process_from_dict, "Scheduling")


@app.route("/dashboard", methods=["POST"])
def dashboard():
    """Window totals for the summary dashboard"""
    return _run(processor.dashboard_from_dict, "Dashboard")


@app.route("/toggle_paid", methods=["POST"])
def toggle_paid():
    """Flip a recurrence month between paid and unpaid"""
    return _run(processor.toggle_paid_from_dict, "Toggle paid")


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
