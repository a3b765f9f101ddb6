from flask import Flask, request, jsonify
from flask_cors import CORS
from financing_engine import EngineService
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (admin dashboard and investor app call the API directly)
CORS(app)

# One service per process: shared store, rate limiter and settings
service = EngineService.from_env()


def _run(handler, *args):
    """Call a service handler with the JSON body and map engine errors to HTTP."""
    try:
        input_data = request.get_json(force=True, silent=True)

        if not input_data:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        body, status = handler(*args, input_data)
        return jsonify(body), status

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors - details stay in the log
        logger.error(f"Processing error: {str(e)}", exc_info=True)
        return jsonify({
            "error": "An unexpected error occurred during processing",
            "status": "failed"
        }), 500


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    body, status = service.api_info(runtime="Flask")
    return jsonify(body), status


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    body, status = service.health()
    return jsonify(body), status


@app.route("/transitions/validate", methods=["POST"])
def validate_transition():
    return _run(service.validate_transition)


@app.route("/applications/<application_id>/status", methods=["POST"])
def change_status(application_id):
    """Move an application to a new status"""
    logger.info(f"Status change requested for application: {application_id}")
    return _run(service.change_status, application_id)


@app.route("/dual-authorizations/<dual_auth_id>/approve", methods=["POST"])
def approve_dual_authorization(dual_auth_id):
    return _run(service.approve_dual_authorization, dual_auth_id)


@app.route("/dual-authorizations/<dual_auth_id>/reject", methods=["POST"])
def reject_dual_authorization(dual_auth_id):
    return _run(service.reject_dual_authorization, dual_auth_id)


@app.route("/approvals/check", methods=["POST"])
def check_approval():
    return _run(service.check_approval)


@app.route("/investments", methods=["POST"])
def invest():
    """
    Commit investor funds to an opportunity
    """
    return _run(service.invest)


@app.route("/investments/returns", methods=["POST"])
def investment_returns():
    return _run(service.returns)


@app.route("/distributions", methods=["POST"])
def distribute():
    """Calculate a profit distribution for a contract"""
    return _run(service.distribute)


@app.route("/assignments", methods=["POST"])
def assign():
    return _run(service.assign)


@app.route("/assignments/<assignment_id>/complete", methods=["POST"])
def complete_assignment(assignment_id):
    return _run(service.complete_assignment, assignment_id)


@app.route("/assignments/stats", methods=["GET"])
def workload():
    body, status = service.workload()
    return jsonify(body), status


@app.route("/admins", methods=["POST"])
def save_admin():
    return _run(service.save_admin)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
