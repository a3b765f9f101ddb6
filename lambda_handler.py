"""
AWS Lambda handler for the Shariah Financing Engine API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import base64
import json
import logging
import re

from financing_engine import EngineService

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Settings come from the environment (ENVIRONMENT, STORE_TIMEOUT_SECONDS, ...)
# Initialize service (reused across warm invocations)
service = EngineService.from_env()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}

# (path pattern, handler name); path parameters are passed before the body
POST_ROUTES = [
    (re.compile(r"^/transitions/validate$"), "validate_transition"),
    (re.compile(r"^/applications/([^/]+)/status$"), "change_status"),
    (re.compile(r"^/dual-authorizations/([^/]+)/approve$"), "approve_dual_authorization"),
    (re.compile(r"^/dual-authorizations/([^/]+)/reject$"), "reject_dual_authorization"),
    (re.compile(r"^/approvals/check$"), "check_approval"),
    (re.compile(r"^/investments$"), "invest"),
    (re.compile(r"^/investments/returns$"), "returns"),
    (re.compile(r"^/distributions$"), "distribute"),
    (re.compile(r"^/assignments$"), "assign"),
    (re.compile(r"^/assignments/([^/]+)/complete$"), "complete_assignment"),
    (re.compile(r"^/admins$"), "save_admin"),
]


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health, /api, /assignments/stats
    - POST routes listed in POST_ROUTES
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    if http_method == "GET":
        if path == "/health":
            return respond(*service.health())
        elif path == "/api":
            return respond(*service.api_info(runtime="AWS Lambda"))
        elif path == "/assignments/stats":
            return handle_request(lambda: service.workload())
    elif http_method == "POST":
        for pattern, name in POST_ROUTES:
            match = pattern.match(path)
            if match:
                return handle_post(event, getattr(service, name), match.groups())

    return {"statusCode": 404, "headers": CORS_HEADERS, "body": json.dumps({"error": "Not found", "path": path})}


def respond(body, status_code):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(body)}


def parse_body(event):
    """Decode the request body. Returns None when there is none."""
    body = event.get("body", "")
    if isinstance(body, str):
        if not body:
            return None
        # Handle base64 encoded body (API Gateway)
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        return json.loads(body)
    return body


def handle_post(event, handler, path_params):
    """Run a POST handler against the decoded body."""

    def run():
        input_data = parse_body(event)
        if not input_data:
            return {"error": "No input data provided", "status": "failed"}, 400
        logger.info(f"Handling {handler.__name__} {path_params or ''}")
        return handler(*path_params, input_data)

    return handle_request(run)


def handle_request(run):
    try:
        return respond(*run())

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return respond({"error": f"Invalid JSON: {str(e)}", "status": "failed"}, 400)

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine (missing fields, invalid types, etc.)
        logger.error(f"Validation error: {str(e)}")
        return respond({"error": f"Validation error: {str(e)}", "status": "validation_failed"}, 400)

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return respond({"error": "An unexpected error occurred during processing", "status": "failed"}, 500)
