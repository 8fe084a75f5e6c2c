"""
Admin blueprint: operational request metrics from the timing middleware.

Endpoints:
    GET /api/v1/admin/metrics/requests?seconds=3600
"""

from flask import Blueprint, jsonify, request

from printflow.auth import current_role
from printflow.blueprints import register_error_handlers
from printflow.middleware.timing import summarize_metrics
from printflow.services import authorization as authz
from printflow.utils.errors import E, api_error

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")
register_error_handlers(admin_bp)


@admin_bp.route("/metrics/requests", methods=["GET"])
def request_metrics():
    authz.require(current_role(), authz.REQUEST_METRICS_READ, "RequestMetrics")
    seconds = request.args.get("seconds", 3600, type=int)
    if seconds <= 0:
        return api_error(E.VALIDATION_INVALID, "seconds must be positive")
    return jsonify(summarize_metrics(seconds)), 200
