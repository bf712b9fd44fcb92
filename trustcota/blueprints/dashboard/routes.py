"""
Dashboard Routes (read-only, every authenticated role).
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from ...security import load_actor, require_capability
from ...serialization import to_list
from ...services.ai import get_advisor
from ...storage import get_storage

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/stats", methods=["GET"])
@require_capability("dashboard.view")
def stats():
    return jsonify(get_storage().get_dashboard_stats())


@dashboard_bp.route("/recent-quotations", methods=["GET"])
@require_capability("dashboard.view")
def recent_quotations():
    return jsonify(to_list(get_storage().list_recent_quotation_requests()))


@dashboard_bp.route("/pending-approvals", methods=["GET"])
@require_capability("dashboard.view")
def pending_approvals():
    """Requests awaiting approval with the caller as assigned approver."""
    return jsonify(to_list(get_storage().list_pending_approvals(load_actor().id)))


@dashboard_bp.route("/ai-insights", methods=["GET"])
@require_capability("dashboard.view")
def ai_insights():
    return jsonify(get_advisor().generate_dashboard_insights())
