"""
Audit Log and AI Analysis Routes.

- GET  /api/audit-logs?entityId=...                 (admin, aprovador)
- GET  /api/ai-analyses?entityType=...&entityId=... (admin)
- POST /api/ai/analyze-market                        (any role)

Audit rows are append-only: there is no write endpoint here.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from .. import json_body
from ...security import require_capability
from ...serialization import parse_payload, to_list
from ...services.ai import get_advisor
from ...storage import get_storage

audit_bp = Blueprint("audit", __name__, url_prefix="/api")


def _query_arg(name: str):
    value = (request.args.get(name) or "").strip()
    return value or None


@audit_bp.route("/audit-logs", methods=["GET"])
@require_capability("audit.view")
def list_audit_logs():
    return jsonify(to_list(get_storage().list_audit_logs(_query_arg("entityId"))))


@audit_bp.route("/ai-analyses", methods=["GET"])
@require_capability("ai.view")
def list_ai_analyses():
    analyses = get_storage().list_ai_analyses(_query_arg("entityType"), _query_arg("entityId"))
    return jsonify(to_list(analyses))


@audit_bp.route("/ai/analyze-market", methods=["POST"])
@require_capability("ai.analyze")
def analyze_market():
    data = parse_payload("market_analysis", json_body())
    return jsonify(get_advisor().analyze_market_trends(data["product_name"], data.get("category")))
