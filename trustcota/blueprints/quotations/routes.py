"""
Quotation Routes: requests, items, supplier quotations and workflow actions.

Access:
- Everyone reads and creates quotation requests.
- The requester (or staff) edits a request and adds items; the requester (or admin) cancels it.
- Buyers (admin, cotador) record and select supplier quotations.
- Approvers (admin, aprovador) approve, reject and generate purchase orders.

IMPORTANT:
- Every status change goes through services.lifecycle; routes never write status.
- Failed best-effort side effects (AI, e-mail) do not fail the call; they are
  reported in the X-Side-Effects-Failed response header.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from .. import json_body, transition_response
from ...security import load_actor, require_capability, require_owner_or_capability
from ...serialization import parse_payload, to_dict, to_list
from ...services.lifecycle import get_lifecycle
from ...storage import get_storage

quotations_bp = Blueprint("quotations", __name__, url_prefix="/api")


def _requester_of(request_id: int):
    return get_storage().get_quotation_request(request_id).requester_id


# ============================================================
# QUOTATION REQUESTS
# ============================================================

@quotations_bp.route("/quotation-requests", methods=["GET"])
@require_capability("requests.view")
def list_requests():
    return jsonify(to_list(get_storage().list_quotation_requests()))


@quotations_bp.route("/quotation-requests/<int:request_id>", methods=["GET"])
@require_capability("requests.view")
def get_request(request_id: int):
    return jsonify(to_dict(get_storage().get_quotation_request(request_id)))


@quotations_bp.route("/quotation-requests", methods=["POST"])
@require_capability("requests.create")
def create_request():
    data = parse_payload("quotation_request", json_body())
    if data.get("approver_id") is not None:
        get_storage().get_user(data["approver_id"])

    result = get_lifecycle().create_request(load_actor(), data)
    return transition_response(result, 201)


@quotations_bp.route("/quotation-requests/<int:request_id>", methods=["PUT"])
@require_owner_or_capability("requests.edit", _requester_of)
def update_request(request_id: int):
    raw = json_body()
    data = parse_payload("quotation_request", raw, partial=True)
    request_row = get_lifecycle().update_request(load_actor(), request_id, raw, data)
    return jsonify(to_dict(request_row))


# ============================================================
# WORKFLOW ACTIONS
# ============================================================

@quotations_bp.route("/quotation-requests/<int:request_id>/approve", methods=["POST"])
@require_capability("requests.approve")
def approve_request(request_id: int):
    data = parse_payload("approval", json_body(optional=True))
    result = get_lifecycle().approve(load_actor(), request_id, data.get("approved_amount"))
    return transition_response(result)


@quotations_bp.route("/quotation-requests/<int:request_id>/reject", methods=["POST"])
@require_capability("requests.approve")
def reject_request(request_id: int):
    data = parse_payload("rejection", json_body())
    result = get_lifecycle().reject(load_actor(), request_id, data["rejection_reason"])
    return transition_response(result)


@quotations_bp.route("/quotation-requests/<int:request_id>/cancel", methods=["POST"])
@require_owner_or_capability("requests.cancel", _requester_of)
def cancel_request(request_id: int):
    result = get_lifecycle().cancel(load_actor(), request_id)
    return transition_response(result)


@quotations_bp.route("/quotation-requests/<int:request_id>/generate-purchase-order", methods=["POST"])
@require_capability("orders.generate")
def generate_purchase_order(request_id: int):
    data = parse_payload("order_generation", json_body(optional=True))
    result = get_lifecycle().generate_purchase_order(load_actor(), request_id, data.get("delivery_address"))
    return transition_response(result, 201)


# ============================================================
# ITEMS
# ============================================================

@quotations_bp.route("/quotation-requests/<int:request_id>/items", methods=["GET"])
@require_capability("requests.view")
def list_items(request_id: int):
    storage = get_storage()
    storage.get_quotation_request(request_id)
    return jsonify(to_list(storage.list_quotation_request_items(request_id)))


@quotations_bp.route("/quotation-requests/<int:request_id>/items", methods=["POST"])
@require_owner_or_capability("requests.edit", _requester_of)
def add_item(request_id: int):
    data = parse_payload("quotation_request_item", json_body())
    item = get_lifecycle().add_item(load_actor(), request_id, data)
    return jsonify(to_dict(item)), 201


# ============================================================
# SUPPLIER QUOTATIONS
# ============================================================

@quotations_bp.route("/quotation-requests/<int:request_id>/supplier-quotations", methods=["GET"])
@require_capability("quotations.manage")
def list_supplier_quotations(request_id: int):
    storage = get_storage()
    storage.get_quotation_request(request_id)
    return jsonify(to_list(storage.list_supplier_quotations(request_id)))


@quotations_bp.route("/quotation-requests/<int:request_id>/supplier-quotations", methods=["POST"])
@require_capability("quotations.manage")
def submit_supplier_quotation(request_id: int):
    data = parse_payload("supplier_quotation", json_body())
    result = get_lifecycle().submit_quotation(load_actor(), request_id, data)
    return transition_response(result, 201)


@quotations_bp.route("/supplier-quotations/<int:quotation_id>", methods=["PUT"])
@require_capability("quotations.manage")
def update_supplier_quotation(quotation_id: int):
    data = parse_payload("supplier_quotation", json_body(), partial=True)
    quotation = get_lifecycle().update_quotation(load_actor(), quotation_id, data)
    return jsonify(to_dict(quotation))


@quotations_bp.route("/supplier-quotations/<int:quotation_id>/select", methods=["POST"])
@require_capability("quotations.manage")
def select_supplier_quotation(quotation_id: int):
    result = get_lifecycle().select_quotation(load_actor(), quotation_id)
    return transition_response(result)
