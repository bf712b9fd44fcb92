"""
Purchase Order Routes.

- GET  /api/purchase-orders
- GET  /api/purchase-orders/<id>
- PUT  /api/purchase-orders/<id>   (status only; see lifecycle.ORDER_TRANSITIONS)

Orders are created only by POST /api/quotation-requests/<id>/generate-purchase-order.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from .. import json_body
from ...security import load_actor, require_capability
from ...serialization import parse_payload, to_dict, to_list
from ...services.lifecycle import get_lifecycle
from ...storage import get_storage

orders_bp = Blueprint("orders", __name__, url_prefix="/api/purchase-orders")


@orders_bp.route("", methods=["GET"])
@require_capability("orders.view")
def list_orders():
    return jsonify(to_list(get_storage().list_purchase_orders()))


@orders_bp.route("/<int:order_id>", methods=["GET"])
@require_capability("orders.view")
def get_order(order_id: int):
    return jsonify(to_dict(get_storage().get_purchase_order(order_id)))


@orders_bp.route("/<int:order_id>", methods=["PUT"])
@require_capability("orders.update")
def update_order(order_id: int):
    data = parse_payload("purchase_order", json_body())
    order = get_lifecycle().update_order_status(load_actor(), order_id, data["status"])
    return jsonify(to_dict(order))
