"""
Catalog Routes: suppliers, products and categories.

Access:
- Suppliers: buyers (admin, cotador) read; admin writes.
- Products / categories: everyone reads; admin writes.

Rules:
- Hard delete exists only for suppliers and products.
- A supplier referenced by a purchase order cannot be deleted (409).
- Foreign keys (category, parent category) are checked before writing (404).

Audit:
- CREATE / UPDATE / DELETE logged
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from .. import json_body
from ...audit import log_action
from ...security import require_capability
from ...serialization import parse_payload, to_dict, to_list
from ...storage import get_storage

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# ============================================================
# SUPPLIERS
# ============================================================

@catalog_bp.route("/suppliers", methods=["GET"])
@require_capability("suppliers.view")
def list_suppliers():
    return jsonify(to_list(get_storage().list_suppliers()))


@catalog_bp.route("/suppliers/<int:supplier_id>", methods=["GET"])
@require_capability("suppliers.view")
def get_supplier(supplier_id: int):
    return jsonify(to_dict(get_storage().get_supplier(supplier_id)))


@catalog_bp.route("/suppliers", methods=["POST"])
@require_capability("suppliers.manage")
def create_supplier():
    data = parse_payload("supplier", json_body())
    supplier = get_storage().create_supplier(data)
    log_action("create", "supplier", supplier.id, data)
    return jsonify(to_dict(supplier)), 201


@catalog_bp.route("/suppliers/<int:supplier_id>", methods=["PUT"])
@require_capability("suppliers.manage")
def update_supplier(supplier_id: int):
    data = parse_payload("supplier", json_body(), partial=True)
    supplier = get_storage().update_supplier(supplier_id, data)
    log_action("update", "supplier", supplier.id, data)
    return jsonify(to_dict(supplier))


@catalog_bp.route("/suppliers/<int:supplier_id>", methods=["DELETE"])
@require_capability("suppliers.manage")
def delete_supplier(supplier_id: int):
    storage = get_storage()
    supplier = storage.get_supplier(supplier_id)
    snapshot = {"name": supplier.name, "cnpj": supplier.cnpj}
    storage.delete_supplier(supplier_id)
    log_action("delete", "supplier", supplier_id, snapshot)
    return "", 204


@catalog_bp.route("/suppliers/search/<path:query>", methods=["GET"])
@require_capability("suppliers.view")
def search_suppliers(query: str):
    return jsonify(to_list(get_storage().search_suppliers(query.strip())))


# ============================================================
# PRODUCTS
# ============================================================

def _check_category(data):
    if data.get("category_id") is not None:
        get_storage().get_category(data["category_id"])


@catalog_bp.route("/products", methods=["GET"])
@require_capability("products.view")
def list_products():
    return jsonify(to_list(get_storage().list_products()))


@catalog_bp.route("/products/<int:product_id>", methods=["GET"])
@require_capability("products.view")
def get_product(product_id: int):
    return jsonify(to_dict(get_storage().get_product(product_id)))


@catalog_bp.route("/products", methods=["POST"])
@require_capability("products.manage")
def create_product():
    data = parse_payload("product", json_body())
    _check_category(data)
    product = get_storage().create_product(data)
    log_action("create", "product", product.id, data)
    return jsonify(to_dict(product)), 201


@catalog_bp.route("/products/<int:product_id>", methods=["PUT"])
@require_capability("products.manage")
def update_product(product_id: int):
    data = parse_payload("product", json_body(), partial=True)
    _check_category(data)
    product = get_storage().update_product(product_id, data)
    log_action("update", "product", product.id, data)
    return jsonify(to_dict(product))


@catalog_bp.route("/products/<int:product_id>", methods=["DELETE"])
@require_capability("products.manage")
def delete_product(product_id: int):
    storage = get_storage()
    product = storage.get_product(product_id)
    snapshot = {"name": product.name}
    storage.delete_product(product_id)
    log_action("delete", "product", product_id, snapshot)
    return "", 204


@catalog_bp.route("/products/search/<path:query>", methods=["GET"])
@require_capability("products.view")
def search_products(query: str):
    return jsonify(to_list(get_storage().search_products(query.strip())))


# ============================================================
# CATEGORIES
# ============================================================

@catalog_bp.route("/categories", methods=["GET"])
@require_capability("categories.view")
def list_categories():
    return jsonify(to_list(get_storage().list_categories()))


@catalog_bp.route("/categories", methods=["POST"])
@require_capability("categories.manage")
def create_category():
    storage = get_storage()
    data = parse_payload("category", json_body())
    if data.get("parent_id") is not None:
        storage.get_category(data["parent_id"])
    category = storage.create_category(data)
    log_action("create", "category", category.id, data)
    return jsonify(to_dict(category)), 201


@catalog_bp.route("/categories/<int:category_id>/products", methods=["GET"])
@require_capability("categories.view")
def category_products(category_id: int):
    storage = get_storage()
    storage.get_category(category_id)
    return jsonify(to_list(storage.list_products_by_category(category_id)))
