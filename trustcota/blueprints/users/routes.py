"""
User Management (Admin Only).

Rules enforced:
- Only admins create, list and edit accounts.
- Passwords are write-only: hashed on input, never serialized.
- Every user may list their own quotation requests; staff roles may list anyone's.

Audit:
- CREATE / UPDATE logged (password changes are logged as a flag, never the value)
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from .. import json_body
from ...audit import log_action
from ...errors import ValidationError
from ...security import require_capability, require_owner_or_capability
from ...serialization import parse_payload, to_dict, to_list
from ...storage import get_storage

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

MIN_PASSWORD_LENGTH = 6


def _password(data, required: bool):
    password = data.get("password")
    if password in (None, ""):
        if required:
            raise ValidationError("Field 'password' is required")
        return None
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
    return password


@users_bp.route("", methods=["GET"])
@require_capability("users.manage")
def list_users():
    return jsonify(to_list(get_storage().list_users()))


@users_bp.route("", methods=["POST"])
@require_capability("users.manage")
def create_user():
    raw = json_body()
    data = parse_payload("user", raw)
    password = _password(raw, required=True)

    user = get_storage().create_user(data, password)
    log_action("create", "user", user.id, data)
    return jsonify(to_dict(user)), 201


@users_bp.route("/<int:user_id>", methods=["PUT"])
@require_capability("users.manage")
def update_user(user_id: int):
    raw = json_body()
    data = parse_payload("user", raw, partial=True)
    password = _password(raw, required=False)

    user = get_storage().update_user(user_id, data, password=password)
    changes = dict(data)
    if password:
        changes["passwordChanged"] = True
    log_action("update", "user", user.id, changes)
    return jsonify(to_dict(user))


@users_bp.route("/<int:user_id>/quotation-requests", methods=["GET"])
@require_owner_or_capability("requests.by_user", lambda user_id: user_id)
def user_quotation_requests(user_id: int):
    storage = get_storage()
    storage.get_user(user_id)
    return jsonify(to_list(storage.list_quotation_requests_by_user(user_id)))
