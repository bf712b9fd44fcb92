"""
Authentication Routes

Provides:
- POST /api/auth/login
- POST /api/auth/logout
- GET  /api/auth/user
- GET  /api/auth/csrf-token
- POST /api/auth/seed-admin (first system bootstrap)

Rules:
- Only active users may log in.
- Credentials are validated against the stored password hash.
- seed-admin only works while the user table is empty.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from .. import json_body
from ...audit import log_action
from ...errors import AuthenticationError, AuthorizationError, ConflictError, ValidationError
from ...models import ROLE_ADMIN
from ...security import load_actor
from ...serialization import to_dict
from ...storage import get_storage

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

MIN_PASSWORD_LENGTH = 6


def _credentials(data):
    username = str(data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not isinstance(password, str) or not password:
        raise ValidationError("Username and password are required")
    return username, password


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    username, password = _credentials(json_body())

    user = get_storage().find_user_by_username(username)
    if user is None or not user.check_password(password):
        logger.info("Failed login for %s", username)
        raise AuthenticationError("Invalid username or password")
    if not user.is_active:
        raise AuthorizationError("Account is disabled")

    login_user(user)
    logger.info("User %s logged in", user.username)
    return jsonify(to_dict(user))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route("/user", methods=["GET"])
def current():
    """The logged-in user's stored row (401 when anonymous)."""
    return jsonify(to_dict(load_actor()))


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Token to send back in the X-CSRFToken header on mutating requests."""
    return jsonify({"csrfToken": generate_csrf()})


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety rule: if ANY user already exists, the call is refused.
    """
    storage = get_storage()
    if storage.count_users() > 0:
        raise ConflictError("Users already exist; ask an administrator for an account")

    data = json_body()
    username, password = _credentials(data)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")

    email = str(data.get("email") or "").strip() or None
    user = storage.create_user({"username": username, "email": email, "role": ROLE_ADMIN}, password)
    log_action("create", "user", user.id, {"username": user.username, "role": ROLE_ADMIN}, user_id=user.id)
    logger.info("Bootstrap admin %s created", user.username)
    return jsonify(to_dict(user)), 201
