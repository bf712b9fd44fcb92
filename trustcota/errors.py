"""
trustcota/errors.py

Error taxonomy for the API and the handlers that turn it into JSON responses.

Propagation policy:
- Storage and validation errors bubble up to the route layer untouched.
- register_error_handlers() maps them to an HTTP status and a {"message": ...} body.
- Side-effect failures (e-mail, AI) never reach this module; they are caught
  in services/side_effects.py.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to a client-facing HTTP response."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = dict(self.payload)
        body["message"] = self.message
        return body


class ValidationError(AppError):
    """Bad or missing input."""

    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class AuthorizationError(AppError):
    status_code = 403


class NotFoundError(AppError):
    """Raised by storage when a row does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        label = entity.replace("_", " ").capitalize()
        message = f"{label} not found" if entity_id is None else f"{label} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class TransitionError(AppError):
    """Lifecycle precondition failed (wrong status, nothing selected, ...). State is left untouched."""

    status_code = 400


class ConflictError(AppError):
    """Unique value already taken (tax id, username, ...)."""

    status_code = 409


def register_error_handlers(app: Flask) -> None:
    """Install JSON error handlers on the application."""

    @app.errorhandler(AppError)
    def _handle_app_error(error: AppError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def _handle_csrf_error(error: CSRFError):
        return jsonify({"message": error.description or "CSRF validation failed"}), 400

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        # 404 for unknown routes, 405, 413 (upload too large), ...
        return jsonify({"message": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unhandled error while processing request")
        return jsonify({"message": "Internal server error"}), 500
