"""
trustcota/blueprints

JSON API blueprints. Each package exposes its Blueprint object from routes.py.
"""

from __future__ import annotations

from typing import Any, Dict

from flask import jsonify, request

from ..errors import ValidationError
from ..serialization import to_dict
from ..services.side_effects import TransitionResult


def json_body(optional: bool = False) -> Dict[str, Any]:
    """Return the request JSON object. Empty bodies are allowed only when optional."""
    data = request.get_json(silent=True)
    if data is None and optional:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def transition_response(result: TransitionResult, status: int = 200):
    """
    Serialize a lifecycle TransitionResult.

    The body is the entity itself. Failed side effects are reported out of band
    in the X-Side-Effects-Failed header (comma-separated names).
    """
    response = jsonify(to_dict(result.entity))
    response.status_code = status
    failed = result.failed_side_effects
    if failed:
        response.headers["X-Side-Effects-Failed"] = ",".join(r.name for r in failed)
    return response
