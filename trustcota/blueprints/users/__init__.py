"""
trustcota/blueprints/users/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import users_bp  # noqa: F401
