"""
trustcota/blueprints/quotations/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose quotations_bp for app factory registration.
"""

from __future__ import annotations

from .routes import quotations_bp  # noqa: F401
