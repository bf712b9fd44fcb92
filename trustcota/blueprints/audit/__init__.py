"""Audit log / AI analysis blueprint package."""

from .routes import audit_bp  # noqa: F401
