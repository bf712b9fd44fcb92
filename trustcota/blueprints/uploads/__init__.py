"""Spreadsheet upload blueprint package."""

from .routes import uploads_bp  # noqa: F401
