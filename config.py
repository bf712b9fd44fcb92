"""
Application configuration.

This module defines the configuration settings for the TrustCota procurement API: database connection,
storage backend, secret key, SMTP, AI advisor and logging. It uses environment variables for sensitive
information and defaults for development. In production, make sure to set the appropriate environment
variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'trustcota.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" (SQLAlchemy) or "memory" (process-local, development only)
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "sql")

    # JSON API: clients send the token from /api/auth/csrf-token in X-CSRFToken
    WTF_CSRF_ENABLED = _env_bool("WTF_CSRF_ENABLED", True)
    WTF_CSRF_TIME_LIMIT = None

    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_MB", "10")) * 1024 * 1024

    # Outbound e-mail
    MAIL_SERVER = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    MAIL_PORT = int(os.environ.get("SMTP_PORT", "587"))
    MAIL_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("SMTP_USER")
    MAIL_PASSWORD = os.environ.get("SMTP_PASS")
    MAIL_DEFAULT_SENDER = os.environ.get("SMTP_FROM", "sistema@trustcota.com")
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)
    MAIL_TIMEOUT_SECONDS = 10
    SUPPLIER_NOTIFICATION_LIMIT = 5

    # AI advisor (fallback content is used when no key is configured)
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o")
    OPENAI_API_URL = os.environ.get("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions")
    AI_TIMEOUT_SECONDS = int(os.environ.get("AI_TIMEOUT_SECONDS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    """Configuration used by the pytest suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STORAGE_BACKEND = "sql"
    WTF_CSRF_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    OPENAI_API_KEY = None
    LOG_LEVEL = "WARNING"
