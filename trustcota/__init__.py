"""
trustcota/__init__.py

Flask application factory for the TrustCota procurement API.

Requirements:
- JSON API only; the browser client is never trusted and every route enforces
  its own capability (see security.POLICY).
- The storage backend ("sql" or "memory") is chosen ONCE here and injected via
  app.extensions["storage"]; nothing else decides which backend is in use.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
"""

from __future__ import annotations

import logging
from typing import Optional

import click
from flask import Flask, jsonify

from .errors import AppError, NotFoundError, register_error_handlers
from .extensions import csrf, db, login_manager, migrate
from .logging_setup import configure_logging
from .models import User
from .services.ai import AiAdvisor
from .services.notifications import EmailNotifier
from .storage import SqlStorage, Storage, build_storage

logger = logging.getLogger(__name__)


def create_app(config_object: str = "config.Config", storage: Optional[Storage] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    # Services (one instance per application)
    storage = storage if storage is not None else build_storage(app)
    app.extensions["storage"] = storage
    app.extensions["notifier"] = EmailNotifier.from_app(app)
    app.extensions["ai_advisor"] = AiAdvisor.from_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login from the configured storage backend."""
        try:
            return storage.get_user(int(user_id))
        except (NotFoundError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Authentication required"}), 401

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.audit import audit_bp
    from .blueprints.auth import auth_bp
    from .blueprints.catalog import catalog_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.orders import orders_bp
    from .blueprints.quotations import quotations_bp
    from .blueprints.uploads import uploads_bp
    from .blueprints.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(audit_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-catalog")
    def seed_catalog_command():
        """Seed default product categories."""
        from .seed import seed_default_categories

        created = seed_default_categories(app.extensions["storage"])
        click.echo(f"Default categories seeded ({created} created).")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--role", default="requisitante", show_default=True, help="admin, requisitante, cotador or aprovador")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--email", default=None)
    def create_user_command(username: str, role: str, password: str, email: Optional[str]):
        """Create a local user account."""
        from .seed import create_local_user

        try:
            user = create_local_user(app.extensions["storage"], username, password, role, email)
        except AppError as exc:
            raise click.ClickException(exc.message)
        click.echo(f"User {user.username} ({user.role}) created.")

    if isinstance(storage, SqlStorage):
        with app.app_context():
            db.create_all()

    logger.info("TrustCota API ready (storage backend: %s)", storage.backend_name)
    return app
