"""
trustcota/extensions.py

Flask extension singletons for the TrustCota API.

Kept apart from the factory to avoid circular imports: models import `db`,
blueprints import `login_manager`/`csrf`, and create_app() binds all of them
to the application instance.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

login_manager = LoginManager()
# Session cookies are bound to the client fingerprint; a mismatch drops the session.
login_manager.session_protection = "strong"
