from .routes import orders_bp  # noqa: F401
