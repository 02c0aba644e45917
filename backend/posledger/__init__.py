# backend/posledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.registers import registers_bp
    from .routes.transactions import transactions_bp
    from .routes.discounts import discounts_bp
    from .routes.stored_value import stored_value_bp

    app.register_blueprint(registers_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(stored_value_bp)

    @app.get("/health")
    def health():
        return {"status": "ok"}, 200

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
