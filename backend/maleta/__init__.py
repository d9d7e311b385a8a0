# backend/maleta/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Service modules log under "maleta.services.*"
    logging.getLogger("maleta").setLevel(app.config.get("LOG_LEVEL", "INFO"))
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.settlements import settlements_bp
    from .routes.suitcases import suitcases_bp, suitcase_items_bp, analytics_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(settlements_bp)
    app.register_blueprint(suitcases_bp)
    app.register_blueprint(suitcase_items_bp)
    app.register_blueprint(analytics_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
