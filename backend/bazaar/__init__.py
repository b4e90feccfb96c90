# backend/bazaar/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, *, settlement_gateway=None, repository=None) -> Flask:
    """
    Application factory.

    `config_overrides` is applied after Config (tests point the database at
    SQLite here). `settlement_gateway` and `repository` replace the defaults
    built from config, so tests can script declines or run on a fake store.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "bazaar" logger; service module loggers propagate to it
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .container import build_services
    app.extensions["bazaar"] = build_services(app.config, repository=repository, gateway=settlement_gateway)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.loyalty import loyalty_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(loyalty_bp)
    app.register_blueprint(notifications_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
