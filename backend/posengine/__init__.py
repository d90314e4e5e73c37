# backend/posengine/__init__.py
from flask import Flask

from .config import Config
from .extensions import db


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)

    # Import models so metadata is complete before create_all
    from . import models  # noqa: F401

    from .services.settings_service import seed_store_settings

    with app.app_context():
        db.create_all()
        seed_store_settings()

    # One request at a time against the shared connection
    from .services.concurrency import serialize_requests
    app.wsgi_app = serialize_requests(app.wsgi_app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.carts import carts_bp
    from .routes.holds import holds_bp
    from .routes.sales import sales_bp, returns_bp
    from .routes.customers import customers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(carts_bp)
    app.register_blueprint(holds_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(customers_bp)

    # Commit notifications -> app log
    from .services.events import connect_logging
    connect_logging(app)

    # Urgent-hold sweep
    from .services.hold_monitor import HoldMonitor
    monitor = HoldMonitor(app)
    app.extensions["hold_monitor"] = monitor
    if app.config.get("HOLD_MONITOR_ENABLED"):
        monitor.start()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
