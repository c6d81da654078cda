# backend/retailpos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Process-scoped collaborators for the sale engine
    from .services.audit_service import AuditSink
    from .services.broadcast import LoggingBroadcaster
    from .services.sales_service import SaleTransactionEngine

    app.extensions["sale_engine"] = SaleTransactionEngine.from_config(
        app.config,
        broadcaster=LoggingBroadcaster(),
        audit_sink=AuditSink(),
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.sales import sales_bp
    from .routes.cash_sessions import cash_sessions_bp
    from .routes.notifications import notifications_bp
    from .routes.stock import stock_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(cash_sessions_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(stock_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def start_alert_scheduler(app: Flask):
    """
    Start the background alert timer for a serving process.

    Not called by create_app so tests and CLI commands never spawn it.
    """
    from .services.alert_service import AlertScheduler

    scheduler = AlertScheduler(app, int(app.config.get("ALERT_CHECK_INTERVAL_SECONDS", 0)))
    if scheduler.start():
        app.extensions["alert_scheduler"] = scheduler
    return scheduler
