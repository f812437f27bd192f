# backend/storeline/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.locations import locations_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.purchases import purchases_bp
    from .routes.returns import returns_bp
    from .routes.sales import sales_bp
    from .routes.shifts import shifts_bp
    from .routes.transfers import transfers_bp
    from .routes.expenses import expenses_bp
    from .routes.reports import reports_bp
    from .routes.settings import settings_bp
    from .routes.audit import audit_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(audit_bp)

    allowed_origins = set(app.config.get("CORS_ORIGINS", []))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
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
