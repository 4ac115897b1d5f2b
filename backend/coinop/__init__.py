# backend/coinop/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One counter ledger per application, over the scoped session
    from .services.counter_service import CounterLedger
    ledger = CounterLedger(db.session, default_split_percentage=app.config["DEFAULT_SPLIT_PERCENTAGE"])
    app.extensions["counter_ledger"] = ledger

    @app.teardown_appcontext
    def close_ledger(exc):
        ledger.close()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.machines import machines_bp
    from .routes.counters import counters_bp
    from .routes.clients import clients_bp
    from .routes.collections import collections_bp
    from .routes.expenses import expenses_bp
    from .routes.company import company_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(machines_bp)
    app.register_blueprint(counters_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(collections_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(company_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
