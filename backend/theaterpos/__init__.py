# backend/theaterpos/__init__.py
import logging

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .responses import fail
from .validation import DuplicateKeyError, NotFoundError, PersistenceError, ValidationError


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.roles import roles_bp
    from .routes.theater_users import theater_users_bp, theater_auth_bp
    from .routes.page_access import page_access_bp
    from .routes.qr_code_names import qr_code_names_bp
    from .routes.access import access_bp
    from .routes.stock import stock_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(theater_users_bp)
    app.register_blueprint(theater_auth_bp)
    app.register_blueprint(page_access_bp)
    app.register_blueprint(qr_code_names_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(stock_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-User-Id, X-Theater-Id, X-User-Type"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """Translate service exceptions into the {success, data, message} envelope."""

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return fail(str(exc), 400, exc.fields)

    @app.errorhandler(DuplicateKeyError)
    def handle_duplicate(exc):
        return fail(str(exc), 400)

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return fail(str(exc), 404)

    @app.errorhandler(PersistenceError)
    def handle_persistence(exc):
        return fail(str(exc), 500)

    @app.errorhandler(HTTPException)
    def handle_http(exc):
        return fail(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return fail("Internal server error", 500)
