"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask --app roomsync.app assign-weekly-tasks` without a server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure the `roomsync` logger from LOG_LEVEL
  3. Initialise SQLAlchemy via init_app()
  4. Register route blueprints under /api/v1 and the CLI commands
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Add CORS headers in DEBUG / TESTING

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it or db.create_all() runs.
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, jsonify, request
from marshmallow import ValidationError

from roomsync.config import config_by_name, validate_production_config

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s — %(message)s"


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from roomsync.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from roomsync.app.models import (  # noqa: F401
            assignment,
            group,
            membership,
            task,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from roomsync.app.commands import register_commands
    register_commands(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Attaches one stream handler to the package logger. Service modules log
    through logging.getLogger(__name__), so everything under `roomsync.*`
    shares this level and format.
    """
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    package_logger = logging.getLogger("roomsync")
    package_logger.setLevel(getattr(logging, level, logging.INFO))

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        package_logger.addHandler(handler)

    app.logger.setLevel(package_logger.level)


def _register_blueprints(app: Flask) -> None:
    """Registers all route blueprints under the /api/v1 prefix."""
    from roomsync.app.routes.groups import groups_bp
    from roomsync.app.routes.tasks import tasks_bp

    app.register_blueprint(groups_bp, url_prefix="/api/v1/groups")
    app.register_blueprint(tasks_bp,  url_prefix="/api/v1/tasks")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from roomsync.app.errors import AppError, ErrorCode, ErrorKind

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.kind == ErrorKind.DEPENDENCY_FAILURE:
            app.logger.warning("Dependency failure: %s %s", error.message, error.details or "")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST field error is reported: one error, not many.
        """
        messages = error.messages  # e.g. {"name": ["Missing data for required field."]}

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None

                while isinstance(field_errors, dict):
                    # Nested / list-item errors: {"user_ids": {0: ["..."]}}
                    field_errors = next(iter(field_errors.values()), "Invalid value.")

                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."

        if str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD

        response_body = {
            "error": {
                "code": code,
                "kind": ErrorKind.VALIDATION,
                "message": raw_message,
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "kind": ErrorKind.INTERNAL,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response
