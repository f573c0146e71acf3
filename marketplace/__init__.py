import json
import os

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from marketplace.config import Config
from marketplace.core.event_bus import get_event_bus
from marketplace.db import DB_ERRORS, close_db, get_db, init_db
from marketplace.db_migrations import register_db_cli
from marketplace.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from marketplace.procurement.notifications import register_notification_handlers
from marketplace.security import apply_security_headers, enforce_form_csrf, enforce_rate_limit


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _register_marketplace_cli(app)
    _maybe_init_schema(app)

    register_notification_handlers(get_event_bus())
    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("db_auto_init_ignored", extra={"flask_env": flask_env})
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from marketplace.routes.account_routes import account_bp
    from marketplace.routes.admin_routes import admin_bp
    from marketplace.routes.catalog_routes import catalog_bp
    from marketplace.routes.client_routes import client_bp
    from marketplace.routes.supplier_routes import supplier_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(client_bp)
    app.register_blueprint(supplier_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(account_bp)


def _register_auth(app: Flask) -> None:
    from marketplace.auth import register_auth

    register_auth(app)


def _register_error_handlers(app: Flask) -> None:
    from marketplace.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        if exc.critical:
            app.logger.error("application_error", extra=exc.log_context(), exc_info=exc)
        else:
            app.logger.info("request_refused", extra=exc.log_context())
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        mapped = SystemError(code="unexpected_error", details=f"{type(exc).__name__}: {exc}")
        app.logger.error("unexpected_exception", extra=mapped.log_context(), exc_info=exc)
        return jsonify(mapped.to_response_payload(ensure_request_id())), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()

    @app.before_request
    def _csrf_guard():
        enforce_form_csrf()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": app.config.get("ENV", "unknown"),
            "metrics": {
                "http": metrics_snapshot(),
            },
        }
        try:
            get_db().execute("SELECT 1").fetchone()
            payload["database"] = "reachable"
        except DB_ERRORS:
            app.logger.warning("health_db_unreachable", exc_info=True)
            payload["status"] = "degraded"
            payload["database"] = "unreachable"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return app.response_class(prometheus_metrics_text(), mimetype="text/plain; version=0.0.4")


def _register_marketplace_cli(app: Flask) -> None:
    @app.cli.group("marketplace")
    def marketplace_group() -> None:
        """Marketplace maintenance commands."""

    @marketplace_group.command("seed")
    def seed_command() -> None:
        from marketplace.seed import seed_demo_data

        init_db()
        result = seed_demo_data(get_db())
        click.echo(f"Seeded {result['categories']} categories and {result['accounts']} accounts.")

    @marketplace_group.command("reconcile")
    def reconcile_command() -> None:
        from marketplace.procurement.reconciliation import find_lifecycle_anomalies

        report = find_lifecycle_anomalies(get_db())
        click.echo(json.dumps(report, indent=2, default=str))

    @marketplace_group.command("expire")
    def expire_command() -> None:
        from marketplace.procurement.reconciliation import expire_overdue

        result = expire_overdue(get_db())
        click.echo(f"Expired {len(result['rfqs'])} RFQs and {len(result['quotes'])} quotes.")
