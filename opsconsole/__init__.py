"""
opsconsole/__init__.py

Flask application factory for the Hotel Equipment Operations Console.

Requirements:
- Clear architecture, stable imports, server-side security.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- UI is never trusted; server-side access control is enforced.

Wiring:
- extensions (db, migrate, csrf, login_manager)
- viewer read-only guard
- auth + orders blueprints (JSON)
- WorkflowError -> JSON error handler
- the ProcurementWorkflow instance, stored in app.extensions["procurement_workflow"]
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify, request

from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import can_audit, viewer_readonly_guard
from .workflow.errors import WorkflowError

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    """Route the package loggers through one stream handler at LOG_LEVEL."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    package_logger = logging.getLogger("opsconsole")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        package_logger.addHandler(handler)


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthenticated", "message": "Login required."}), 401

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: Viewer read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """
        Viewer read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        return viewer_readonly_guard()

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(WorkflowError)
    def _workflow_error(exc: WorkflowError):
        if exc.http_status >= 500:
            logger.error("Workflow failure: %s", exc.message)
        else:
            logger.info("Workflow refused %s %s: %s %s", request.method, request.path, exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    # ----------------------------------------------------------------------
    # Workflow service
    # ----------------------------------------------------------------------
    from .inventory import materialize_inventory
    from .repository import OrderRepository
    from .workflow.service import ProcurementWorkflow

    app.extensions["procurement_workflow"] = ProcurementWorkflow(
        repository=OrderRepository(db.session),
        authorizer=can_audit,
        materializer=materialize_inventory,
    )

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth.routes import auth_bp
    from .blueprints.orders.routes import orders_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    @click.option("--no-users", is_flag=True, help="Seed master data only.")
    def seed_demo_command(no_users: bool):
        """Seed demo regions, stores, products and users."""
        from .seed import seed_demo_data

        seed_demo_data(with_users=not no_users)
        click.echo("Demo data seeded.")

    @app.route("/")
    def index():
        return jsonify({"app": app.config.get("APP_NAME"), "status": "ok"})

    return app
