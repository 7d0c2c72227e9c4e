"""Flask application factory and bootstrap.

This module provides the create_app() factory function wiring configuration,
stores, services, blueprints and error handlers.

Run locally:
    flask --app "evolution_admin.flask_app:create_app()" run
"""
from __future__ import annotations
from typing import Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from evolution_admin.config import AppConfig, load_settings
from evolution_admin.core.assignment_service import AssignmentService
from evolution_admin.core.credentials import CredentialService
from evolution_admin.core.stats_service import StatsService
from evolution_admin.core.store import (
    Database,
    HttpLocalStore,
    LocalStore,
    SqlLocalStore,
    SqlUserStore,
    UserStore,
)
from evolution_admin.core.user_service import UserService


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────
def _open_database(cfg: AppConfig) -> Database:
    """Open DATABASE_URL and ensure the schema exists.

    Demo mode without DATABASE_URL falls back to an in-memory SQLite database
    that is lost on restart.
    """
    database_url = cfg.database_url
    if not database_url:
        if not cfg.demo_mode:
            raise RuntimeError("DATABASE_URL not found in /run/secrets or environment")
        database_url = "sqlite://"
        print("[flask_app] WARNING: DATABASE_URL not set - using in-memory SQLite (data lost on restart)")

    database = Database.from_url(database_url)
    database.create_tables()
    return database


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    config: Optional[AppConfig] = None,
    user_store: Optional[UserStore] = None,
    local_store: Optional[LocalStore] = None,
    credentials: Optional[CredentialService] = None,
) -> Flask:
    """Create and configure Flask application.

    Args:
        config: Settings; loaded from the environment when omitted
        user_store: Persistence for users; DATABASE_URL when omitted
        local_store: Location lookup; HTTP when LOCALES_SERVICE_URL is set,
            otherwise the ``locales`` table of DATABASE_URL
        credentials: Password hashing collaborator

    Raises:
        RuntimeError: If a store must be built and DATABASE_URL is missing
            outside demo mode
    """
    cfg = config or load_settings()

    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode

    database = None
    if user_store is None or (local_store is None and not cfg.uses_remote_locales):
        database = _open_database(cfg)

    users = user_store if user_store is not None else SqlUserStore(database)
    if local_store is not None:
        locales = local_store
    elif cfg.uses_remote_locales:
        locales = HttpLocalStore(cfg.locales_service_url, cfg.locales_service_token or None)
    else:
        locales = SqlLocalStore(database)
    credentials = credentials or CredentialService(method=cfg.password_hash_method)

    app.config["DATABASE"] = database
    app.config["USER_STORE"] = users
    app.config["LOCAL_STORE"] = locales
    app.config["USER_SERVICE"] = UserService(users, locales, credentials, cfg)
    app.config["ASSIGNMENT_SERVICE"] = AssignmentService(users, locales)
    app.config["STATS_SERVICE"] = StatsService(users, locales, cfg)

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    # Register blueprints
    from evolution_admin.api import admin, errors, health

    app.register_blueprint(health.bp)
    app.register_blueprint(admin.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Log startup info
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    store_label = type(locales).__name__
    database_label = database.url if database is not None else "injected"
    print(f"[flask_app] Mode={mode_label}; database={database_label}; locales={store_label}")
    print("[flask_app] Administration API registered at /admin")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo credentials")

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
