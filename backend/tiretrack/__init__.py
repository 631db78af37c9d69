from datetime import timedelta

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Open audit sessions, addressed by id
    from .services.audit_service import AuditRegistry
    app.extensions["audit_sessions"] = AuditRegistry(
        max_age=timedelta(minutes=app.config["AUDIT_SESSION_MAX_AGE_MINUTES"])
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.tires import tires_bp
    from .routes.containers import containers_bp
    from .routes.audits import audits_bp
    from .routes.imports import imports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(tires_bp)
    app.register_blueprint(containers_bp)
    app.register_blueprint(audits_bp)
    app.register_blueprint(imports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Performed-By"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
