"""Application factory and extension initialization for ClaimFlow."""
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from flask_login import LoginManager
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from config import config_by_name

# Global extension instances -------------------------------------------------

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
mail = Mail()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Flask application factory."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    config_name = config_name or os.getenv("FLASK_CONFIG", "development")
    config_class = config_by_name.get(config_name.lower())
    if config_class is None:
        raise ValueError(f"Unknown Flask configuration '{config_name}'")

    app.config.from_object(config_class)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Ensure instance folder exists for SQLite DBs
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    mail.init_app(app)

    # Initialize notification service
    from claimflow.services.notifications import init_notification_service
    init_notification_service(mail)

    from claimflow.errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from claimflow.claims import claims_bp
    from claimflow.policy import policy_bp

    app.register_blueprint(claims_bp)
    app.register_blueprint(policy_bp)

    # Import all models to ensure they are registered with SQLAlchemy
    from claimflow.models import (  # noqa: F401
        ApprovalPolicy, AuditEntry, Company, ExpenseClaim, PolicyApprover, User
    )

    @login_manager.request_loader
    def load_user_from_request(request) -> Optional[User]:
        raw_id = request.headers.get("X-User-Id", "").strip()
        if not raw_id.isdigit():
            return None
        return db.session.get(User, int(raw_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from claimflow.utils.helpers import json_response
        return json_response({"error": "Authentication required."}, status=401)

    @app.shell_context_processor
    def shell_context():
        return {"db": db, "User": User, "ExpenseClaim": ExpenseClaim}

    return app
