# backend/barrelpos/__init__.py
from flask import Flask

from .config import Config
from .errors import register_error_handlers
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

    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.shifts import shifts_bp
    from .routes.inventory import inventory_bp
    from .routes.whatsapp import whatsapp_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(whatsapp_bp)

    # WhatsApp conversation engine (one per app; sessions live in its store)
    from .services.conversation_service import ConversationService
    from .services.session_store import build_session_store
    from .services.whatsapp_client import WhatsAppClient

    sender = WhatsAppClient.from_config(app.config, logger=app.logger)
    app.extensions["conversation_service"] = ConversationService(
        store=build_session_store(app.config["WHATSAPP_SESSION_BACKEND"]),
        sender=sender,
        config=app.config,
    )

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
