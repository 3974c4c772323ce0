# backend/pointonsale/__init__.py
from flask import Flask, jsonify

from .config import Config
from .errors import CoreError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Must land before db.init_app reads SQLALCHEMY_DATABASE_URI
        app.config.update(config_overrides)

    app.logger.setLevel(str(app.config["LOG_LEVEL"]).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.scopes import scopes_bp
    from .routes.wallets import wallets_bp
    from .routes.inventory import inventory_bp
    from .routes.stock_requests import stock_requests_bp
    from .routes.fund_requests import fund_requests_bp
    from .routes.pos import pos_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(scopes_bp)
    app.register_blueprint(wallets_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(stock_requests_bp)
    app.register_blueprint(fund_requests_bp)
    app.register_blueprint(pos_bp)

    @app.errorhandler(CoreError)
    def handle_core_error(err: CoreError):
        db.session.rollback()
        if err.status_code >= 500:
            app.logger.warning("Request failed with %s: %s", err.kind, err.message)
        return jsonify(err.to_dict()), err.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
