"""Application factory for LeagueHub."""

from __future__ import annotations

from flask import Flask, jsonify

from leaguehub.blueprints.admin import admin_bp
from leaguehub.blueprints.api import api_bp
from leaguehub.blueprints.auth import auth_bp
from leaguehub.blueprints.common.tenant import init_tenant
from leaguehub.config import Config
from leaguehub.extensions import (
    db,
    migrate,
    login_manager,
    csrf,
    limiter,
)
from leaguehub.models import User
from leaguehub.security.config import configure_security_headers, validate_input_length
from leaguehub.standings.errors import ConsistencyError, LeagueError


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)
    init_tenant(app)

    # Configure security
    configure_security_headers(app)
    validate_input_length(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    register_error_handlers(app)

    # Ensure models are registered for migrations
    import leaguehub.models  # noqa: F401

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(api_bp, url_prefix='/api/v1')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    # Register CLI commands
    from leaguehub.commands import register_commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Render every rejected operation as JSON."""

    @app.errorhandler(LeagueError)
    def handle_league_error(error: LeagueError):
        db.session.rollback()
        if isinstance(error, ConsistencyError):
            app.logger.critical(f"Consistency failure: {error.message} {error.context}")
        else:
            app.logger.warning(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(PermissionError)
    def handle_permission_error(error: PermissionError):
        db.session.rollback()
        app.logger.warning(f"Blocked: {error}")
        return jsonify({'error': str(error) or 'Forbidden'}), 403

    for code, message in ((400, 'Bad request'), (403, 'Forbidden'), (404, 'Not found'),
                          (405, 'Method not allowed'), (413, 'Payload too large'),
                          (429, 'Too many requests')):
        app.register_error_handler(code, _json_error(message, code))


def _json_error(message: str, code: int):
    def handler(error):
        return jsonify({'error': message}), code
    return handler


__all__ = ["create_app"]
