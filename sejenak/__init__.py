"""
Sejenak Loyalty Engine
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging
from .utils.sentry import init_sentry

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Error reporting before other extensions
    init_sentry(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    cors_origins = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    CORS(
        app,
        origins=[origin.strip() for origin in cors_origins if origin.strip()],
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-User-Id', 'X-User-Role'],
    )

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'sejenak-loyalty'}

    logger.info(f'Sejenak app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.loyalty import loyalty_bp
    from .api.dashboard import dashboard_bp
    from .api.email import email_bp

    app.register_blueprint(loyalty_bp, url_prefix='/api/loyalty')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(email_bp, url_prefix='/api/email')


def register_error_handlers(app: Flask) -> None:
    """Map service exceptions onto JSON error responses."""
    from .utils.errors import error_response, ErrorCode
    from .utils.exceptions import (
        AuthorizationError,
        ConfigurationError,
        DataUnavailableError,
        NotFoundError,
        ValidationError,
    )

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        details = {'field': error.field} if error.field else None
        return error_response(error.message, error.code, 400, log_error=False, details=details)

    @app.errorhandler(NotFoundError)
    def handle_not_found(error):
        return error_response(error.message, error.code, 404, log_error=False)

    @app.errorhandler(AuthorizationError)
    def handle_authorization_error(error):
        return error_response(error.message, error.code, 403, log_error=False)

    @app.errorhandler(DataUnavailableError)
    def handle_data_unavailable(error):
        db.session.rollback()
        logger.error(f'Storage unavailable: {error.message} ({error.original_error})')
        return error_response(error.message, ErrorCode.DATA_UNAVAILABLE, 503, log_error=False)

    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(error):
        return error_response(error.message, ErrorCode.CONFIGURATION_ERROR, 503)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return error_response(error.description, error.name.upper().replace(' ', '_'), error.code, log_error=False)

    @app.errorhandler(500)
    def internal_error(error):
        return error_response('An unexpected error occurred', ErrorCode.INTERNAL_ERROR, 500)
