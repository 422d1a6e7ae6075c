from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging
from logging.handlers import SMTPHandler, RotatingFileHandler
import os
import click

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
login = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name='development'):
    """Application factory function"""
    app = Flask(__name__)

    # Load and validate configuration
    from config import config
    config_class = config[config_name]
    config_class.validate()
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login.init_app(app)
    limiter.init_app(app)

    # Configure logging
    configure_logging(app)

    # Register session handling
    register_login_handlers(app)

    # Register middleware
    register_middleware(app)

    # Register blueprints/routes
    register_routes(app)

    # Register CLI commands
    register_commands(app)

    return app


def configure_logging(app):
    """Configure logging for the application"""
    # Ensure instance/logs directory exists
    logs_dir = os.path.join(app.instance_path, 'logs')
    if not os.path.exists(logs_dir):
        os.makedirs(logs_dir)

    # Always log to file (even in debug mode)
    app_log_path = os.path.join(logs_dir, 'app.log')
    file_handler = RotatingFileHandler(app_log_path, maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)

    # Set appropriate log level
    if app.debug:
        app.logger.setLevel(logging.DEBUG)
    else:
        app.logger.setLevel(logging.INFO)

    # Email notifications for production errors only
    if not app.debug and not app.testing and app.config.get('MAIL_SERVER'):
        auth = None
        if app.config['MAIL_USERNAME'] or app.config['MAIL_PASSWORD']:
            auth = (app.config['MAIL_USERNAME'], app.config['MAIL_PASSWORD'])
        secure = None
        if app.config['MAIL_USE_TLS']:
            secure = ()
        mail_handler = SMTPHandler(
            mailhost=(app.config['MAIL_SERVER'], app.config['MAIL_PORT']),
            fromaddr='no-reply@' + app.config['MAIL_SERVER'],
            toaddrs=app.config['ADMINS'], subject='Squares Pool Failure',
            credentials=auth, secure=secure)
        mail_handler.setLevel(logging.ERROR)
        app.logger.addHandler(mail_handler)

    app.logger.info('Squares Pool application startup')


def register_login_handlers(app):
    """Answer unauthenticated API requests with JSON instead of a redirect"""

    @login.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'code': 'unauthorized',
            'error': 'Authentication required'
        }), 401


def register_middleware(app):
    """Register middleware functions"""

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response


def register_routes(app):
    """Register application routes via blueprints"""
    # Import and register blueprints
    from app.pools import bp as pools_bp
    from app.squares import bp as squares_bp
    from app.scores import bp as scores_bp
    from app.cron import bp as cron_bp

    app.register_blueprint(pools_bp, url_prefix='/pools')
    app.register_blueprint(squares_bp, url_prefix='/pools')
    app.register_blueprint(scores_bp, url_prefix='/pools')
    app.register_blueprint(cron_bp, url_prefix='/cron')

    # Register error handlers
    from app.errors import register_error_handlers
    register_error_handlers(app)

    # Import models to ensure they're loaded
    from app import models


def register_commands(app):
    """Register Flask CLI commands"""

    @app.cli.command('auto-lock-pools')
    def auto_lock_pools_command():
        """Lock and randomize every pool whose game time has passed."""
        from app.pools.utils import auto_lock_pools

        results = auto_lock_pools()
        failed = [r for r in results if not r['success']]
        for result in results:
            actions = ', '.join(result['actions']) or 'none'
            line = f"{result['pool_id']}: {actions}"
            if result.get('error'):
                line += f" ({result['error']})"
            click.echo(line)
        click.echo(f"Processed {len(results)} pools, {len(failed)} failed")
