import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


# Initialize extensions
db = SQLAlchemy()


def configure_logging(app):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))
    handlers.append(console_handler)

    # File handler (skipped when LOG_DIR is unset, e.g. in tests)
    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'vaultprune.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers)

    # Configure Flask app logger
    app.logger.setLevel(log_level)
    for handler in handlers:
        app.logger.addHandler(handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from vaultprune.config import config
    app.config.from_object(config[config_name])

    # Configure logging
    configure_logging(app)

    # Ensure required directories exist
    os.makedirs(app.config['STAGING_DIR'], exist_ok=True)
    db_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if db_uri.startswith('sqlite:///') and ':memory:' not in db_uri:
        os.makedirs(os.path.dirname(db_uri.replace('sqlite:///', '')) or '.', exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register blueprints
    from vaultprune.routes import jobs_routes, history_routes
    app.register_blueprint(jobs_routes.bp)
    app.register_blueprint(history_routes.bp)

    # CLI commands
    from vaultprune.cli import register_commands
    register_commands(app)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Initialize database schema and run migrations
    from vaultprune import models
    from vaultprune.migrations import init_database_schema

    init_database_schema(app)

    if app.config.get('SCHEDULER_ENABLED', False):
        from vaultprune.scheduler import init_scheduler, start_scheduler, sync_replication_jobs, stop_scheduler
        import atexit

        app.logger.info("Initializing scheduler in this process...")
        init_scheduler(app)
        start_scheduler()

        with app.app_context():
            sync_replication_jobs()

        atexit.register(stop_scheduler)
        app.logger.info("Scheduler initialized and started successfully")
    else:
        app.logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    return app
