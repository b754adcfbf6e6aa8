import logging
import os
import sqlite3
from logging.handlers import RotatingFileHandler

import click
from flask import Flask
from sqlalchemy import event
from sqlalchemy.engine import Engine

from .extensions import db, migrate, bcrypt, celery

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite leaves ON DELETE CASCADE unenforced unless asked per connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def create_app(config_name=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    from clinicdesk.config import config, get_config, validate_config
    if config_name:
        app.config.from_object(config.get(config_name, config['default']))
    else:
        app.config.from_object(get_config())

    # Ensure production mode if FLASK_ENV is production
    if os.getenv('FLASK_ENV') == 'production':
        app.config['DEBUG'] = False
        app.config['TESTING'] = False

    validate_config(app.config)

    # Initialize extensions first (before error handlers)
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)

    # Initialize JWT
    from flask_jwt_extended import JWTManager
    JWTManager(app)

    from clinicdesk.utils.cors import init_cors
    init_cors(app)

    # Initialize Celery
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_serializer=app.config['CELERY_TASK_SERIALIZER'],
        accept_content=app.config['CELERY_ACCEPT_CONTENT'],
        result_serializer=app.config['CELERY_RESULT_SERIALIZER'],
        timezone=app.config['CELERY_TIMEZONE'],
        enable_utc=app.config['CELERY_ENABLE_UTC'],
        task_always_eager=app.config['CELERY_TASK_ALWAYS_EAGER'],
        beat_schedule=app.config['CELERY_BEAT_SCHEDULE'],
    )

    # Make celery tasks work with Flask app context
    class FlaskAppContextTask(celery.Task):
        """Make celery tasks work with Flask app context."""
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskAppContextTask

    from clinicdesk.errors import register_error_handlers
    register_error_handlers(app)

    from clinicdesk.middleware import setup_middleware
    setup_middleware(app)

    # Setup logging
    if not app.debug and not app.testing:
        log_file = app.config['LOG_FILE']
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10240000,
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(app.config['LOG_LEVEL'])
        app.logger.addHandler(file_handler)
        app.logger.setLevel(app.config['LOG_LEVEL'])
        app.logger.info('Application startup')

    from clinicdesk.components import init_components
    init_components(app, db.session)

    # Import models to register them with SQLAlchemy
    from clinicdesk import models  # noqa: F401

    from .routes import (
        auth_bp, clinics_bp, billing_bp, super_admin_bp,
        patient_bp, appointment_bp, prescription_bp, invoice_bp, health_bp,
    )
    app.register_blueprint(health_bp)  # Register health check first
    app.register_blueprint(auth_bp)
    app.register_blueprint(clinics_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(super_admin_bp)
    app.register_blueprint(patient_bp)
    app.register_blueprint(appointment_bp)
    app.register_blueprint(prescription_bp)
    app.register_blueprint(invoice_bp)

    @app.cli.command('seed')
    def seed_command():
        """Insert roles and subscription plans that are missing."""
        from clinicdesk.seeds import seed_reference_data
        roles, plans = seed_reference_data()
        click.echo(f"Seeded {roles} roles and {plans} plans")

    return app
