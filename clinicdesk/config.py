import os
from datetime import timedelta

from celery.schedules import crontab
from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET = 'dev-secret-key-change-in-production'


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY') or DEFAULT_SECRET

    # Session tokens (signed with JWT_SECRET_KEY, falls back to SECRET_KEY)
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ALGORITHM = 'HS256'
    JWT_IDENTITY_CLAIM = 'userId'
    SESSION_TTL = timedelta(days=int(os.getenv('SESSION_TTL_DAYS', '7')))
    JWT_ACCESS_TOKEN_EXPIRES = SESSION_TTL
    AUTH_COOKIE_NAME = os.getenv('AUTH_COOKIE_NAME', 'token')
    AUTH_COOKIE_SECURE = os.getenv('AUTH_COOKIE_SECURE', 'false').lower() == 'true'

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///clinicdesk.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Store boundary retry for transient connection errors
    STORE_RETRY_ATTEMPTS = int(os.getenv('STORE_RETRY_ATTEMPTS', '3'))
    STORE_RETRY_DELAY = float(os.getenv('STORE_RETRY_DELAY', '0.2'))

    # Tenancy and subscriptions
    TRIAL_DAYS = int(os.getenv('TRIAL_DAYS', '14'))
    CANCEL_GRACE_DAYS = int(os.getenv('CANCEL_GRACE_DAYS', '30'))
    DEFAULT_PLAN_NAME = os.getenv('DEFAULT_PLAN_NAME', 'STARTER')
    SYSTEM_CLINIC_NAME = 'System'
    INVITE_TTL_DAYS = int(os.getenv('INVITE_TTL_DAYS', '7'))
    VERIFICATION_TTL_HOURS = int(os.getenv('VERIFICATION_TTL_HOURS', '24'))

    # Google sign-in: OAuth client id the ID tokens must be issued for
    GOOGLE_CLIENT_ID = os.getenv('GOOGLE_CLIENT_ID')

    # Links in emails point at the web app
    FRONTEND_BASE_URL = os.getenv('FRONTEND_BASE_URL', 'http://localhost:5173')

    # Celery Configuration
    CELERY_BROKER_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_ACCEPT_CONTENT = ['json']
    CELERY_TASK_SERIALIZER = 'json'
    CELERY_RESULT_SERIALIZER = 'json'
    CELERY_TIMEZONE = 'UTC'
    CELERY_ENABLE_UTC = True
    CELERY_TASK_ALWAYS_EAGER = False
    CELERY_BEAT_SCHEDULE = {
        'expire-trials-hourly': {
            'task': 'tasks.expire_trials',
            'schedule': crontab(minute=0),
        },
    }

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')

    # Email Configuration
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@clinicdesk.app')

    # CORS: comma-separated origins
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:5173')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    AUTH_COOKIE_SECURE = os.getenv('AUTH_COOKIE_SECURE', 'true').lower() == 'true'

    # Database connection pool for production
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 20,
        'max_overflow': 40,
        'connect_args': {
            'connect_timeout': 10,
            'options': '-c statement_timeout=30000'
        }
    }

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'testing-secret-key-with-enough-length-for-hs256'
    JWT_SECRET_KEY = SECRET_KEY
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    BCRYPT_LOG_ROUNDS = 4
    STORE_RETRY_DELAY = 0
    CELERY_TASK_ALWAYS_EAGER = True
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    GOOGLE_CLIENT_ID = 'test-client.apps.googleusercontent.com'


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])


def validate_config(app_config):
    """Refuse to boot a production app with a default or missing secret."""
    if app_config.get('DEBUG') or app_config.get('TESTING'):
        return
    for key in ('SECRET_KEY', 'JWT_SECRET_KEY'):
        value = app_config.get(key)
        if not value or value == DEFAULT_SECRET:
            raise ValueError(f"{key} environment variable must be set in production and must not be the default value")
