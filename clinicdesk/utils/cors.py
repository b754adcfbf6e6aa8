"""
CORS Configuration
Centralized CORS settings for the application
"""
from flask_cors import CORS

CORS_CONFIG = {
    "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    "allow_headers": [
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Accept",
        "Origin",
    ],
    "expose_headers": [
        "Content-Type",
    ],
    # the session travels in a cookie
    "supports_credentials": True,
    "max_age": 86400,  # 24 hours
}


def parse_origins(value):
    if isinstance(value, (list, tuple)):
        return [origin for origin in value if origin]
    return [origin.strip() for origin in (value or '').split(',') if origin.strip()]


def init_cors(app):
    """
    Initialize CORS for the Flask application.

    Credentialed requests cannot use a wildcard origin, so origins come
    from CORS_ORIGINS.
    """
    origins = parse_origins(app.config.get('CORS_ORIGINS'))

    CORS(app,
         resources={r"/api/*": {"origins": origins}},
         methods=CORS_CONFIG["methods"],
         allow_headers=CORS_CONFIG["allow_headers"],
         expose_headers=CORS_CONFIG["expose_headers"],
         supports_credentials=CORS_CONFIG["supports_credentials"],
         max_age=CORS_CONFIG["max_age"])

    app.logger.info("CORS enabled for origins: %s", ", ".join(origins) or "(none)")
