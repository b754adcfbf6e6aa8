"""
Middleware for request logging and security headers
"""
from flask import g, request
import logging

logger = logging.getLogger(__name__)


def setup_middleware(app):
    """Setup request/response hooks"""

    @app.before_request
    def reset_request_state():
        # g outlives the request when an app context was pushed around it
        g.pop('principal', None)
        g.pop('subscription', None)

    @app.before_request
    def log_request():
        """Log requests in production"""
        if not app.debug and not app.testing:
            logger.info(f"{request.method} {request.path} - {request.remote_addr}")

    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        if not app.debug:
            # Prevent clickjacking
            response.headers['X-Frame-Options'] = 'DENY'
            # Prevent MIME type sniffing
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            # Only add HSTS if using HTTPS
            if request.is_secure:
                response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        # Session-bearing responses must not be cached by intermediaries
        if request.path.startswith('/api/'):
            response.headers.setdefault('Cache-Control', 'no-store')
        return response
