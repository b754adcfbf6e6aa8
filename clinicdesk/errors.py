"""
Error taxonomy for the API.

Every denial carries a machine-readable ``code`` plus a human-readable
message. Handlers registered in ``register_error_handlers`` turn these into
the ``{"success": false, "error": ..., "code": ...}`` envelope.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 400
    code = 'BAD_REQUEST'
    message = 'Bad request'

    def __init__(self, message=None, **details):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self):
        body = {'success': False, 'error': self.message, 'code': self.code}
        body.update(self.details)
        return body


class ValidationError(ApiError):
    status_code = 400
    code = 'VALIDATION_ERROR'
    message = 'Invalid request'


class InvalidCredentials(ApiError):
    status_code = 401
    code = 'INVALID_CREDENTIALS'
    message = 'Invalid credentials'


class Unauthenticated(ApiError):
    # One message for missing, malformed and expired sessions
    status_code = 401
    code = 'UNAUTHENTICATED'
    message = 'Authentication required'

    def __init__(self):
        super().__init__()


class Forbidden(ApiError):
    status_code = 403
    code = 'FORBIDDEN'
    message = 'Insufficient permissions'


class NoClinicAssociation(ApiError):
    status_code = 403
    code = 'NO_CLINIC_ASSOCIATION'
    message = ('Your account is not associated with any clinic. '
               'Please contact your system administrator.')


class NotFound(ApiError):
    status_code = 404
    code = 'NOT_FOUND'
    message = 'Not found'


class Conflict(ApiError):
    status_code = 409
    code = 'CONFLICT'
    message = 'Conflict'


class SubscriptionError(ApiError):
    """Base for plan and usage denials; clients render an upgrade prompt."""
    status_code = 403

    def __init__(self, message=None, **details):
        details.setdefault('requiresUpgrade', True)
        super().__init__(message, **details)


class SubscriptionRequired(SubscriptionError):
    code = 'NO_SUBSCRIPTION'
    message = 'No active subscription found'


class SubscriptionNotActive(SubscriptionError):
    code = 'SUBSCRIPTION_NOT_ACTIVE'
    message = 'Your subscription is not active. Please update your billing information.'


class TrialExpired(SubscriptionError):
    code = 'TRIAL_EXPIRED'
    message = 'Your trial has expired. Please upgrade to continue.'


class FeatureNotInPlan(SubscriptionError):
    code = 'FEATURE_NOT_IN_PLAN'
    message = 'This feature requires a higher plan'


class SeatLimitExceeded(SubscriptionError):
    code = 'SEAT_LIMIT_EXCEEDED'
    message = 'Your plan does not allow more staff of this type'


class InvalidRole(ApiError):
    status_code = 400
    code = 'INVALID_ROLE'
    message = 'Invalid role type'


class DowngradeBlocked(ApiError):
    status_code = 409
    code = 'DOWNGRADE_BLOCKED'
    message = 'Current usage exceeds the limits of the requested plan'


class InvalidSubscriptionTransition(ApiError):
    status_code = 409
    code = 'INVALID_TRANSITION'
    message = 'Subscription cannot change to the requested status'

    def __init__(self, current, target):
        super().__init__(
            f"Subscription cannot move from {current} to {target}",
            currentStatus=current,
            requestedStatus=target,
        )


class GoogleSignInUnavailable(ApiError):
    status_code = 503
    code = 'GOOGLE_SIGNIN_UNAVAILABLE'
    message = 'Google sign-in is not configured'


class InvalidInvite(ApiError):
    # Unknown, expired and already-used tokens look the same
    status_code = 400
    code = 'INVALID_INVITE'
    message = 'Invalid or expired invitation'

    def __init__(self):
        super().__init__()


def register_error_handlers(app):
    """Map exceptions to JSON responses."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found',
            'code': 'NOT_FOUND',
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed',
            'code': 'METHOD_NOT_ALLOWED',
        }), 405

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'error': e.description,
                'code': e.name.upper().replace(' ', '_'),
            }), e.code
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        message = f'An error occurred: {str(e)}' if app.debug else 'Internal server error'
        return jsonify({
            'success': False,
            'error': message,
            'code': 'INTERNAL_ERROR',
        }), 500
