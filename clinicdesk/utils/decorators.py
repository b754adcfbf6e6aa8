from functools import wraps

from flask import g, request

from clinicdesk.auth import AnyOf, ClinicContextPresent, SuperAdminOnly, enforce
from clinicdesk.components import get_components
from clinicdesk.errors import Forbidden, NotFound


def current_principal():
    """
    Principal for this request, resolved from the session on first use.

    Raises Unauthenticated when the request carries no valid session.
    """
    principal = g.get('principal')
    if principal is None:
        principal = get_components().resolver.resolve(request)
        g.principal = principal
    return principal


def ensure_clinic_scope(clinic_id):
    """Path clinic ids must match the active clinic unless the caller is a super admin."""
    principal = current_principal()
    if principal.is_super_admin or principal.clinic_id == clinic_id:
        return principal
    raise Forbidden("You do not have access to this clinic")


def verify_clinic_access(record):
    """Return ``record`` if it belongs to the active clinic, else raise NotFound."""
    principal = current_principal()
    if record is None:
        raise NotFound()
    if principal.is_super_admin or record.clinic_id == principal.clinic_id:
        return record
    raise NotFound()


def require_auth(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current_principal()
        return f(*args, **kwargs)
    return decorated_function


def require_clinic_context(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        enforce(current_principal(), ClinicContextPresent())
        return f(*args, **kwargs)
    return decorated_function


def require_role(*roles):
    """
    Decorator to require one of the given roles in the active clinic.
    Usage: @require_role('DOCTOR', 'ADMIN')
    """
    requirement = AnyOf(*roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            enforce(current_principal(), ClinicContextPresent(), requirement)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_super_admin(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        enforce(current_principal(), SuperAdminOnly())
        return f(*args, **kwargs)
    return decorated_function


def require_active_subscription(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = current_principal()
        enforce(principal, ClinicContextPresent())
        g.subscription = get_components().gate.require_active_subscription(principal.clinic_id)
        return f(*args, **kwargs)
    return decorated_function


def require_feature(feature):
    """Decorator to require a plan feature tag for the active clinic."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = current_principal()
            enforce(principal, ClinicContextPresent())
            get_components().gate.require_feature(principal.clinic_id, feature)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def check_seat_limit(role_field='role'):
    """
    Fail fast when the request body asks for a role the plan has no seat for.

    The write path repeats the check under a row lock; this only saves a
    round of work for requests that are bound to fail.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = current_principal()
            enforce(principal, ClinicContextPresent())
            data = request.get_json(silent=True) or {}
            role = data.get(role_field)
            if role:
                clinic_id = kwargs.get('clinic_id')
                if clinic_id is None:
                    clinic_id = principal.clinic_id
                else:
                    ensure_clinic_scope(clinic_id)
                get_components().gate.check_seat_limit(clinic_id, role)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
