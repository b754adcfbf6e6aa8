from .decorators import (
    check_seat_limit,
    current_principal,
    ensure_clinic_scope,
    require_active_subscription,
    require_auth,
    require_clinic_context,
    require_feature,
    require_role,
    require_super_admin,
    verify_clinic_access,
)

from .audit import log_audit

__all__ = [
    # Decorators
    "check_seat_limit",
    "current_principal",
    "ensure_clinic_scope",
    "require_active_subscription",
    "require_auth",
    "require_clinic_context",
    "require_feature",
    "require_role",
    "require_super_admin",
    "verify_clinic_access",
    # Audit
    "log_audit",
]
