from .session import SessionCodec, SessionClaims, InvalidSession
from .resolver import AccessResolver, Principal
from .authorization import (
    AnyOf,
    ClinicContextPresent,
    Decision,
    SuperAdminOnly,
    authorize,
    authorize_all,
    enforce,
)
from .projector import ClinicRoleMap, ClinicRoleProjector, ClinicRoles, SessionContext
from .subscription_gate import SeatUsage, SubscriptionGate

__all__ = [
    "SessionCodec", "SessionClaims", "InvalidSession",
    "AccessResolver", "Principal",
    "AnyOf", "ClinicContextPresent", "Decision", "SuperAdminOnly",
    "authorize", "authorize_all", "enforce",
    "ClinicRoleMap", "ClinicRoleProjector", "ClinicRoles", "SessionContext",
    "SeatUsage", "SubscriptionGate",
]
