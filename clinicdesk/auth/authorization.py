"""
Role and clinic-context checks against a resolved principal.

There is no role hierarchy. The only blanket rule is that SUPER_ADMIN
satisfies every ``AnyOf`` requirement.
"""
import logging
from dataclasses import dataclass, field

from clinicdesk.errors import Forbidden
from clinicdesk.models.role import RoleName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ''
    required: tuple = field(default_factory=tuple)
    held: tuple = field(default_factory=tuple)

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


class Requirement:
    def check(self, principal):
        raise NotImplementedError

    def deny(self, principal, reason, required=()):
        return Decision(
            False,
            reason=reason,
            required=tuple(sorted(r.value for r in required)),
            held=tuple(principal.role_names()),
        )


class AnyOf(Requirement):

    def __init__(self, *roles):
        if len(roles) == 1 and not isinstance(roles[0], (str, RoleName)):
            roles = tuple(roles[0])
        if not roles:
            raise ValueError("AnyOf needs at least one role")
        self.roles = frozenset(RoleName.parse(r) for r in roles)

    def check(self, principal):
        if principal.is_super_admin or principal.has_any(self.roles):
            return ALLOW
        names = ', '.join(sorted(r.value for r in self.roles))
        return self.deny(principal, f"Permission denied. Required roles: {names}", self.roles)

    def __repr__(self):
        return f"AnyOf({', '.join(sorted(r.value for r in self.roles))})"


class SuperAdminOnly(Requirement):

    def check(self, principal):
        if principal.is_super_admin:
            return ALLOW
        return self.deny(principal, "Super admin access required", {RoleName.SUPER_ADMIN})

    def __repr__(self):
        return "SuperAdminOnly()"


class ClinicContextPresent(Requirement):

    def check(self, principal):
        if principal.clinic_id is not None:
            return ALLOW
        return self.deny(principal, "No active clinic in session")

    def __repr__(self):
        return "ClinicContextPresent()"


def authorize(principal, requirement):
    return requirement.check(principal)


def authorize_all(principal, requirements):
    """AND an ordered list of requirements; first denial wins."""
    for requirement in requirements:
        decision = requirement.check(principal)
        if not decision:
            return decision
    return ALLOW


def enforce(principal, *requirements):
    """Raise Forbidden unless every requirement allows."""
    decision = authorize_all(principal, requirements)
    if not decision:
        logger.info(
            "Denied user %s in clinic %s: %s",
            principal.user_id, principal.clinic_id, decision.reason,
        )
        raise Forbidden(
            decision.reason,
            required=list(decision.required),
            held=list(decision.held),
        )
    return decision
