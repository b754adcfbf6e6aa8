"""
Projects a user's clinic/role association rows into per-clinic role sets.

Every entry point that issues or refreshes a session (signup, login, /me,
clinic switch, invite acceptance) goes through ``ClinicRoleProjector`` so
the rules for default clinic and super-admin roles live in one place.
"""
from collections.abc import Mapping
from dataclasses import dataclass

from clinicdesk.errors import Forbidden, NoClinicAssociation
from clinicdesk.models.role import RoleName


@dataclass(frozen=True)
class ClinicRoles:
    clinic_id: int
    clinic_name: str
    roles: frozenset

    def to_dict(self):
        return {
            'clinicId': self.clinic_id,
            'clinicName': self.clinic_name,
            'roles': sorted(role.value for role in self.roles),
        }


class ClinicRoleMap(Mapping):
    """Read-only ``{clinic_id: ClinicRoles}`` plus the user-global super-admin flag."""

    def __init__(self, clinics, is_super_admin=False, system_clinic_id=None):
        self._clinics = dict(clinics)
        self.is_super_admin = is_super_admin
        self.system_clinic_id = system_clinic_id

    def __getitem__(self, clinic_id):
        return self._clinics[clinic_id]

    def __iter__(self):
        return iter(sorted(self._clinics))

    def __len__(self):
        return len(self._clinics)

    def default_clinic(self):
        """Lowest non-System clinic id, else the lowest id."""
        if not self._clinics:
            raise NoClinicAssociation()
        regular = [cid for cid in self._clinics if cid != self.system_clinic_id]
        return min(regular) if regular else min(self._clinics)

    def roles_for(self, clinic_id):
        """Roles held in ``clinic_id``; SUPER_ADMIN follows the user into any clinic."""
        entry = self._clinics.get(clinic_id)
        roles = set(entry.roles) if entry else set()
        if self.is_super_admin:
            roles.add(RoleName.SUPER_ADMIN)
        return frozenset(roles)

    def to_list(self):
        return [
            ClinicRoles(cid, self._clinics[cid].clinic_name, self.roles_for(cid)).to_dict()
            for cid in self
        ]


@dataclass(frozen=True)
class SessionContext:
    user_id: int
    clinic_id: int
    roles: frozenset
    clinics: ClinicRoleMap

    @property
    def clinic_name(self):
        return self.clinics[self.clinic_id].clinic_name

    def to_dict(self):
        return {
            'clinicId': self.clinic_id,
            'clinicName': self.clinic_name,
            'roles': sorted(role.value for role in self.roles),
            'isSuperAdmin': self.clinics.is_super_admin,
            'clinics': self.clinics.to_list(),
        }


class ClinicRoleProjector:

    def __init__(self, store):
        self.store = store

    def project(self, user_id):
        grouped = {}
        names = {}
        is_super_admin = False
        for row in self.store.find_clinic_user_roles(user_id):
            role = row.role.role_name
            grouped.setdefault(row.clinic_id, set()).add(role)
            names[row.clinic_id] = row.clinic.name
            if role == RoleName.SUPER_ADMIN:
                is_super_admin = True

        clinics = {
            cid: ClinicRoles(cid, names[cid], frozenset(roles))
            for cid, roles in grouped.items()
        }
        return ClinicRoleMap(
            clinics,
            is_super_admin=is_super_admin,
            system_clinic_id=self.store.find_system_clinic_id() if clinics else None,
        )

    def session_roles(self, user_id, clinic_id=None, strict=False):
        """
        Pick the clinic a new session should point at and its roles.

        ``clinic_id`` is honoured when the user still belongs to it. With
        ``strict`` a clinic the user has no rows in is refused, otherwise the
        default clinic is used instead. Raises NoClinicAssociation when the
        user belongs to no clinic at all.
        """
        clinics = self.project(user_id)
        if not clinics:
            raise NoClinicAssociation()
        if clinic_id is not None and clinic_id in clinics:
            active = clinic_id
        elif clinic_id is not None and strict:
            raise Forbidden("You do not have access to this clinic")
        else:
            active = clinics.default_clinic()
        return SessionContext(
            user_id=user_id,
            clinic_id=active,
            roles=clinics.roles_for(active),
            clinics=clinics,
        )
