import enum

from clinicdesk.extensions import db
from .base import utcnow


class RoleName(str, enum.Enum):
    """Closed set of role names. Anything else is rejected at decode time."""
    DOCTOR = 'DOCTOR'
    RECEPTIONIST = 'RECEPTIONIST'
    ADMIN = 'ADMIN'
    SUPER_ADMIN = 'SUPER_ADMIN'

    @classmethod
    def parse(cls, value):
        """Return the member for ``value`` or raise ValueError."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Role name must be a string, got {type(value).__name__}")
        return cls(value.strip().upper())


# Roles that never occupy a staff seat
NON_SEAT_ROLES = frozenset({RoleName.ADMIN, RoleName.SUPER_ADMIN})
SEAT_ROLES = frozenset(set(RoleName) - NON_SEAT_ROLES)
# Roles that replace each other when an admin changes a member's primary role
PRIMARY_ROLES = frozenset({RoleName.DOCTOR, RoleName.RECEPTIONIST})


class Role(db.Model):
    __tablename__ = 'roles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), unique=True, nullable=False)

    @property
    def role_name(self):
        return RoleName(self.name)

    def __repr__(self):
        return f"<Role {self.name}>"


class ClinicUserRole(db.Model):
    """(user, clinic, role) triple. A user may hold many of these."""
    __tablename__ = 'clinic_user_roles'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'clinic_id', 'role_id', name='uq_clinic_user_role'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User', back_populates='clinic_roles')
    clinic = db.relationship('Clinic', back_populates='user_roles')
    role = db.relationship('Role', lazy='joined')

    def __repr__(self):
        return f"<ClinicUserRole user={self.user_id} clinic={self.clinic_id} role={self.role_id}>"
