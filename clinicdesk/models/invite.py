from clinicdesk.extensions import db
from .base import utcnow


class Invite(db.Model):
    """
    One-time staff invitation to a clinic.

    Only the SHA-256 digest of the token is stored. An invite that has been
    accepted or has expired is never honoured again.
    """
    __tablename__ = 'invites'

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False, index=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    role = db.relationship('Role', lazy='joined')

    def is_usable(self, now):
        return self.accepted_at is None and now <= self.expires_at

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'clinicId': self.clinic_id,
            'roleName': self.role.name if self.role else None,
            'expiresAt': self.expires_at.isoformat() if self.expires_at else None,
            'acceptedAt': self.accepted_at.isoformat() if self.accepted_at else None,
            'createdBy': self.created_by,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Invite {self.email} clinic={self.clinic_id}>"
