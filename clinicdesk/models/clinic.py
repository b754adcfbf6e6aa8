"""
Clinic model - each clinic is a separate tenant.
"""
from clinicdesk.extensions import db
from .base import TimestampMixin


class Clinic(db.Model, TimestampMixin):
    """Tenant boundary: staff, patients and the subscription hang off a clinic."""
    __tablename__ = 'clinics'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    address = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    email = db.Column(db.String(120))

    # Relationships
    user_roles = db.relationship(
        'ClinicUserRole',
        back_populates='clinic',
        cascade='all, delete-orphan',
        passive_deletes=True,
    )
    subscription = db.relationship(
        'Subscription',
        back_populates='clinic',
        uselist=False,
        cascade='all, delete-orphan',
        passive_deletes=True,
    )
    patients = db.relationship('Patient', backref='clinic', lazy='dynamic', cascade='all, delete-orphan', passive_deletes=True)
    appointments = db.relationship('Appointment', backref='clinic', lazy='dynamic', cascade='all, delete-orphan', passive_deletes=True)
    invites = db.relationship('Invite', backref='clinic', lazy='dynamic', cascade='all, delete-orphan', passive_deletes=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'phone': self.phone,
            'email': self.email,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Clinic {self.id} {self.name}>"
