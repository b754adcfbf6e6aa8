from clinicdesk.extensions import db
from .base import TimestampMixin

APPOINTMENT_STATUSES = ('scheduled', 'checked_in', 'completed', 'canceled', 'no_show')


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), default='scheduled', nullable=False)
    reason = db.Column(db.String(255))
    notes = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'clinicId': self.clinic_id,
            'patientId': self.patient_id,
            'doctorId': self.doctor_id,
            'scheduledAt': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'status': self.status,
            'reason': self.reason,
            'notes': self.notes,
        }

    def __repr__(self):
        return f"<Appointment {self.patient_id} on {self.scheduled_at}>"
