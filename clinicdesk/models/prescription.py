import json

from clinicdesk.extensions import db
from .base import TimestampMixin, utcnow

PRESCRIPTION_STATUSES = ('active', 'completed', 'cancelled')


class Prescription(db.Model, TimestampMixin):
    """
    A doctor's prescription for a patient.

    ``medications`` holds a JSON list of
    ``{medicine, dosage, durationDays, notes}`` entries.
    """

    __tablename__ = 'prescriptions'

    id = db.Column(db.Integer, primary_key=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id', ondelete='SET NULL'), nullable=True)

    diagnosis = db.Column(db.Text)
    medications = db.Column(db.Text, nullable=False)  # JSON list
    instructions = db.Column(db.Text)
    follow_up_date = db.Column(db.Date)
    status = db.Column(db.String(20), default='active', nullable=False)
    notes = db.Column(db.Text)
    prescribed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def items(self):
        return json.loads(self.medications) if self.medications else []

    @items.setter
    def items(self, value):
        self.medications = json.dumps(value, ensure_ascii=False)

    def to_dict(self):
        return {
            'id': self.id,
            'clinicId': self.clinic_id,
            'patientId': self.patient_id,
            'doctorId': self.doctor_id,
            'appointmentId': self.appointment_id,
            'diagnosis': self.diagnosis,
            'medications': self.items,
            'instructions': self.instructions,
            'followUpDate': self.follow_up_date.isoformat() if self.follow_up_date else None,
            'status': self.status,
            'notes': self.notes,
            'prescribedAt': self.prescribed_at.isoformat() if self.prescribed_at else None,
        }

    def __repr__(self):
        return f"<Prescription {self.id} - Patient: {self.patient_id}>"
