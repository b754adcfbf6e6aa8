import json

from clinicdesk.extensions import db
from .base import TimestampMixin, utcnow

INVOICE_STATUSES = ('pending', 'partially_paid', 'paid', 'cancelled')
PAYMENT_METHODS = ('cash', 'card', 'upi', 'bank_transfer', 'insurance', 'other')


class Invoice(db.Model, TimestampMixin):
    __tablename__ = 'invoices'
    __table_args__ = (
        db.UniqueConstraint('clinic_id', 'invoice_number', name='uq_invoices_clinic_number'),
    )

    id = db.Column(db.Integer, primary_key=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id', ondelete='SET NULL'), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    invoice_number = db.Column(db.String(50), nullable=False)
    line_items = db.Column(db.Text, nullable=False)  # JSON list of {description, quantity, unitPrice}
    total_amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)
    due_date = db.Column(db.Date)
    notes = db.Column(db.Text)

    payments = db.relationship('Payment', backref='invoice', lazy='dynamic', cascade='all, delete-orphan', passive_deletes=True)

    @property
    def items(self):
        return json.loads(self.line_items) if self.line_items else []

    @items.setter
    def items(self, value):
        self.line_items = json.dumps(value, ensure_ascii=False)

    @property
    def amount_paid(self):
        return round(sum(p.amount for p in self.payments), 2)

    @property
    def balance(self):
        return round(self.total_amount - self.amount_paid, 2)

    def to_dict(self, include_payments=False):
        data = {
            'id': self.id,
            'clinicId': self.clinic_id,
            'patientId': self.patient_id,
            'appointmentId': self.appointment_id,
            'invoiceNumber': self.invoice_number,
            'items': self.items,
            'totalAmount': self.total_amount,
            'amountPaid': self.amount_paid,
            'balance': self.balance,
            'status': self.status,
            'dueDate': self.due_date.isoformat() if self.due_date else None,
            'notes': self.notes,
            'createdBy': self.created_by,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_payments:
            data['payments'] = [p.to_dict() for p in self.payments.order_by(Payment.id)]
        return data

    def __repr__(self):
        return f"<Invoice {self.invoice_number} ({self.status})>"


class Payment(db.Model, TimestampMixin):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    processed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    method = db.Column(db.String(20), nullable=False)
    reference = db.Column(db.String(100))
    notes = db.Column(db.Text)
    paid_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'invoiceId': self.invoice_id,
            'amount': self.amount,
            'method': self.method,
            'reference': self.reference,
            'notes': self.notes,
            'processedBy': self.processed_by,
            'paidAt': self.paid_at.isoformat() if self.paid_at else None,
        }

    def __repr__(self):
        return f"<Payment {self.amount} on invoice {self.invoice_id}>"
