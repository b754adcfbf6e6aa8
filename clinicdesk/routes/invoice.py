"""
Invoices and the payments recorded against them.

Reception and admins bill; every clinic member can read. An invoice's
status follows its payments: pending, partially_paid, then paid.
"""
import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import func, select

from clinicdesk.components import get_components
from clinicdesk.errors import Conflict, NotFound, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Invoice, Patient, Payment
from clinicdesk.models.invoice import PAYMENT_METHODS
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.decorators import (
    current_principal,
    require_active_subscription,
    require_feature,
    require_role,
    verify_clinic_access,
)
from clinicdesk.utils.validation import get_json_body, optional_text, parse_date, require_fields

logger = logging.getLogger(__name__)

invoice_bp = Blueprint('invoice', __name__, url_prefix='/api/invoices')


def _amount(value, field, allow_zero=False, label=None):
    """A money amount rounded to cents."""
    label = label or field
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{label} must be a number", fields=[field])
    amount = round(float(value), 2)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{label} must be positive", fields=[field])
    return amount


def _line_items(items):
    """Validate [{description, quantity, unitPrice}, ...] and return it with the total."""
    if not isinstance(items, list) or not items:
        raise ValidationError('items must be a non-empty list', fields=['items'])

    normalized, total = [], 0.0
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f'Item {idx} must be an object', fields=['items'])
        description = item.get('description')
        if not isinstance(description, str) or not description.strip():
            raise ValidationError(f'Item {idx}: description is required', fields=['items'])
        quantity = item.get('quantity', 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f'Item {idx}: quantity must be a positive integer', fields=['items'])
        unit_price = _amount(item.get('unitPrice'), 'items', allow_zero=True, label=f'Item {idx}: unitPrice')

        normalized.append({'description': description.strip(), 'quantity': quantity, 'unitPrice': unit_price})
        total += quantity * unit_price
    return normalized, round(total, 2)


def _next_invoice_number(clinic_id):
    count = db.session.execute(
        select(func.count()).select_from(Invoice).where(Invoice.clinic_id == clinic_id)
    ).scalar_one()
    return f'INV-{count + 1:05d}'


def _invoice_number_taken(clinic_id, number):
    return db.session.execute(
        select(Invoice.id).where(Invoice.clinic_id == clinic_id, Invoice.invoice_number == number)
    ).first() is not None


@invoice_bp.route('', methods=['GET'])
@require_active_subscription
@require_feature('basic_invoicing')
def list_invoices():
    """Query params: patientId, status"""
    query = Invoice.query.filter(Invoice.clinic_id == current_principal().clinic_id)
    patient_id = request.args.get('patientId', type=int)
    if patient_id:
        query = query.filter(Invoice.patient_id == patient_id)
    status = request.args.get('status')
    if status:
        query = query.filter(Invoice.status == status)

    invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify({'success': True, 'data': [i.to_dict() for i in invoices]}), 200


@invoice_bp.route('/<int:invoice_id>', methods=['GET'])
@require_active_subscription
@require_feature('basic_invoicing')
def get_invoice(invoice_id):
    invoice = verify_clinic_access(db.session.get(Invoice, invoice_id))
    return jsonify({'success': True, 'data': invoice.to_dict(include_payments=True)}), 200


@invoice_bp.route('', methods=['POST'])
@require_role('RECEPTIONIST', 'ADMIN')
@require_active_subscription
@require_feature('basic_invoicing')
def create_invoice():
    """
    Body: { "patientId", "items": [{description, quantity?, unitPrice}],
            "appointmentId"?, "invoiceNumber"?, "dueDate"?, "notes"? }
    The total is the sum of the items.
    """
    principal = current_principal()
    data = get_json_body()
    patient_id, items = require_fields(data, 'patientId', 'items')
    if isinstance(patient_id, bool) or not isinstance(patient_id, int):
        raise ValidationError('patientId must be an integer')
    patient = db.session.get(Patient, patient_id)
    if patient is None or patient.clinic_id != principal.clinic_id:
        raise NotFound('Patient not found')

    appointment_id = data.get('appointmentId')
    if appointment_id is not None:
        appointment = db.session.get(Appointment, appointment_id) if isinstance(appointment_id, int) else None
        if appointment is None or appointment.clinic_id != principal.clinic_id:
            raise NotFound('Appointment not found')

    line_items, total = _line_items(items)
    store = get_components().store
    with store.transaction():
        number = optional_text(data, 'invoiceNumber') or _next_invoice_number(principal.clinic_id)
        if _invoice_number_taken(principal.clinic_id, number):
            raise Conflict(f'Invoice number {number} already exists')
        invoice = Invoice(
            clinic_id=principal.clinic_id,
            patient_id=patient.id,
            appointment_id=appointment_id,
            created_by=principal.user_id,
            invoice_number=number,
            total_amount=total,
            status='paid' if total == 0 else 'pending',
            due_date=parse_date(data.get('dueDate'), 'dueDate'),
            notes=optional_text(data, 'notes'),
        )
        invoice.items = line_items
        db.session.add(invoice)
        db.session.flush()
        log_audit('invoice', 'create', user_id=principal.user_id,
                  clinic_id=principal.clinic_id, entity_id=invoice.id,
                  details={'invoiceNumber': number, 'total': total})

    logger.info("Invoice %s created in clinic %s", invoice.invoice_number, principal.clinic_id)
    return jsonify({'success': True, 'data': invoice.to_dict()}), 201


@invoice_bp.route('/<int:invoice_id>', methods=['PATCH'])
@require_role('RECEPTIONIST', 'ADMIN')
@require_active_subscription
@require_feature('basic_invoicing')
def update_invoice(invoice_id):
    """
    Body: any of { "items", "dueDate", "notes", "status": "cancelled" }
    Items can change only while nothing has been paid; a cancelled or paid
    invoice is final.
    """
    principal = current_principal()
    data = get_json_body()
    invoice = verify_clinic_access(db.session.get(Invoice, invoice_id))
    if invoice.status in ('paid', 'cancelled'):
        raise ValidationError(f'Invoice is {invoice.status} and cannot be changed')

    status = data.get('status')
    if status is not None and status != 'cancelled':
        raise ValidationError('status can only be set to cancelled; payments settle an invoice')
    line_items = None
    if 'items' in data:
        if invoice.amount_paid > 0:
            raise ValidationError('Items cannot change after a payment')
        line_items, total = _line_items(data['items'])

    with get_components().store.transaction():
        if line_items is not None:
            invoice.items = line_items
            invoice.total_amount = total
        if 'dueDate' in data:
            invoice.due_date = parse_date(data['dueDate'], 'dueDate')
        if 'notes' in data:
            invoice.notes = optional_text(data, 'notes')
        if status is not None:
            invoice.status = status
        log_audit('invoice', 'update', user_id=principal.user_id,
                  clinic_id=invoice.clinic_id, entity_id=invoice.id,
                  details={'fields': sorted(data)})

    return jsonify({'success': True, 'data': invoice.to_dict()}), 200


@invoice_bp.route('/<int:invoice_id>/payments', methods=['GET'])
@require_active_subscription
@require_feature('basic_invoicing')
def list_payments(invoice_id):
    invoice = verify_clinic_access(db.session.get(Invoice, invoice_id))
    payments = invoice.payments.order_by(Payment.id).all()
    return jsonify({'success': True, 'data': [p.to_dict() for p in payments]}), 200


@invoice_bp.route('/<int:invoice_id>/payments', methods=['POST'])
@require_role('RECEPTIONIST', 'ADMIN')
@require_active_subscription
@require_feature('basic_invoicing')
def record_payment(invoice_id):
    """
    Body: { "amount", "method", "reference"?, "notes"? }
    A payment may not exceed the outstanding balance.
    """
    principal = current_principal()
    data = get_json_body()
    amount, method = require_fields(data, 'amount', 'method')
    amount = _amount(amount, 'amount')
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")

    invoice = verify_clinic_access(db.session.get(Invoice, invoice_id))
    if invoice.status in ('paid', 'cancelled'):
        raise ValidationError(f'Invoice is {invoice.status}')
    if amount > invoice.balance:
        raise ValidationError(f'Payment exceeds the outstanding balance of {invoice.balance:.2f}')

    payment = Payment(
        clinic_id=invoice.clinic_id,
        invoice_id=invoice.id,
        processed_by=principal.user_id,
        amount=amount,
        method=method,
        reference=optional_text(data, 'reference'),
        notes=optional_text(data, 'notes'),
    )
    with get_components().store.transaction():
        db.session.add(payment)
        db.session.flush()
        invoice.status = 'paid' if invoice.balance <= 0 else 'partially_paid'
        log_audit('payment', 'create', user_id=principal.user_id,
                  clinic_id=invoice.clinic_id, entity_id=payment.id,
                  details={'invoiceId': invoice.id, 'amount': amount, 'method': method})

    logger.info("Payment of %.2f recorded on invoice %s", amount, invoice.invoice_number)
    return jsonify({
        'success': True,
        'data': {'payment': payment.to_dict(), 'invoice': invoice.to_dict()},
    }), 201
