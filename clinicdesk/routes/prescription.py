"""
Prescription routes. Any clinic member can read; only doctors write.
"""
import logging

from flask import Blueprint, jsonify, request

from clinicdesk.components import get_components
from clinicdesk.errors import NotFound, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Patient, Prescription
from clinicdesk.models.prescription import PRESCRIPTION_STATUSES
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

prescription_bp = Blueprint('prescription', __name__, url_prefix='/api/prescriptions')

TEXT_FIELDS = ('diagnosis', 'instructions', 'notes')


def _medications(items):
    """Validate the medication list: [{medicine, dosage, durationDays, notes?}, ...]"""
    if not isinstance(items, list) or not items:
        raise ValidationError('medications must be a non-empty list', fields=['medications'])

    normalized = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f'Medication {idx} must be an object', fields=['medications'])
        medicine = item.get('medicine')
        dosage = item.get('dosage')
        if not isinstance(medicine, str) or not medicine.strip():
            raise ValidationError(f'Medication {idx}: medicine is required', fields=['medications'])
        if not isinstance(dosage, str) or not dosage.strip():
            raise ValidationError(f'Medication {idx}: dosage is required', fields=['medications'])
        duration = item.get('durationDays')
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError(f'Medication {idx}: durationDays must be a positive integer',
                                  fields=['medications'])
        notes = item.get('notes') or ''
        if not isinstance(notes, str):
            raise ValidationError(f'Medication {idx}: notes must be a string', fields=['medications'])

        normalized.append({
            'medicine': medicine.strip(),
            'dosage': dosage.strip(),
            'durationDays': duration,
            'notes': notes,
        })
    return normalized


def _clinic_record(model, record_id, clinic_id, label):
    if isinstance(record_id, bool) or not isinstance(record_id, int):
        raise ValidationError(f'{label}Id must be an integer')
    record = db.session.get(model, record_id)
    if record is None or record.clinic_id != clinic_id:
        raise NotFound(f'{label.capitalize()} not found')
    return record


@prescription_bp.route('', methods=['GET'])
@require_active_subscription
@require_feature('basic_prescriptions')
def list_prescriptions():
    """Query params: patientId, status"""
    query = Prescription.query.filter(Prescription.clinic_id == current_principal().clinic_id)
    patient_id = request.args.get('patientId', type=int)
    if patient_id:
        query = query.filter(Prescription.patient_id == patient_id)
    status = request.args.get('status')
    if status:
        query = query.filter(Prescription.status == status)

    prescriptions = query.order_by(Prescription.prescribed_at.desc(), Prescription.id.desc()).all()
    return jsonify({'success': True, 'data': [p.to_dict() for p in prescriptions]}), 200


@prescription_bp.route('/<int:prescription_id>', methods=['GET'])
@require_active_subscription
@require_feature('basic_prescriptions')
def get_prescription(prescription_id):
    prescription = verify_clinic_access(db.session.get(Prescription, prescription_id))
    return jsonify({'success': True, 'data': prescription.to_dict()}), 200


@prescription_bp.route('', methods=['POST'])
@require_role('DOCTOR')
@require_active_subscription
@require_feature('basic_prescriptions')
def create_prescription():
    """
    Body: { "patientId", "medications": [{medicine, dosage, durationDays, notes?}],
            "appointmentId"?, "diagnosis"?, "instructions"?, "followUpDate"?, "notes"? }
    The prescribing doctor is the caller.
    """
    principal = current_principal()
    data = get_json_body()
    patient_id, medications = require_fields(data, 'patientId', 'medications')
    patient = _clinic_record(Patient, patient_id, principal.clinic_id, 'patient')

    appointment_id = data.get('appointmentId')
    if appointment_id is not None:
        appointment = _clinic_record(Appointment, appointment_id, principal.clinic_id, 'appointment')
        if appointment.patient_id != patient.id:
            raise ValidationError('appointmentId belongs to another patient')

    prescription = Prescription(
        clinic_id=principal.clinic_id,
        patient_id=patient.id,
        doctor_id=principal.user_id,
        appointment_id=appointment_id,
        follow_up_date=parse_date(data.get('followUpDate'), 'followUpDate'),
        **{field: optional_text(data, field) for field in TEXT_FIELDS},
    )
    prescription.items = _medications(medications)

    with get_components().store.transaction():
        db.session.add(prescription)
        db.session.flush()
        log_audit('prescription', 'create', user_id=principal.user_id,
                  clinic_id=principal.clinic_id, entity_id=prescription.id,
                  details={'patientId': patient.id, 'medicationCount': len(prescription.items)})

    logger.info("Prescription %s created for patient %s by doctor %s",
                prescription.id, patient.id, principal.user_id)
    return jsonify({'success': True, 'data': prescription.to_dict()}), 201


@prescription_bp.route('/<int:prescription_id>', methods=['PATCH'])
@require_role('DOCTOR')
@require_active_subscription
@require_feature('basic_prescriptions')
def update_prescription(prescription_id):
    """Body: any of { "medications", "diagnosis", "instructions", "followUpDate", "status", "notes" }"""
    principal = current_principal()
    data = get_json_body()
    prescription = verify_clinic_access(db.session.get(Prescription, prescription_id))

    status = data.get('status')
    if status is not None and status not in PRESCRIPTION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PRESCRIPTION_STATUSES)}")

    changes = {field: optional_text(data, field) for field in TEXT_FIELDS if field in data}
    if 'followUpDate' in data:
        changes['follow_up_date'] = parse_date(data['followUpDate'], 'followUpDate')
    if status is not None:
        changes['status'] = status
    medications = _medications(data['medications']) if 'medications' in data else None

    with get_components().store.transaction():
        for field, value in changes.items():
            setattr(prescription, field, value)
        if medications is not None:
            prescription.items = medications
        log_audit('prescription', 'update', user_id=principal.user_id,
                  clinic_id=prescription.clinic_id, entity_id=prescription.id,
                  details={'fields': sorted(data)})

    return jsonify({'success': True, 'data': prescription.to_dict()}), 200


@prescription_bp.route('/<int:prescription_id>', methods=['DELETE'])
@require_role('DOCTOR')
@require_active_subscription
@require_feature('basic_prescriptions')
def delete_prescription(prescription_id):
    principal = current_principal()
    prescription = verify_clinic_access(db.session.get(Prescription, prescription_id))
    with get_components().store.transaction():
        db.session.delete(prescription)
        log_audit('prescription', 'delete', user_id=principal.user_id,
                  clinic_id=prescription.clinic_id, entity_id=prescription_id,
                  details={'patientId': prescription.patient_id})

    return jsonify({'success': True, 'message': 'Prescription deleted'}), 200
