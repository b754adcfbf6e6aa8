from flask import Blueprint, jsonify, request

from clinicdesk.components import get_components
from clinicdesk.errors import NotFound, ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Patient, RoleName
from clinicdesk.models.appointment import APPOINTMENT_STATUSES
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.decorators import (
    current_principal,
    require_active_subscription,
    require_feature,
    require_role,
    verify_clinic_access,
)
from clinicdesk.utils.validation import get_json_body, parse_date, parse_datetime, require_fields

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')


@appointment_bp.route('', methods=['GET'])
@require_active_subscription
@require_feature('basic_appointments')
def list_appointments():
    """
    List the active clinic's appointments
    Query params: date (YYYY-MM-DD), doctorId, status
    """
    principal = current_principal()
    query = Appointment.query.filter(Appointment.clinic_id == principal.clinic_id)

    day = parse_date(request.args.get('date'), 'date')
    if day is not None:
        query = query.filter(db.func.date(Appointment.scheduled_at) == day.isoformat())
    doctor_id = request.args.get('doctorId', type=int)
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)
    status = request.args.get('status')
    if status:
        query = query.filter(Appointment.status == status)

    appointments = query.order_by(Appointment.scheduled_at.asc()).all()
    return jsonify({'success': True, 'data': [a.to_dict() for a in appointments]}), 200


@appointment_bp.route('', methods=['POST'])
@require_role('RECEPTIONIST', 'ADMIN', 'DOCTOR')
@require_active_subscription
@require_feature('basic_appointments')
def create_appointment():
    """Body: { "patientId", "scheduledAt", "doctorId"?, "reason"?, "notes"? }"""
    principal = current_principal()
    store = get_components().store
    data = get_json_body()
    patient_id, scheduled_at = require_fields(data, 'patientId', 'scheduledAt')

    try:
        patient_id = int(patient_id)
    except (TypeError, ValueError):
        raise ValidationError('patientId must be an integer') from None
    patient = db.session.get(Patient, patient_id)
    if patient is None or patient.clinic_id != principal.clinic_id:
        raise NotFound('Patient not found')

    doctor_id = data.get('doctorId')
    if doctor_id is not None:
        if isinstance(doctor_id, bool) or not isinstance(doctor_id, int):
            raise ValidationError('doctorId must be an integer')
        roles = {row.role.role_name for row in store.find_clinic_user_roles(doctor_id, principal.clinic_id)}
        if RoleName.DOCTOR not in roles:
            raise ValidationError('doctorId must be a doctor in this clinic')

    appointment = Appointment(
        clinic_id=principal.clinic_id,
        patient_id=patient.id,
        doctor_id=doctor_id,
        scheduled_at=parse_datetime(scheduled_at, 'scheduledAt'),
        reason=data.get('reason'),
        notes=data.get('notes'),
    )
    with store.transaction():
        db.session.add(appointment)
        db.session.flush()
        log_audit('appointment', 'create', user_id=principal.user_id,
                  clinic_id=principal.clinic_id, entity_id=appointment.id)

    return jsonify({'success': True, 'data': appointment.to_dict()}), 201


@appointment_bp.route('/<int:appointment_id>/status', methods=['PATCH'])
@require_role('RECEPTIONIST', 'ADMIN', 'DOCTOR')
@require_active_subscription
@require_feature('basic_appointments')
def update_appointment_status(appointment_id):
    """Body: { "status": "checked_in" }"""
    principal = current_principal()
    data = get_json_body()
    (status,) = require_fields(data, 'status')
    if status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")

    appointment = verify_clinic_access(db.session.get(Appointment, appointment_id))
    with get_components().store.transaction():
        previous = appointment.status
        appointment.status = status
        log_audit('appointment', 'status', user_id=principal.user_id,
                  clinic_id=appointment.clinic_id, entity_id=appointment.id,
                  details={'from': previous, 'to': status})

    return jsonify({'success': True, 'data': appointment.to_dict()}), 200
