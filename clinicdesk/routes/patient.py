from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from clinicdesk.components import get_components
from clinicdesk.errors import ValidationError
from clinicdesk.extensions import db
from clinicdesk.models import Appointment, Patient
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.decorators import (
    current_principal,
    require_active_subscription,
    require_feature,
    require_role,
    verify_clinic_access,
)
from clinicdesk.utils.validation import get_json_body, optional_text, parse_date, require_fields

patient_bp = Blueprint('patient', __name__, url_prefix='/api/patients')

PATIENT_FIELDS = ('phone', 'email', 'address', 'gender', 'notes')


@patient_bp.route('', methods=['GET'])
@require_active_subscription
def list_patients():
    """
    List the active clinic's patients with pagination and search
    Query params: page, limit, search
    """
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 20, type=int)
    search = request.args.get('search', '', type=str).strip()

    if page < 1:
        page = 1
    if limit < 1 or limit > 100:
        limit = 20

    query = Patient.query.filter(Patient.clinic_id == current_principal().clinic_id)
    if search:
        query = query.filter(or_(
            Patient.full_name.ilike(f'%{search}%'),
            Patient.phone.ilike(f'%{search}%'),
            Patient.email.ilike(f'%{search}%'),
        ))

    patients = query.order_by(Patient.created_at.desc(), Patient.id.desc()).paginate(
        page=page,
        per_page=limit,
        error_out=False
    )

    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in patients.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': patients.total,
            'pages': patients.pages,
            'has_next': patients.has_next,
            'has_prev': patients.has_prev
        }
    }), 200


@patient_bp.route('', methods=['POST'])
@require_role('RECEPTIONIST', 'ADMIN')
@require_active_subscription
def create_patient():
    """Body: { "fullName", "dateOfBirth"?, "gender"?, "phone"?, "email"?, "address"?, "notes"? }"""
    principal = current_principal()
    data = get_json_body()
    (full_name,) = require_fields(data, 'fullName')

    patient = Patient(
        clinic_id=principal.clinic_id,
        full_name=full_name.strip(),
        date_of_birth=parse_date(data.get('dateOfBirth'), 'dateOfBirth'),
        **{field: data.get(field) for field in PATIENT_FIELDS},
    )
    with get_components().store.transaction():
        db.session.add(patient)
        db.session.flush()
        log_audit('patient', 'create', user_id=principal.user_id,
                  clinic_id=principal.clinic_id, entity_id=patient.id)

    return jsonify({'success': True, 'data': patient.to_dict()}), 201


@patient_bp.route('/<int:patient_id>', methods=['GET'])
@require_active_subscription
def get_patient(patient_id):
    patient = verify_clinic_access(db.session.get(Patient, patient_id))
    return jsonify({'success': True, 'data': patient.to_dict()}), 200


@patient_bp.route('/<int:patient_id>/history', methods=['GET'])
@require_role('DOCTOR', 'ADMIN')
@require_active_subscription
@require_feature('patient_history')
def get_patient_history(patient_id):
    """Patient details plus every appointment, newest first."""
    patient = verify_clinic_access(db.session.get(Patient, patient_id))
    appointments = (
        patient.appointments
        .order_by(Appointment.scheduled_at.desc())
        .all()
    )
    data = patient.to_dict()
    data['appointments'] = [a.to_dict() for a in appointments]
    return jsonify({'success': True, 'data': data}), 200


@patient_bp.route('/<int:patient_id>', methods=['PATCH'])
@require_role('RECEPTIONIST', 'ADMIN')
@require_active_subscription
def update_patient(patient_id):
    """Body: any of { "fullName", "dateOfBirth", "gender", "phone", "email", "address", "notes" }"""
    principal = current_principal()
    data = get_json_body()
    patient = verify_clinic_access(db.session.get(Patient, patient_id))

    changes = {field: optional_text(data, field) for field in PATIENT_FIELDS if field in data}
    if 'fullName' in data:
        full_name = optional_text(data, 'fullName')
        if full_name is None:
            raise ValidationError('fullName cannot be blank', fields=['fullName'])
        changes['full_name'] = full_name
    if 'dateOfBirth' in data:
        changes['date_of_birth'] = parse_date(data['dateOfBirth'], 'dateOfBirth')

    with get_components().store.transaction():
        for field, value in changes.items():
            setattr(patient, field, value)
        log_audit('patient', 'update', user_id=principal.user_id,
                  clinic_id=patient.clinic_id, entity_id=patient.id,
                  details={'fields': sorted(data)})

    return jsonify({'success': True, 'data': patient.to_dict()}), 200


@patient_bp.route('/<int:patient_id>', methods=['DELETE'])
@require_role('ADMIN')
@require_active_subscription
def delete_patient(patient_id):
    """Delete a patient with their appointments, prescriptions and invoices."""
    principal = current_principal()
    patient = verify_clinic_access(db.session.get(Patient, patient_id))
    with get_components().store.transaction():
        db.session.delete(patient)
        log_audit('patient', 'delete', user_id=principal.user_id,
                  clinic_id=patient.clinic_id, entity_id=patient_id,
                  details={'fullName': patient.full_name})

    return jsonify({'success': True, 'message': 'Patient deleted'}), 200
