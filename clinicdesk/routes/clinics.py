"""
Clinic routes: context switching, clinic details, invitations and staff.

Every ``/<clinic_id>/...`` route is limited to the caller's active clinic
(super admins may address any clinic).
"""
from flask import Blueprint, jsonify

from clinicdesk.components import get_components
from clinicdesk.errors import ValidationError
from clinicdesk.services import account_service, staff_service
from clinicdesk.utils.decorators import (
    check_seat_limit,
    current_principal,
    ensure_clinic_scope,
    require_auth,
    require_feature,
    require_role,
)
from clinicdesk.utils.validation import (
    get_json_body,
    normalize_email,
    optional_text,
    require_fields,
    require_text_fields,
)

clinics_bp = Blueprint('clinics', __name__, url_prefix='/api/clinics')


@clinics_bp.route('/switch', methods=['POST'])
@require_auth
def switch_clinic():
    """Body: { "clinicId": 2 }. Re-issues the session for that clinic."""
    data = get_json_body()
    (clinic_id,) = require_fields(data, 'clinicId')
    try:
        clinic_id = int(clinic_id)
    except (TypeError, ValueError):
        raise ValidationError('clinicId must be an integer') from None
    payload = account_service.switch_clinic(current_principal(), clinic_id)
    response = jsonify({'success': True, 'data': payload})
    get_components().resolver.set_cookie(response, payload['token'])
    return response, 200


@clinics_bp.route('', methods=['POST'])
@require_role('ADMIN')
@require_feature('multi_clinic')
def create_clinic():
    """Open another clinic (plans with multi-clinic only)."""
    data = get_json_body()
    (name,) = require_text_fields(data, 'name')
    clinic = staff_service.create_clinic(
        current_principal(),
        name.strip(),
        address=data.get('address'),
        phone=data.get('phone'),
        email=data.get('email'),
    )
    return jsonify({'success': True, 'data': clinic}), 201


@clinics_bp.route('/<int:clinic_id>', methods=['GET'])
@require_auth
def get_clinic(clinic_id):
    ensure_clinic_scope(clinic_id)
    return jsonify({'success': True, 'data': staff_service.get_clinic(clinic_id)}), 200


@clinics_bp.route('/<int:clinic_id>', methods=['PATCH'])
@require_role('ADMIN')
def update_clinic(clinic_id):
    principal = ensure_clinic_scope(clinic_id)
    clinic = staff_service.update_clinic(principal, clinic_id, get_json_body())
    return jsonify({'success': True, 'data': clinic}), 200


@clinics_bp.route('/<int:clinic_id>/invite', methods=['POST'])
@require_role('ADMIN')
def create_invite(clinic_id):
    """Body: { "email", "role" }"""
    principal = ensure_clinic_scope(clinic_id)
    data = get_json_body()
    email, role = require_text_fields(data, 'email', 'role')
    invite = staff_service.create_invite(principal, clinic_id, normalize_email(email), role)
    return jsonify({'success': True, 'data': invite}), 201


@clinics_bp.route('/<int:clinic_id>/invites', methods=['GET'])
@require_role('ADMIN')
def list_invites(clinic_id):
    ensure_clinic_scope(clinic_id)
    return jsonify({'success': True, 'data': staff_service.list_invites(clinic_id)}), 200


@clinics_bp.route('/<int:clinic_id>/add-staff', methods=['POST'])
@require_role('ADMIN')
@check_seat_limit('role')
def add_staff(clinic_id):
    """
    Body: { "email", "role", "fullName", "alsoMakeAdmin"? }
    A new account's temporary password is in the response, once.
    """
    principal = ensure_clinic_scope(clinic_id)
    data = get_json_body()
    email, role, full_name = require_text_fields(data, 'email', 'role', 'fullName')
    staff = staff_service.add_staff(
        principal,
        clinic_id,
        normalize_email(email),
        role,
        full_name.strip(),
        also_make_admin=bool(data.get('alsoMakeAdmin')),
    )
    return jsonify({'success': True, 'data': staff}), 201


@clinics_bp.route('/<int:clinic_id>/staff', methods=['GET'])
@require_role('ADMIN')
def list_staff(clinic_id):
    ensure_clinic_scope(clinic_id)
    return jsonify({'success': True, 'data': staff_service.list_staff(clinic_id)}), 200


@clinics_bp.route('/<int:clinic_id>/staff/<int:user_id>', methods=['PATCH'])
@require_role('ADMIN')
def update_staff(clinic_id, user_id):
    """Body: { "fullName"?, "email"?, "role"?, "alsoMakeAdmin"?, "profileImage"? }"""
    principal = ensure_clinic_scope(clinic_id)
    data = get_json_body()
    if data.get('email'):
        data['email'] = normalize_email(data['email'])
    if 'fullName' in data:
        data['fullName'] = optional_text(data, 'fullName')
    staff = staff_service.update_staff(principal, clinic_id, user_id, data)
    return jsonify({'success': True, 'data': staff}), 200


@clinics_bp.route('/<int:clinic_id>/staff/<int:user_id>', methods=['DELETE'])
@require_role('ADMIN')
def remove_staff(clinic_id, user_id):
    principal = ensure_clinic_scope(clinic_id)
    staff_service.remove_staff(principal, clinic_id, user_id)
    return jsonify({'success': True, 'message': 'Staff member removed from clinic'}), 200


@clinics_bp.route('/<int:clinic_id>/staff/<int:user_id>/reset-password', methods=['POST'])
@require_role('ADMIN')
def reset_staff_password(clinic_id, user_id):
    principal = ensure_clinic_scope(clinic_id)
    temporary_password = staff_service.reset_staff_password(principal, clinic_id, user_id)
    return jsonify({
        'success': True,
        'message': 'Password reset successfully',
        'data': {'temporaryPassword': temporary_password},
    }), 200
