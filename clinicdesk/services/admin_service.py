"""
Platform-wide administration for super admins.

These operations act on any clinic or user and bypass seat limits; they
still go through the store's idempotent role upsert.
"""
import logging

from clinicdesk.components import get_components
from clinicdesk.errors import Conflict, NotFound, ValidationError
from clinicdesk.models import RoleName
from clinicdesk.services.staff_service import CLINIC_FIELDS, parse_staff_role
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.validation import normalize_email, optional_text

logger = logging.getLogger(__name__)

# audit action for every SUPER_ADMIN grant, from the API or the bootstrap script
GRANT_SUPER_ADMIN = 'make_super_admin'


def _clinic_or_404(clinic_id):
    clinic = get_components().store.find_clinic(clinic_id)
    if clinic is None:
        raise NotFound('Clinic not found')
    return clinic


def _user_or_404(user_id):
    user = get_components().store.find_user(user_id=user_id)
    if user is None:
        raise NotFound('User not found')
    return user


def list_clinics():
    c = get_components()
    now = c.clock()
    result = []
    for clinic in c.store.list_clinics():
        staff = {}
        for row in clinic.user_roles:
            if row.role.role_name == RoleName.SUPER_ADMIN:
                continue
            entry = staff.setdefault(row.user_id, {
                'id': row.user.id,
                'fullName': row.user.full_name,
                'email': row.user.email,
                'roles': [],
            })
            entry['roles'].append(row.role.name)
        for entry in staff.values():
            entry['roles'].sort()
        data = clinic.to_dict()
        data['staff'] = list(staff.values())
        data['subscription'] = clinic.subscription.to_dict(now=now) if clinic.subscription else None
        result.append(data)
    return result


def update_clinic(principal, clinic_id, data):
    store = get_components().store
    clinic = _clinic_or_404(clinic_id)
    fields = {key: data[key] for key in CLINIC_FIELDS if key in data}
    with store.transaction():
        store.update_clinic(clinic, **fields)
        log_audit('clinic', 'update', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=clinic_id, details=fields)
    return clinic.to_dict()


def delete_clinic(principal, clinic_id):
    store = get_components().store
    clinic = _clinic_or_404(clinic_id)
    if clinic.id == store.find_system_clinic_id():
        raise Conflict('The System clinic cannot be removed')
    with store.transaction():
        store.delete_clinic(clinic)
        log_audit('clinic', 'delete', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=clinic_id, details={'name': clinic.name})
    logger.warning("Super admin %s deleted clinic %s", principal.user_id, clinic_id)


def list_users():
    c = get_components()
    result = []
    for user in c.store.list_users():
        associations = {}
        for row in user.clinic_roles:
            if row.role.role_name == RoleName.SUPER_ADMIN:
                continue
            subscription = row.clinic.subscription
            entry = associations.setdefault(row.clinic_id, {
                'clinicId': row.clinic_id,
                'clinicName': row.clinic.name,
                'roles': [],
                'planName': subscription.plan.name if subscription else None,
                'subscriptionStatus': subscription.status if subscription else None,
            })
            entry['roles'].append(row.role.name)
        for entry in associations.values():
            entry['roles'].sort()
        data = user.to_dict()
        data['isSuperAdmin'] = any(r.role.role_name == RoleName.SUPER_ADMIN for r in user.clinic_roles)
        data['associations'] = list(associations.values())
        result.append(data)
    return result


def update_user(principal, user_id, data):
    store = get_components().store
    user = _user_or_404(user_id)
    fields = {}
    full_name = optional_text(data, 'fullName')
    if full_name:
        fields['full_name'] = full_name
    if data.get('email'):
        email = normalize_email(data['email'])
        other = store.find_user(email=email)
        if other is not None and other.id != user.id:
            raise Conflict('Email already in use')
        fields['email'] = email
    with store.transaction():
        store.update_user(user, **fields)
        log_audit('user', 'update', user_id=principal.user_id, entity_id=user_id,
                  details=sorted(fields))
    return user.to_dict()


def verify_user_email(principal, user_id):
    store = get_components().store
    user = _user_or_404(user_id)
    with store.transaction():
        store.update_user(user, email_verified=True, verification_token=None, verification_expires=None)
        log_audit('user', 'verify_email', user_id=principal.user_id, entity_id=user_id)
    return user.to_dict()


def delete_user(principal, user_id):
    store = get_components().store
    if user_id == principal.user_id:
        raise ValidationError('You cannot delete your own account')
    user = _user_or_404(user_id)
    with store.transaction():
        store.delete_user(user)
        log_audit('user', 'delete', user_id=principal.user_id, entity_id=user_id,
                  details={'email': user.email})
    logger.warning("Super admin %s deleted user %s", principal.user_id, user_id)


def make_super_admin(principal, user_id):
    """Grant SUPER_ADMIN through the System clinic, creating that clinic if needed."""
    store = get_components().store
    user = _user_or_404(user_id)
    with store.transaction():
        system_clinic = store.find_or_create_system_clinic()
        store.create_clinic_user_role(user.id, system_clinic.id, RoleName.SUPER_ADMIN)
        log_audit('user', GRANT_SUPER_ADMIN, user_id=principal.user_id,
                  clinic_id=system_clinic.id, entity_id=user.id)
    logger.warning("User %s granted SUPER_ADMIN by %s", user.id, principal.user_id)
    return user.to_dict()


def add_user_to_clinic(principal, user_id, clinic_id, role):
    store = get_components().store
    role = parse_staff_role(role)
    user = _user_or_404(user_id)
    _clinic_or_404(clinic_id)
    with store.transaction():
        store.create_clinic_user_role(user.id, clinic_id, role)
        log_audit('staff', 'add', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user.id, details={'role': role.value, 'override': True})


def remove_user_from_clinic(principal, user_id, clinic_id):
    store = get_components().store
    with store.transaction():
        removed = store.delete_clinic_user_role(user_id, clinic_id)
        if not removed:
            raise NotFound('User has no roles in this clinic')
        log_audit('staff', 'remove', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user_id, details={'override': True})
    return removed
