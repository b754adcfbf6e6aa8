"""
Clinic administration: clinic details, invitations and staff membership.

Seat-consuming writes (add staff, role change) run the seat check and the
role insert in one transaction with the clinic's subscription row locked.
"""
import logging

from clinicdesk.components import get_components
from clinicdesk.errors import Conflict, InvalidRole, NotFound, ValidationError
from clinicdesk.models import RoleName
from clinicdesk.models.role import PRIMARY_ROLES
from clinicdesk.services import email_service
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.tokens import generate_temporary_password, generate_token, hash_token

logger = logging.getLogger(__name__)

# Roles an admin can hand out inside a clinic
ASSIGNABLE_ROLES = frozenset({RoleName.DOCTOR, RoleName.RECEPTIONIST, RoleName.ADMIN})
CLINIC_FIELDS = ('name', 'address', 'phone', 'email')


def parse_staff_role(value):
    try:
        role = RoleName.parse(value)
    except ValueError:
        raise InvalidRole(f"Invalid role type: {value}") from None
    if role not in ASSIGNABLE_ROLES:
        raise InvalidRole(f"Role {role.value} cannot be assigned to clinic staff")
    return role


def _held_roles(user_id, clinic_id):
    store = get_components().store
    return {row.role.role_name for row in store.find_clinic_user_roles(user_id, clinic_id)}


def _require_member(user_id, clinic_id):
    held = _held_roles(user_id, clinic_id)
    if not held:
        raise NotFound('Staff member not found in this clinic')
    return held


# -- clinics ----------------------------------------------------------------

def get_clinic(clinic_id):
    clinic = get_components().store.find_clinic(clinic_id)
    if clinic is None:
        raise NotFound('Clinic not found')
    return clinic.to_dict()


def update_clinic(principal, clinic_id, data):
    store = get_components().store
    clinic = store.find_clinic(clinic_id)
    if clinic is None:
        raise NotFound('Clinic not found')
    fields = {key: data[key] for key in CLINIC_FIELDS if key in data}
    if 'name' in fields and not fields['name']:
        raise ValidationError('Clinic name cannot be empty')
    with store.transaction():
        store.update_clinic(clinic, **fields)
        log_audit('clinic', 'update', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=clinic_id, details=fields)
    return clinic.to_dict()


def create_clinic(principal, name, address=None, phone=None, email=None):
    """
    Open an additional clinic for the caller.

    The new clinic inherits the plan, status and trial end of the clinic the
    caller is working in, and the caller becomes its DOCTOR and ADMIN.
    """
    c = get_components()
    store = c.store
    if not name:
        raise ValidationError('Clinic name is required')
    current = store.find_subscription(principal.clinic_id)

    with store.transaction():
        clinic = store.create_clinic(name, address=address, phone=phone, email=email)
        store.create_clinic_user_role(principal.user_id, clinic.id, RoleName.DOCTOR)
        store.create_clinic_user_role(principal.user_id, clinic.id, RoleName.ADMIN)
        if current is not None:
            store.upsert_subscription(
                clinic.id,
                plan_id=current.plan_id,
                status=current.status,
                billing_cycle=current.billing_cycle,
                trial_ends_at=current.trial_ends_at,
                current_period_start=c.clock(),
                current_period_end=current.current_period_end,
            )
        log_audit('clinic', 'create', user_id=principal.user_id, clinic_id=clinic.id,
                  entity_id=clinic.id, details={'name': name})

    logger.info("User %s opened clinic %s", principal.user_id, clinic.id)
    return clinic.to_dict()


# -- invitations --------------------------------------------------------------

def create_invite(principal, clinic_id, email, role):
    """
    Create a one-time invitation and email its link.

    Returns the invite plus the link itself, since only the token's hash is
    kept and the link cannot be rebuilt later.
    """
    c = get_components()
    store = c.store
    role = parse_staff_role(role)
    clinic = store.find_clinic(clinic_id)
    if clinic is None:
        raise NotFound('Clinic not found')

    existing = store.find_user(email=email)
    if existing is not None and role in _held_roles(existing.id, clinic_id):
        raise Conflict('This user already has that role in the clinic')
    # early answer for the inviter; acceptance checks again
    c.gate.check_seat_limit(clinic_id, role)

    token = generate_token()
    with store.transaction():
        invite = store.create_invite(
            hash_token(token),
            email,
            clinic_id,
            role,
            expires_at=c.clock() + c.invite_ttl,
            created_by=principal.user_id,
        )
        log_audit('invite', 'create', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=invite.id, details={'email': invite.email, 'role': role.value})

    ttl_days = c.invite_ttl.days
    email_service.send_invite_email(invite.email, clinic.name, role.value, token, ttl_days=ttl_days)
    result = invite.to_dict()
    result.update(
        clinicName=clinic.name,
        inviteLink=email_service.frontend_url(f"accept-invite?token={token}"),
    )
    return result


def list_invites(clinic_id):
    return [invite.to_dict() for invite in get_components().store.list_invites(clinic_id)]


# -- staff ----------------------------------------------------------------------

def list_staff(clinic_id):
    staff = {}
    for row in get_components().store.list_clinic_members(clinic_id):
        entry = staff.get(row.user_id)
        if entry is None:
            entry = row.user.to_dict()
            entry['roles'] = []
            staff[row.user_id] = entry
        entry['roles'].append(row.role.name)
    for entry in staff.values():
        entry['roles'].sort()
        entry['roleName'] = ', '.join(entry['roles'])
    return list(staff.values())


def add_staff(principal, clinic_id, email, role, full_name, also_make_admin=False):
    """
    Add a person to the clinic, creating their account when needed.

    A new account gets a temporary password that is returned once and
    never stored in clear.
    """
    c = get_components()
    store = c.store
    role = parse_staff_role(role)
    temporary_password = None

    with store.transaction():
        user = store.find_user(email=email)
        held = _held_roles(user.id, clinic_id) if user is not None else set()
        if role in held:
            raise Conflict('Staff member already exists in this clinic with this role')

        c.gate.check_seat_limit(clinic_id, role, lock=True)
        if user is None:
            temporary_password = generate_temporary_password()
            user = store.create_user(email, temporary_password, full_name)

        store.create_clinic_user_role(user.id, clinic_id, role)
        if also_make_admin and role != RoleName.ADMIN:
            store.create_clinic_user_role(user.id, clinic_id, RoleName.ADMIN)
        log_audit('staff', 'add', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user.id, details={'role': role.value, 'admin': bool(also_make_admin)})

    logger.info("User %s added to clinic %s as %s", user.id, clinic_id, role.value)
    result = user.to_dict()
    result.update(role=role.value, temporaryPassword=temporary_password)
    return result


def update_staff(principal, clinic_id, user_id, data):
    """
    Update a member's details and roles.

    A new DOCTOR/RECEPTIONIST role replaces the member's current one; ADMIN
    is granted alongside. ``alsoMakeAdmin`` adds or removes ADMIN.
    """
    c = get_components()
    store = c.store
    user = store.find_user(user_id=user_id)
    if user is None:
        raise NotFound('Staff member not found in this clinic')

    role = parse_staff_role(data['role']) if data.get('role') else None
    also_make_admin = data.get('alsoMakeAdmin')

    with store.transaction():
        held = _require_member(user_id, clinic_id)

        fields = {}
        if data.get('fullName'):
            fields['full_name'] = data['fullName']
        if 'profileImage' in data:
            fields['profile_image'] = data['profileImage'] or None
        if data.get('email') and data['email'].strip().lower() != user.email:
            other = store.find_user(email=data['email'])
            if other is not None:
                raise Conflict('Email already in use')
            fields['email'] = data['email'].strip().lower()
        if fields:
            store.update_user(user, **fields)

        if role is not None and role not in held:
            if role in PRIMARY_ROLES:
                store.delete_clinic_user_role(user_id, clinic_id, PRIMARY_ROLES - {role})
            # counted after the old primary role is gone
            c.gate.check_seat_limit(clinic_id, role, lock=True)
            store.create_clinic_user_role(user_id, clinic_id, role)

        if also_make_admin is True:
            store.create_clinic_user_role(user_id, clinic_id, RoleName.ADMIN)
        elif also_make_admin is False and role != RoleName.ADMIN:
            if user_id == principal.user_id:
                raise ValidationError('You cannot remove your own admin role')
            store.delete_clinic_user_role(user_id, clinic_id, [RoleName.ADMIN])

        log_audit('staff', 'update', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user_id, details={'role': role.value if role else None,
                                              'alsoMakeAdmin': also_make_admin})

    result = user.to_dict()
    result['roles'] = sorted(r.value for r in _held_roles(user_id, clinic_id))
    return result


def remove_staff(principal, clinic_id, user_id):
    store = get_components().store
    if user_id == principal.user_id:
        raise ValidationError('You cannot remove yourself from the clinic')
    with store.transaction():
        removed = store.delete_clinic_user_role(user_id, clinic_id)
        if not removed:
            raise NotFound('Staff member not found in this clinic')
        log_audit('staff', 'remove', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user_id)
    logger.info("User %s removed from clinic %s", user_id, clinic_id)
    return removed


def reset_staff_password(principal, clinic_id, user_id):
    store = get_components().store
    _require_member(user_id, clinic_id)
    user = store.find_user(user_id=user_id)
    temporary_password = generate_temporary_password()
    with store.transaction():
        user.set_password(temporary_password)
        log_audit('staff', 'reset_password', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=user_id)
    return temporary_password
