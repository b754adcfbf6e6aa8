"""
Account lifecycle: signup (password or Google), login, session refresh,
clinic switching, invite acceptance, email verification and profile
updates.

Every function that hands out a session builds it through the projector.
Functions return plain dicts for the route layer; denials are raised as
``ApiError`` subclasses.
"""
import logging
from datetime import timedelta

from flask import current_app
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from clinicdesk.components import get_components
from clinicdesk.errors import (
    Conflict,
    GoogleSignInUnavailable,
    InvalidCredentials,
    InvalidInvite,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from clinicdesk.models import RoleName, SubscriptionStatus
from clinicdesk.services import email_service
from clinicdesk.utils.audit import log_audit
from clinicdesk.utils.tokens import generate_token, hash_token

logger = logging.getLogger(__name__)


class SetupError(Exception):
    """Reference data (roles, plans) is missing; run ``flask seed``."""


def _issue(context):
    return get_components().codec.issue(context.user_id, context.clinic_id, context.roles)


def _session_payload(user, context, token):
    return {
        'user': user.to_dict(),
        'token': token,
        **context.to_dict(),
    }


def signup(email, password, full_name):
    """
    Create a user together with their own clinic and a trial subscription.

    All rows are written in one transaction: a missing default plan or any
    other failure leaves nothing behind.
    """
    c = get_components()
    store = c.store
    now = c.clock()

    if store.find_user(email=email) is not None:
        raise Conflict('User already exists')

    verification_token = generate_token()

    with store.transaction():
        user = store.create_user(
            email,
            password,
            full_name,
            verification_token=verification_token,
            verification_expires=now + c.verification_ttl,
        )
        clinic = _open_trial_clinic(user, now, source='signup')

    logger.info("New signup: user %s with clinic %s", user.id, clinic.id)
    email_service.send_verification_email(user.email, user.full_name, verification_token,
                                          ttl_hours=int(c.verification_ttl.total_seconds() // 3600))
    email_service.send_welcome_email(user.email, user.full_name, clinic.name, c.trial_days)

    context = c.projector.session_roles(user.id, clinic.id)
    return _session_payload(user, context, _issue(context))


def _open_trial_clinic(user, now, source):
    """
    Give ``user`` their own clinic as DOCTOR and ADMIN on a trial of the
    default plan. Runs inside the caller's transaction.
    """
    c = get_components()
    store = c.store
    clinic_name = f"{user.full_name}'s Clinic"
    clinic = store.create_clinic(clinic_name, email=user.email)
    store.create_clinic_user_role(user.id, clinic.id, RoleName.DOCTOR)
    store.create_clinic_user_role(user.id, clinic.id, RoleName.ADMIN)

    plan = store.find_plan(name=c.default_plan_name)
    if plan is None:
        raise SetupError(f"Default plan {c.default_plan_name!r} is not seeded")
    store.upsert_subscription(
        clinic.id,
        plan_id=plan.id,
        status=SubscriptionStatus.TRIALING.value,
        trial_ends_at=now + timedelta(days=c.trial_days),
        current_period_start=now,
    )
    log_audit('user', source, user_id=user.id, clinic_id=clinic.id, entity_id=user.id,
              details={'clinic': clinic_name, 'plan': plan.name})
    return clinic


def verify_google_credential(credential):
    """
    Verify a Google ID token against GOOGLE_CLIENT_ID.

    Returns ``(email, full_name)``. Bad signatures, wrong audiences, expired
    tokens and unverified addresses all raise InvalidCredentials.
    """
    client_id = current_app.config.get('GOOGLE_CLIENT_ID')
    if not client_id:
        raise GoogleSignInUnavailable()
    if not isinstance(credential, str) or not credential:
        raise ValidationError('Google credential is required', fields=['credential'])
    try:
        claims = id_token.verify_oauth2_token(credential, google_requests.Request(), client_id)
    except (ValueError, GoogleAuthError) as e:
        logger.info("Rejected Google credential: %s", e)
        raise InvalidCredentials('Invalid Google credential') from None

    email = claims.get('email')
    full_name = (claims.get('name') or '').strip()
    if not email or not full_name or claims.get('email_verified') is not True:
        raise InvalidCredentials('Invalid Google credential')
    return email.strip().lower(), full_name


def google_signup(credential):
    """
    Sign up with a Google ID token.

    A new address gets a verified account with an unusable random password.
    An existing account without any clinic gets its own clinic; one that
    already belongs to a clinic must log in instead.
    """
    c = get_components()
    store = c.store
    email, full_name = verify_google_credential(credential)
    now = c.clock()

    with store.transaction():
        user = store.find_user(email=email)
        if user is None:
            user = store.create_user(email, generate_token(), full_name, email_verified=True)
        elif store.find_clinic_user_roles(user.id):
            raise Conflict('Account already exists. Please login instead.', hasClinic=True)
        clinic = _open_trial_clinic(user, now, source='google_signup')

    logger.info("New Google signup: user %s with clinic %s", user.id, clinic.id)
    email_service.send_welcome_email(user.email, user.full_name, clinic.name, c.trial_days)

    context = c.projector.session_roles(user.id, clinic.id)
    return _session_payload(user, context, _issue(context))


def login(email, password):
    c = get_components()
    user = c.store.find_user(email=email)
    if user is None or not user.check_password(password):
        raise InvalidCredentials('Invalid email or password')

    # projection first: a user with no clinic must not get a session
    context = c.projector.session_roles(user.id)

    with c.store.transaction():
        c.store.update_user(user, last_login=c.clock())

    logger.info("User %s logged in to clinic %s", user.id, context.clinic_id)
    return _session_payload(user, context, _issue(context))


def refresh_session(principal):
    """
    Re-derive roles for the session's clinic and issue a fresh token.

    A user who lost every role in the active clinic falls back to their
    default clinic; a user with no clinic left is rejected.
    """
    c = get_components()
    user = c.store.find_user(user_id=principal.user_id)
    if user is None:
        raise Unauthenticated()
    context = c.projector.session_roles(user.id, principal.clinic_id)
    if context.clinic_id != principal.clinic_id:
        logger.info("User %s no longer in clinic %s, moved to %s",
                    user.id, principal.clinic_id, context.clinic_id)
    return _session_payload(user, context, _issue(context))


def switch_clinic(principal, clinic_id):
    c = get_components()
    user = c.store.find_user(user_id=principal.user_id)
    if user is None:
        raise Unauthenticated()
    context = c.projector.session_roles(user.id, clinic_id, strict=True)
    return _session_payload(user, context, _issue(context))


def accept_invite(token, password=None, full_name=None):
    """
    Consume an invite exactly once.

    Unknown, expired and already-accepted tokens all raise the same
    InvalidInvite. The seat check, role grant and acceptance stamp share one
    transaction with the subscription row locked.
    """
    c = get_components()
    store = c.store
    if not isinstance(token, str) or not token:
        raise InvalidInvite()

    with store.transaction():
        invite = store.find_invite_by_hash(hash_token(token), for_update=True)
        now = c.clock()
        if invite is None or not invite.is_usable(now):
            raise InvalidInvite()

        role = invite.role
        user = store.find_user(email=invite.email)
        held = set()
        if user is not None:
            held = {row.role.name for row in store.find_clinic_user_roles(user.id, invite.clinic_id)}
        elif not password or not full_name:
            raise ValidationError('Password and full name are required for new users')

        # re-granting a held role takes no new seat
        if role.name not in held:
            c.gate.check_seat_limit(invite.clinic_id, role.name, lock=True)
        if user is None:
            # receiving the invite proves the address
            user = store.create_user(invite.email, password, full_name, email_verified=True)

        store.create_clinic_user_role(user.id, invite.clinic_id, role)
        invite.accepted_at = now
        log_audit('invite', 'accept', user_id=user.id, clinic_id=invite.clinic_id,
                  entity_id=invite.id, details={'role': role.name})
        clinic_id = invite.clinic_id

    logger.info("Invite accepted: user %s joined clinic %s", user.id, clinic_id)
    context = c.projector.session_roles(user.id, clinic_id)
    return _session_payload(user, context, _issue(context))


def verify_email(token):
    c = get_components()
    if not token:
        raise ValidationError('Token is required')
    user = c.store.find_user_by_verification_token(token)
    if user is None or user.verification_expires is None or c.clock() > user.verification_expires:
        raise ValidationError('Invalid or expired verification token')
    with c.store.transaction():
        c.store.update_user(user, email_verified=True, verification_token=None, verification_expires=None)
    logger.info("Email verified for user %s", user.id)
    return user.to_dict()


def resend_verification(email):
    """Issue a new verification link. Unknown addresses get the same answer."""
    c = get_components()
    user = c.store.find_user(email=email)
    if user is None:
        return False
    if user.email_verified:
        raise ValidationError('Email is already verified')
    token = generate_token()
    with c.store.transaction():
        c.store.update_user(user, verification_token=token,
                            verification_expires=c.clock() + c.verification_ttl)
    email_service.send_verification_email(user.email, user.full_name, token,
                                          ttl_hours=int(c.verification_ttl.total_seconds() // 3600))
    return True


def get_profile(user_id):
    user = get_components().store.find_user(user_id=user_id)
    if user is None:
        raise NotFound('User not found')
    return user.to_dict()


def update_profile(user_id, full_name=None, email=None, profile_image=None, password=None):
    c = get_components()
    store = c.store
    user = store.find_user(user_id=user_id)
    if user is None:
        raise NotFound('User not found')

    fields = {}
    if full_name:
        fields['full_name'] = full_name
    if profile_image is not None:
        fields['profile_image'] = profile_image or None
    if email and email != user.email:
        other = store.find_user(email=email)
        if other is not None and other.id != user.id:
            raise Conflict('Email already in use')
        # a changed address has to be verified again
        fields.update(email=email, email_verified=False)

    with store.transaction():
        store.update_user(user, **fields)
        if password:
            user.set_password(password)
    return user.to_dict()
