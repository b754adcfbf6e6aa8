"""
Per-app wiring of the auth and tenancy components.

Everything is built from the app config in ``create_app`` and stored on
``app.extensions['clinicdesk']``; request code reaches it through
``get_components()``.
"""
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from clinicdesk.auth import (
    AccessResolver,
    ClinicRoleProjector,
    SessionCodec,
    SubscriptionGate,
)
from clinicdesk.models.base import utcnow
from clinicdesk.store import TenantStore

EXTENSION_KEY = 'clinicdesk'


@dataclass
class Components:
    codec: SessionCodec
    store: TenantStore
    resolver: AccessResolver
    projector: ClinicRoleProjector
    gate: SubscriptionGate
    trial_days: int = 14
    cancel_grace_days: int = 30
    invite_ttl: timedelta = timedelta(days=7)
    verification_ttl: timedelta = timedelta(hours=24)
    default_plan_name: str = 'STARTER'
    clock: object = utcnow


def build_components(config, session, clock=utcnow):
    """Build the component graph from a config mapping and a SQLAlchemy session."""
    codec = SessionCodec(ttl=config['SESSION_TTL'])
    store = TenantStore(
        session,
        system_clinic_name=config['SYSTEM_CLINIC_NAME'],
        retry_attempts=config['STORE_RETRY_ATTEMPTS'],
        retry_delay=config['STORE_RETRY_DELAY'],
    )
    return Components(
        codec=codec,
        store=store,
        resolver=AccessResolver(
            codec,
            cookie_name=config['AUTH_COOKIE_NAME'],
            cookie_secure=config['AUTH_COOKIE_SECURE'],
        ),
        projector=ClinicRoleProjector(store),
        gate=SubscriptionGate(store, clock=clock),
        trial_days=config['TRIAL_DAYS'],
        cancel_grace_days=config['CANCEL_GRACE_DAYS'],
        invite_ttl=timedelta(days=config['INVITE_TTL_DAYS']),
        verification_ttl=timedelta(hours=config['VERIFICATION_TTL_HOURS']),
        default_plan_name=config['DEFAULT_PLAN_NAME'],
        clock=clock,
    )


def init_components(app, session, clock=utcnow):
    components = build_components(app.config, session, clock=clock)
    app.extensions[EXTENSION_KEY] = components
    return components


def get_components():
    return current_app.extensions[EXTENSION_KEY]
