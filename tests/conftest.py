"""
Shared fixtures: an app on in-memory SQLite with roles and plans seeded,
plus helpers for building users, clinics and sessions.
"""
import pytest

from clinicdesk import create_app
from clinicdesk.auth import Principal
from clinicdesk.components import get_components
from clinicdesk.extensions import db
from clinicdesk.models import RoleName, SubscriptionStatus
from clinicdesk.seeds import seed_reference_data


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        seed_reference_data()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def components(app):
    return get_components()


@pytest.fixture
def store(components):
    return components.store


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


def principal_for(user_id, clinic_id, *roles):
    return Principal(user_id=user_id, clinic_id=clinic_id,
                     roles=frozenset(RoleName.parse(r) for r in roles))


@pytest.fixture
def make_user(store):
    """Create a bare user with no clinic."""
    def _make(email, password='password123', full_name='Test User', **fields):
        with store.transaction():
            user = store.create_user(email, password, full_name, **fields)
        return user
    return _make


@pytest.fixture
def make_clinic(store):
    """Create a clinic with a subscription on ``plan_name``."""
    def _make(name='Clinic', plan_name='STARTER', status=SubscriptionStatus.TRIALING, trial_ends_at=None):
        with store.transaction():
            clinic = store.create_clinic(name)
            plan = store.find_plan(name=plan_name)
            store.upsert_subscription(
                clinic.id,
                plan_id=plan.id,
                status=SubscriptionStatus(status).value,
                trial_ends_at=trial_ends_at,
            )
        return clinic
    return _make


@pytest.fixture
def grant(store):
    def _grant(user, clinic, *roles):
        with store.transaction():
            for role in roles:
                store.create_clinic_user_role(user.id, clinic.id, role)
    return _grant


@pytest.fixture
def owner(app):
    """A signed-up clinic owner: DOCTOR and ADMIN of their own trial clinic."""
    from clinicdesk.services import account_service
    return account_service.signup('owner@example.com', 'password123', 'Olivia Owner')


@pytest.fixture
def token_for(components):
    """Issue a session token for a user in a clinic with the given roles."""
    def _issue(user_id, clinic_id, *roles):
        return components.codec.issue(user_id, clinic_id, [RoleName.parse(r) for r in roles])
    return _issue
