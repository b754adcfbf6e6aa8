"""
Plan upgrades, downgrades and cancellation.
"""
from datetime import timedelta

import pytest

from clinicdesk.errors import (
    Conflict,
    DowngradeBlocked,
    InvalidSubscriptionTransition,
    NotFound,
    SubscriptionNotActive,
    ValidationError,
)
from clinicdesk.models.base import utcnow
from clinicdesk.services import billing_service
from tests.conftest import bearer, principal_for


@pytest.fixture
def admin(owner):
    return principal_for(owner['user']['id'], owner['clinicId'], 'DOCTOR', 'ADMIN')


def test_plans_are_listed_cheapest_first(client):
    response = client.get('/api/billing/plans')
    assert response.status_code == 200
    plans = response.get_json()['data']
    assert [p['name'] for p in plans] == ['STARTER', 'GROWTH', 'PRO']
    assert plans[0]['maxDoctors'] == 1 and plans[0]['maxStaff'] == 2
    assert plans[2]['maxDoctors'] is None and plans[2]['multiClinic'] is True
    assert 'patient_history' in plans[1]['features']


def test_upgrade_activates_and_ends_trial(owner, admin):
    details = billing_service.upgrade(admin, owner['clinicId'], 'growth', billing_cycle='yearly')
    subscription = details['subscription']
    assert subscription['status'] == 'active'
    assert subscription['planName'] == 'GROWTH'
    assert subscription['billingCycle'] == 'yearly'
    assert subscription['trialEndsAt'] is None
    assert details['usage'] == {'doctors': 1, 'totalStaff': 1, 'maxDoctors': 3, 'maxStaff': 10}


def test_upgrade_must_go_up(owner, admin):
    billing_service.upgrade(admin, owner['clinicId'], 'PRO')
    with pytest.raises(ValidationError):
        billing_service.upgrade(admin, owner['clinicId'], 'GROWTH')


def test_upgrade_validation(owner, admin):
    with pytest.raises(ValidationError):
        billing_service.upgrade(admin, owner['clinicId'], 'GROWTH', billing_cycle='weekly')
    with pytest.raises(NotFound):
        billing_service.upgrade(admin, owner['clinicId'], 'PLATINUM')


def test_downgrade_blocked_by_usage_leaves_plan_unchanged(owner, admin, store, make_user, grant):
    billing_service.upgrade(admin, owner['clinicId'], 'GROWTH')
    clinic = store.find_clinic(owner['clinicId'])
    grant(make_user('doc2@example.com'), clinic, 'DOCTOR')
    grant(make_user('doc3@example.com'), clinic, 'DOCTOR')
    plan_id = store.find_subscription(owner['clinicId']).plan_id

    with pytest.raises(DowngradeBlocked) as excinfo:
        billing_service.downgrade(admin, owner['clinicId'], 'STARTER')
    assert excinfo.value.details['usage'] == {'doctors': 3, 'staff': 3}
    assert excinfo.value.details['maxDoctors'] == 1

    store.session.expire_all()
    assert store.find_subscription(owner['clinicId']).plan_id == plan_id


def test_downgrade_when_usage_fits(owner, admin):
    billing_service.upgrade(admin, owner['clinicId'], 'PRO')
    details = billing_service.downgrade(admin, owner['clinicId'], 'GROWTH')
    assert details['plan']['name'] == 'GROWTH'
    assert details['subscription']['status'] == 'active'


def test_downgrade_must_go_down(owner, admin):
    with pytest.raises(ValidationError):
        billing_service.downgrade(admin, owner['clinicId'], 'GROWTH')


def test_cancel_sets_grace_period_and_blocks_access(owner, admin, components):
    before = utcnow()
    result = billing_service.cancel(admin, owner['clinicId'])
    assert 'endsAt' in result

    subscription = components.store.find_subscription(owner['clinicId'])
    assert subscription.status == 'canceled'
    assert abs((subscription.ends_at - (before + timedelta(days=30))).total_seconds()) < 5

    with pytest.raises(SubscriptionNotActive):
        components.gate.require_active_subscription(owner['clinicId'])
    with pytest.raises(ValidationError):
        billing_service.cancel(admin, owner['clinicId'])
    with pytest.raises(Conflict):
        billing_service.downgrade(admin, owner['clinicId'], 'STARTER')
    with pytest.raises(InvalidSubscriptionTransition):
        billing_service.upgrade(admin, owner['clinicId'], 'PRO')


# -- over HTTP -----------------------------------------------------------------------

def test_subscription_details_over_http(client, owner):
    response = client.get('/api/billing/subscription', headers=bearer(owner['token']))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['subscription']['status'] == 'trialing'
    assert data['subscription']['trialDaysLeft'] in (13, 14)
    assert data['usage']['maxDoctors'] == 1


def test_only_admins_change_plans(client, owner, make_user, store, token_for):
    doctor = make_user('doc@example.com')
    with store.transaction():
        store.create_clinic_user_role(doctor.id, owner['clinicId'], 'DOCTOR')
    response = client.post('/api/billing/upgrade', json={'planName': 'GROWTH'},
                           headers=bearer(token_for(doctor.id, owner['clinicId'], 'DOCTOR')))
    assert response.status_code == 403


def test_downgrade_blocked_over_http(client, owner, store, make_user, grant):
    headers = bearer(owner['token'])
    assert client.post('/api/billing/upgrade', json={'planName': 'GROWTH'}, headers=headers).status_code == 200
    clinic = store.find_clinic(owner['clinicId'])
    grant(make_user('doc2@example.com'), clinic, 'DOCTOR')

    response = client.post('/api/billing/downgrade', json={'planName': 'STARTER'}, headers=headers)
    assert response.status_code == 409
    assert response.get_json()['code'] == 'DOWNGRADE_BLOCKED'
