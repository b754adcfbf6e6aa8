"""
Subscription checks: active status, trial expiry write-through, features
and seat limits.
"""
from datetime import timedelta

import pytest

from clinicdesk.errors import (
    DowngradeBlocked,
    FeatureNotInPlan,
    InvalidRole,
    SeatLimitExceeded,
    SubscriptionNotActive,
    SubscriptionRequired,
    TrialExpired,
)
from clinicdesk.models import SubscriptionStatus
from clinicdesk.models.base import utcnow


@pytest.fixture
def gate(components):
    return components.gate


def test_trialing_subscription_is_active(gate, make_clinic):
    clinic = make_clinic(trial_ends_at=utcnow() + timedelta(days=3))
    assert gate.require_active_subscription(clinic.id).status == 'trialing'


def test_missing_subscription(gate, store):
    with store.transaction():
        clinic = store.create_clinic('No plan')
    with pytest.raises(SubscriptionRequired):
        gate.require_active_subscription(clinic.id)
    with pytest.raises(SubscriptionRequired):
        gate.require_active_subscription(None)


@pytest.mark.parametrize('status', [SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE])
def test_inactive_statuses_are_denied(gate, make_clinic, status):
    clinic = make_clinic(status=status)
    with pytest.raises(SubscriptionNotActive) as excinfo:
        gate.require_active_subscription(clinic.id)
    assert excinfo.value.details['status'] == status.value
    assert excinfo.value.details['requiresUpgrade'] is True


def test_trial_expiry_is_written_once(gate, store, make_clinic):
    ends = utcnow() - timedelta(minutes=1)
    clinic = make_clinic(trial_ends_at=ends)

    with pytest.raises(TrialExpired) as excinfo:
        gate.require_active_subscription(clinic.id)
    assert excinfo.value.details['trialEndsAt'] == ends.isoformat()

    store.session.expire_all()
    assert store.find_subscription(clinic.id).status == 'past_due'

    # later checks see the persisted status, not the trial
    with pytest.raises(SubscriptionNotActive):
        gate.require_active_subscription(clinic.id)


def test_sweep_expires_only_overdue_trials(gate, store, make_clinic):
    overdue = make_clinic('Overdue', trial_ends_at=utcnow() - timedelta(days=1))
    running = make_clinic('Running', trial_ends_at=utcnow() + timedelta(days=1))
    active = make_clinic('Paid', status=SubscriptionStatus.ACTIVE)

    assert gate.expire_overdue_trials() == 1
    assert gate.expire_overdue_trials() == 0

    store.session.expire_all()
    assert store.find_subscription(overdue.id).status == 'past_due'
    assert store.find_subscription(running.id).status == 'trialing'
    assert store.find_subscription(active.id).status == 'active'


def test_feature_membership(gate, make_clinic):
    clinic = make_clinic(plan_name='STARTER')
    assert gate.require_feature(clinic.id, 'basic_appointments')
    with pytest.raises(FeatureNotInPlan) as excinfo:
        gate.require_feature(clinic.id, 'patient_history')
    assert excinfo.value.details['planName'] == 'STARTER'
    assert excinfo.value.details['feature'] == 'patient_history'


def test_doctor_seat_limit(gate, make_clinic, make_user, grant):
    clinic = make_clinic(plan_name='STARTER')
    grant(make_user('doc@example.com'), clinic, 'DOCTOR')

    with pytest.raises(SeatLimitExceeded) as excinfo:
        gate.check_seat_limit(clinic.id, 'DOCTOR')
    assert excinfo.value.details['current'] == 1
    assert excinfo.value.details['limit'] == 1
    assert excinfo.value.status_code == 403


def test_staff_limit_counts_every_seat_role(gate, make_clinic, make_user, grant):
    clinic = make_clinic(plan_name='STARTER')
    grant(make_user('doc@example.com'), clinic, 'DOCTOR')
    gate.check_seat_limit(clinic.id, 'RECEPTIONIST')
    grant(make_user('desk@example.com'), clinic, 'RECEPTIONIST')

    with pytest.raises(SeatLimitExceeded) as excinfo:
        gate.check_seat_limit(clinic.id, 'RECEPTIONIST')
    assert excinfo.value.details['current'] == 2
    assert excinfo.value.details['limit'] == 2


def test_admin_takes_no_seat(gate, make_clinic, make_user, grant):
    clinic = make_clinic(plan_name='STARTER')
    grant(make_user('doc@example.com'), clinic, 'DOCTOR', 'ADMIN')
    grant(make_user('desk@example.com'), clinic, 'RECEPTIONIST', 'ADMIN')
    assert gate.check_seat_limit(clinic.id, 'ADMIN')
    assert gate.seat_usage(clinic.id).to_dict() == {'doctors': 1, 'staff': 2}


def test_unlimited_plan_always_allows(gate, make_clinic, make_user, grant):
    clinic = make_clinic(plan_name='PRO', status=SubscriptionStatus.ACTIVE)
    for n in range(5):
        grant(make_user(f'doc{n}@example.com'), clinic, 'DOCTOR')
    assert gate.check_seat_limit(clinic.id, 'DOCTOR')
    assert gate.check_seat_limit(clinic.id, 'RECEPTIONIST')


def test_invalid_role_type(gate, make_clinic):
    clinic = make_clinic()
    with pytest.raises(InvalidRole):
        gate.check_seat_limit(clinic.id, 'JANITOR')


def test_downgrade_check(gate, store, make_clinic, make_user, grant):
    clinic = make_clinic(plan_name='GROWTH', status=SubscriptionStatus.ACTIVE)
    for n in range(3):
        grant(make_user(f'doc{n}@example.com'), clinic, 'DOCTOR')
    with pytest.raises(DowngradeBlocked) as excinfo:
        gate.check_downgrade(clinic.id, store.find_plan(name='STARTER'))
    assert excinfo.value.details['usage'] == {'doctors': 3, 'staff': 3}
    assert gate.check_downgrade(clinic.id, store.find_plan(name='PRO')).doctors == 3
