"""
Clinic-scoped patient and appointment routes.
"""
from datetime import timedelta

import pytest

from clinicdesk.models.base import utcnow
from tests.conftest import bearer


@pytest.fixture
def headers(owner):
    return bearer(owner['token'])


def _create_patient(client, headers, name='Pat Patient'):
    response = client.post('/api/patients', json={'fullName': name, 'dateOfBirth': '1990-04-01'}, headers=headers)
    assert response.status_code == 201
    return response.get_json()['data']


def test_create_and_search_patients(client, headers):
    _create_patient(client, headers, 'Alice Adams')
    _create_patient(client, headers, 'Bob Brown')

    response = client.get('/api/patients?search=alice', headers=headers)
    body = response.get_json()
    assert [p['fullName'] for p in body['data']] == ['Alice Adams']
    assert body['pagination']['total'] == 1


def test_patients_are_isolated_between_clinics(app, client, headers):
    patient = _create_patient(client, headers)

    other = app.test_client().post('/api/auth/signup', json={
        'email': 'rival@example.com', 'password': 'password123', 'fullName': 'Rival',
    }).get_json()['data']
    other_headers = bearer(other['token'])

    assert client.get(f"/api/patients/{patient['id']}", headers=other_headers).status_code == 404
    assert client.get('/api/patients', headers=other_headers).get_json()['data'] == []


def test_history_needs_the_patient_history_feature(client, headers, owner, store):
    patient = _create_patient(client, headers)
    denied = client.get(f"/api/patients/{patient['id']}/history", headers=headers)
    assert denied.status_code == 403
    assert denied.get_json()['code'] == 'FEATURE_NOT_IN_PLAN'

    client.post('/api/billing/upgrade', json={'planName': 'GROWTH'}, headers=headers)
    allowed = client.get(f"/api/patients/{patient['id']}/history", headers=headers)
    assert allowed.status_code == 200
    assert allowed.get_json()['data']['appointments'] == []


def test_expired_trial_blocks_patients_then_reports_not_active(client, headers, owner, store):
    with store.transaction():
        subscription = store.find_subscription(owner['clinicId'])
        subscription.trial_ends_at = utcnow() - timedelta(hours=1)

    first = client.get('/api/patients', headers=headers)
    assert first.status_code == 403
    assert first.get_json()['code'] == 'TRIAL_EXPIRED'

    second = client.get('/api/patients', headers=headers)
    assert second.get_json()['code'] == 'SUBSCRIPTION_NOT_ACTIVE'


def test_appointment_lifecycle(client, headers, owner):
    patient = _create_patient(client, headers)
    when = (utcnow() + timedelta(days=1)).replace(microsecond=0)

    created = client.post('/api/appointments', json={
        'patientId': patient['id'],
        'doctorId': owner['user']['id'],
        'scheduledAt': when.isoformat() + 'Z',
        'reason': 'Checkup',
    }, headers=headers)
    assert created.status_code == 201
    appointment = created.get_json()['data']
    assert appointment['scheduledAt'] == when.isoformat()

    listed = client.get(f"/api/appointments?date={when.date().isoformat()}", headers=headers)
    assert [a['id'] for a in listed.get_json()['data']] == [appointment['id']]

    updated = client.patch(f"/api/appointments/{appointment['id']}/status",
                           json={'status': 'checked_in'}, headers=headers)
    assert updated.get_json()['data']['status'] == 'checked_in'

    bad = client.patch(f"/api/appointments/{appointment['id']}/status",
                       json={'status': 'teleported'}, headers=headers)
    assert bad.status_code == 400


def test_appointment_doctor_must_belong_to_the_clinic(client, headers, make_user):
    patient = _create_patient(client, headers)
    outsider = make_user('outsider@example.com')
    response = client.post('/api/appointments', json={
        'patientId': patient['id'],
        'doctorId': outsider.id,
        'scheduledAt': '2030-01-01T09:00:00Z',
    }, headers=headers)
    assert response.status_code == 400


def test_appointment_for_a_foreign_patient(app, client, headers):
    other = app.test_client().post('/api/auth/signup', json={
        'email': 'rival@example.com', 'password': 'password123', 'fullName': 'Rival',
    }).get_json()['data']
    foreign = _create_patient(client, bearer(other['token']))

    response = client.post('/api/appointments', json={
        'patientId': foreign['id'], 'scheduledAt': '2030-01-01T09:00:00Z',
    }, headers=headers)
    assert response.status_code == 404
