"""
Prescriptions, invoices with payments, and patient edits, each gated by
clinic role.
"""
import pytest
from sqlalchemy import func, select

from clinicdesk.models import Appointment, Clinic, Invoice, Patient, Payment, Prescription
from tests.conftest import bearer

MEDICATIONS = [
    {'medicine': 'Amoxicillin 500mg', 'dosage': '1-0-1', 'durationDays': 5},
    {'medicine': 'Paracetamol', 'dosage': '0-0-1', 'durationDays': 3, 'notes': 'After food'},
]


def _count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def headers(owner):
    return bearer(owner['token'])


@pytest.fixture
def staff_headers(owner, store, make_user, grant, token_for):
    """Bearer headers for a fresh member of the owner's clinic holding only ``role``."""
    clinic = store.session.get(Clinic, owner['clinicId'])

    def _headers(role):
        user = make_user(f'{role.lower()}@example.com')
        grant(user, clinic, role)
        return bearer(token_for(user.id, clinic.id, role))
    return _headers


@pytest.fixture
def patient(client, headers):
    response = client.post('/api/patients', json={'fullName': 'Pat Patient'}, headers=headers)
    assert response.status_code == 201
    return response.get_json()['data']


def _prescribe(client, headers, patient_id, **extra):
    return client.post('/api/prescriptions', json={
        'patientId': patient_id, 'medications': MEDICATIONS, **extra,
    }, headers=headers)


# -- prescriptions ----------------------------------------------------------------

def test_admin_without_doctor_role_cannot_prescribe(client, store, patient, staff_headers):
    response = _prescribe(client, staff_headers('ADMIN'), patient['id'])
    assert response.status_code == 403
    body = response.get_json()
    assert body['code'] == 'FORBIDDEN'
    assert body['required'] == ['DOCTOR']
    assert body['held'] == ['ADMIN']
    assert _count(store.session, Prescription) == 0


def test_doctor_prescribes_and_any_member_reads(client, owner, headers, patient, staff_headers):
    created = _prescribe(client, headers, patient['id'], diagnosis='Sinusitis', followUpDate='2030-01-10')
    assert created.status_code == 201
    data = created.get_json()['data']
    assert data['doctorId'] == owner['user']['id']
    assert data['status'] == 'active'
    assert data['followUpDate'] == '2030-01-10'
    assert data['medications'][1] == {
        'medicine': 'Paracetamol', 'dosage': '0-0-1', 'durationDays': 3, 'notes': 'After food',
    }

    reception = staff_headers('RECEPTIONIST')
    listed = client.get(f"/api/prescriptions?patientId={patient['id']}", headers=reception)
    assert [p['id'] for p in listed.get_json()['data']] == [data['id']]
    fetched = client.get(f"/api/prescriptions/{data['id']}", headers=reception)
    assert fetched.get_json()['data']['diagnosis'] == 'Sinusitis'

    denied = client.patch(f"/api/prescriptions/{data['id']}", json={'status': 'completed'}, headers=reception)
    assert denied.status_code == 403


def test_doctor_updates_and_deletes_a_prescription(client, store, headers, patient):
    prescription = _prescribe(client, headers, patient['id']).get_json()['data']

    updated = client.patch(f"/api/prescriptions/{prescription['id']}", json={
        'status': 'completed',
        'medications': MEDICATIONS[:1],
        'instructions': 'Rest',
    }, headers=headers)
    assert updated.status_code == 200
    data = updated.get_json()['data']
    assert data['status'] == 'completed'
    assert len(data['medications']) == 1
    assert data['instructions'] == 'Rest'

    bad = client.patch(f"/api/prescriptions/{prescription['id']}", json={'status': 'lost'}, headers=headers)
    assert bad.status_code == 400

    deleted = client.delete(f"/api/prescriptions/{prescription['id']}", headers=headers)
    assert deleted.status_code == 200
    assert _count(store.session, Prescription) == 0


@pytest.mark.parametrize('medications', [
    [],
    'Amoxicillin',
    [{'medicine': 'Amoxicillin', 'dosage': '1-0-1'}],
    [{'medicine': 'Amoxicillin', 'dosage': '1-0-1', 'durationDays': 0}],
    [{'medicine': '', 'dosage': '1-0-1', 'durationDays': 3}],
    [{'medicine': 'Amoxicillin', 'dosage': 5, 'durationDays': 3}],
    ['Amoxicillin'],
])
def test_prescription_medications_are_validated(client, headers, patient, medications):
    response = client.post('/api/prescriptions', json={
        'patientId': patient['id'], 'medications': medications,
    }, headers=headers)
    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'


def test_prescription_for_a_foreign_patient(app, client, headers):
    rival = app.test_client().post('/api/auth/signup', json={
        'email': 'rival@example.com', 'password': 'password123', 'fullName': 'Rival',
    }).get_json()['data']
    foreign = client.post('/api/patients', json={'fullName': 'Not Yours'},
                          headers=bearer(rival['token'])).get_json()['data']

    assert _prescribe(client, headers, foreign['id']).status_code == 404


def test_prescriptions_need_an_active_subscription(client, owner, headers, patient, store):
    with store.transaction():
        store.find_subscription(owner['clinicId']).status = 'canceled'
    response = _prescribe(client, headers, patient['id'])
    assert response.status_code == 403
    assert response.get_json()['requiresUpgrade'] is True


# -- invoices and payments -------------------------------------------------------------

def _invoice(client, headers, patient_id, **extra):
    return client.post('/api/invoices', json={
        'patientId': patient_id,
        'items': [
            {'description': 'Consultation', 'unitPrice': 50},
            {'description': 'Dressing', 'quantity': 2, 'unitPrice': 12.5},
        ],
        **extra,
    }, headers=headers)


def test_invoice_total_and_numbering(client, headers, patient):
    first = _invoice(client, headers, patient['id'])
    assert first.status_code == 201
    data = first.get_json()['data']
    assert data['totalAmount'] == 75.0
    assert data['balance'] == 75.0
    assert data['status'] == 'pending'
    assert data['invoiceNumber'] == 'INV-00001'

    second = _invoice(client, headers, patient['id']).get_json()['data']
    assert second['invoiceNumber'] == 'INV-00002'

    clash = _invoice(client, headers, patient['id'], invoiceNumber='INV-00001')
    assert clash.status_code == 409


@pytest.mark.parametrize('role, status', [('RECEPTIONIST', 201), ('ADMIN', 201), ('DOCTOR', 403)])
def test_invoice_creation_by_role(client, patient, staff_headers, role, status):
    assert _invoice(client, staff_headers(role), patient['id']).status_code == status


def test_payments_settle_an_invoice(client, store, patient, staff_headers):
    reception = staff_headers('RECEPTIONIST')
    invoice = _invoice(client, reception, patient['id']).get_json()['data']
    url = f"/api/invoices/{invoice['id']}/payments"

    partial = client.post(url, json={'amount': 25, 'method': 'cash'}, headers=reception)
    assert partial.status_code == 201
    assert partial.get_json()['data']['invoice']['status'] == 'partially_paid'
    assert partial.get_json()['data']['invoice']['balance'] == 50.0

    too_much = client.post(url, json={'amount': 60, 'method': 'card'}, headers=reception)
    assert too_much.status_code == 400

    rest = client.post(url, json={'amount': 50, 'method': 'upi', 'reference': 'TXN-9'}, headers=reception)
    assert rest.get_json()['data']['invoice']['status'] == 'paid'

    detail = client.get(f"/api/invoices/{invoice['id']}", headers=reception).get_json()['data']
    assert [p['amount'] for p in detail['payments']] == [25.0, 50.0]
    assert detail['amountPaid'] == 75.0

    closed = client.post(url, json={'amount': 1, 'method': 'cash'}, headers=reception)
    assert closed.status_code == 400
    assert _count(store.session, Payment) == 2


@pytest.mark.parametrize('body', [
    {'amount': -5, 'method': 'cash'},
    {'amount': '10', 'method': 'cash'},
    {'amount': 10, 'method': 'barter'},
    {'method': 'cash'},
])
def test_payment_fields_are_validated(client, headers, patient, body):
    invoice = _invoice(client, headers, patient['id']).get_json()['data']
    response = client.post(f"/api/invoices/{invoice['id']}/payments", json=body, headers=headers)
    assert response.status_code == 400


def test_doctor_cannot_record_payments(client, headers, patient, staff_headers):
    invoice = _invoice(client, headers, patient['id']).get_json()['data']
    response = client.post(f"/api/invoices/{invoice['id']}/payments",
                           json={'amount': 10, 'method': 'cash'}, headers=staff_headers('DOCTOR'))
    assert response.status_code == 403


def test_invoice_update_and_cancel(client, headers, patient):
    invoice = _invoice(client, headers, patient['id']).get_json()['data']
    url = f"/api/invoices/{invoice['id']}"

    updated = client.patch(url, json={'items': [{'description': 'Follow-up', 'unitPrice': 30}]},
                           headers=headers)
    assert updated.get_json()['data']['totalAmount'] == 30.0

    assert client.patch(url, json={'status': 'paid'}, headers=headers).status_code == 400

    cancelled = client.patch(url, json={'status': 'cancelled'}, headers=headers)
    assert cancelled.get_json()['data']['status'] == 'cancelled'
    assert client.patch(url, json={'notes': 'late'}, headers=headers).status_code == 400


def test_invoice_items_are_fixed_after_a_payment(client, headers, patient):
    invoice = _invoice(client, headers, patient['id']).get_json()['data']
    client.post(f"/api/invoices/{invoice['id']}/payments", json={'amount': 5, 'method': 'cash'}, headers=headers)
    response = client.patch(f"/api/invoices/{invoice['id']}",
                            json={'items': [{'description': 'Other', 'unitPrice': 1}]}, headers=headers)
    assert response.status_code == 400


# -- patient edits ------------------------------------------------------------------

def test_reception_updates_a_patient(client, patient, staff_headers):
    response = client.patch(f"/api/patients/{patient['id']}", json={
        'fullName': '  Patricia Patient ', 'phone': '555-0100', 'dateOfBirth': '1985-02-03',
    }, headers=staff_headers('RECEPTIONIST'))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['fullName'] == 'Patricia Patient'
    assert data['phone'] == '555-0100'
    assert data['dateOfBirth'] == '1985-02-03'


@pytest.mark.parametrize('body', [{'fullName': ''}, {'fullName': 7}, {'phone': ['555']}])
def test_patient_update_validates_fields(client, headers, patient, body):
    response = client.patch(f"/api/patients/{patient['id']}", json=body, headers=headers)
    assert response.status_code == 400


def test_doctor_only_member_cannot_edit_patients(client, patient, staff_headers):
    response = client.patch(f"/api/patients/{patient['id']}", json={'phone': '1'},
                            headers=staff_headers('DOCTOR'))
    assert response.status_code == 403


def test_only_admins_delete_patients_and_records_go_with_them(client, store, owner, headers, patient, staff_headers):
    _prescribe(client, headers, patient['id'])
    _invoice(client, headers, patient['id'])
    client.post('/api/appointments', json={
        'patientId': patient['id'], 'scheduledAt': '2030-01-01T09:00:00Z',
    }, headers=headers)

    denied = client.delete(f"/api/patients/{patient['id']}", headers=staff_headers('RECEPTIONIST'))
    assert denied.status_code == 403

    response = client.delete(f"/api/patients/{patient['id']}", headers=headers)
    assert response.status_code == 200
    store.session.expire_all()
    session = store.session
    assert session.get(Patient, patient['id']) is None
    for model in (Prescription, Invoice, Appointment):
        assert _count(session, model) == 0
    assert client.get(f"/api/patients/{patient['id']}", headers=headers).status_code == 404
