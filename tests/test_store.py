"""
TenantStore: unit of work, idempotent role upsert and read retries.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from clinicdesk.errors import InvalidRole
from clinicdesk.models import ClinicUserRole, Role, User
from clinicdesk.store import TenantStore, retry_on_disconnect


def _count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_transaction_commits_on_success(store):
    with store.transaction():
        store.create_user('keep@example.com', 'password123', 'Keep')
    store.session.rollback()
    assert store.find_user(email='keep@example.com') is not None


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.create_user('gone@example.com', 'password123', 'Gone')
            raise RuntimeError('boom')
    assert store.find_user(email='gone@example.com') is None
    assert not store.in_transaction


def test_nested_transaction_commits_once_at_the_outer_level(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.create_user('inner@example.com', 'password123', 'Inner')
            assert store.in_transaction
            raise RuntimeError('outer fails after inner finished')
    assert store.find_user(email='inner@example.com') is None


def test_find_user_ignores_case(store, make_user):
    make_user('Mixed.Case@Example.com')
    assert store.find_user(email='mixed.case@example.COM') is not None


def test_role_upsert_is_idempotent(store, make_user, make_clinic):
    user = make_user('upsert@example.com')
    clinic = make_clinic()
    with store.transaction():
        first = store.create_clinic_user_role(user.id, clinic.id, 'DOCTOR')
        second = store.create_clinic_user_role(user.id, clinic.id, 'doctor')
    assert first.id == second.id
    assert _count(store.session, ClinicUserRole) == 1


def test_role_upsert_rejects_unknown_roles(store, make_user, make_clinic):
    user = make_user('bad@example.com')
    clinic = make_clinic()
    with pytest.raises(InvalidRole):
        store.create_clinic_user_role(user.id, clinic.id, 'JANITOR')


def test_delete_roles_by_name(store, make_user, make_clinic, grant):
    user = make_user('revoke@example.com')
    clinic = make_clinic()
    grant(user, clinic, 'DOCTOR', 'ADMIN')
    with store.transaction():
        removed = store.delete_clinic_user_role(user.id, clinic.id, ['ADMIN'])
    assert removed == 1
    assert [row.role.name for row in store.find_clinic_user_roles(user.id)] == ['DOCTOR']


def test_deleting_a_clinic_cascades_to_associations(store, make_user, make_clinic, grant):
    user = make_user('cascade@example.com')
    clinic = make_clinic()
    grant(user, clinic, 'DOCTOR')
    with store.transaction():
        store.delete_clinic(clinic)
    assert store.find_clinic_user_roles(user.id) == []
    assert store.find_subscription(clinic.id) is None
    assert store.session.get(User, user.id) is not None


def test_system_clinic_is_found_or_created_once(store):
    with store.transaction():
        first = store.find_or_create_system_clinic()
    with store.transaction():
        second = store.find_or_create_system_clinic()
    assert first.id == second.id
    assert first.name == 'System'


def test_roles_are_seeded(store):
    names = {role.name for role in store.session.execute(select(Role)).scalars()}
    assert names == {'DOCTOR', 'RECEPTIONIST', 'ADMIN', 'SUPER_ADMIN'}


# -- retry ---------------------------------------------------------------------

class FakeSession:
    def __init__(self):
        self.info = {}
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class FlakyStore(TenantStore):
    def __init__(self, failures, **kwargs):
        super().__init__(FakeSession(), retry_delay=0, **kwargs)
        self.failures = failures
        self.calls = 0

    @retry_on_disconnect
    def read(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError('SELECT 1', {}, Exception('server closed the connection'))
        return 'row'


def test_read_is_retried_after_transient_failure():
    store = FlakyStore(failures=2, retry_attempts=3)
    assert store.read() == 'row'
    assert store.calls == 3
    assert store.session.rollbacks == 2


def test_retry_gives_up_after_the_last_attempt():
    store = FlakyStore(failures=5, retry_attempts=3)
    with pytest.raises(OperationalError):
        store.read()
    assert store.calls == 3


def test_no_retry_inside_a_transaction():
    store = FlakyStore(failures=1, retry_attempts=3)
    store.session.info['clinicdesk.tx_depth'] = 1
    with pytest.raises(OperationalError):
        store.read()
    assert store.calls == 1
    assert store.session.rollbacks == 0
