"""
Projection of association rows into per-clinic role sets.
"""
import itertools

import pytest

from clinicdesk.errors import Forbidden, NoClinicAssociation
from clinicdesk.models import RoleName


@pytest.fixture
def two_clinics(make_clinic):
    return make_clinic('First'), make_clinic('Second')


@pytest.mark.parametrize('order', list(itertools.permutations(range(3))))
def test_projection_is_independent_of_row_order(components, make_user, grant, two_clinics, order):
    first, second = two_clinics
    user = make_user('proj@example.com')
    rows = [(first, 'DOCTOR'), (first, 'ADMIN'), (second, 'RECEPTIONIST')]
    for index in order:
        clinic, role = rows[index]
        grant(user, clinic, role)

    clinics = components.projector.project(user.id)

    assert list(clinics) == [first.id, second.id]
    assert clinics[first.id].roles == frozenset({RoleName.DOCTOR, RoleName.ADMIN})
    assert clinics[second.id].roles == frozenset({RoleName.RECEPTIONIST})
    assert clinics[first.id].clinic_name == 'First'
    assert not clinics.is_super_admin


def test_regranting_a_role_does_not_duplicate_it(components, make_user, grant, two_clinics):
    first, _ = two_clinics
    user = make_user('dup@example.com')
    grant(user, first, 'DOCTOR', 'DOCTOR')
    grant(user, first, 'DOCTOR')
    assert components.projector.project(user.id)[first.id].to_dict()['roles'] == ['DOCTOR']


def test_default_clinic_is_lowest_id(components, make_user, grant, two_clinics):
    first, second = two_clinics
    user = make_user('default@example.com')
    grant(user, second, 'DOCTOR')
    grant(user, first, 'RECEPTIONIST')
    context = components.projector.session_roles(user.id)
    assert context.clinic_id == first.id
    assert context.roles == frozenset({RoleName.RECEPTIONIST})


def test_requested_clinic_is_honoured(components, make_user, grant, two_clinics):
    first, second = two_clinics
    user = make_user('pick@example.com')
    grant(user, first, 'DOCTOR')
    grant(user, second, 'ADMIN')
    context = components.projector.session_roles(user.id, second.id)
    assert context.clinic_id == second.id
    assert context.clinic_name == 'Second'


def test_unknown_clinic_falls_back_unless_strict(components, make_user, grant, two_clinics):
    first, second = two_clinics
    user = make_user('strict@example.com')
    grant(user, first, 'DOCTOR')

    assert components.projector.session_roles(user.id, second.id).clinic_id == first.id
    with pytest.raises(Forbidden):
        components.projector.session_roles(user.id, second.id, strict=True)


def test_user_without_clinics_has_no_session(components, make_user):
    user = make_user('lonely@example.com')
    with pytest.raises(NoClinicAssociation):
        components.projector.session_roles(user.id)


def test_super_admin_prefers_a_real_clinic_and_keeps_the_flag(components, store, make_user, grant, two_clinics):
    first, second = two_clinics
    user = make_user('root@example.com')
    with store.transaction():
        system = store.find_or_create_system_clinic()
        store.create_clinic_user_role(user.id, system.id, RoleName.SUPER_ADMIN)
    grant(user, second, 'DOCTOR')

    context = components.projector.session_roles(user.id)

    assert context.clinic_id == second.id
    assert context.roles == frozenset({RoleName.DOCTOR, RoleName.SUPER_ADMIN})
    assert context.to_dict()['isSuperAdmin'] is True


def test_super_admin_only_lands_in_system_clinic(components, store, make_user):
    user = make_user('sys@example.com')
    with store.transaction():
        system = store.find_or_create_system_clinic()
        store.create_clinic_user_role(user.id, system.id, RoleName.SUPER_ADMIN)
    context = components.projector.session_roles(user.id)
    assert context.clinic_id == system.id
    assert context.clinic_name == 'System'
