"""
Session token signing and verification.
"""
import time
from datetime import timedelta

import jwt
import pytest

from clinicdesk.auth import InvalidSession, SessionCodec
from clinicdesk.models import RoleName


@pytest.fixture
def secret(app):
    return app.config['JWT_SECRET_KEY']


@pytest.fixture
def codec(app):
    return SessionCodec()


def test_issue_then_verify_returns_claims(codec):
    token = codec.issue(7, 3, [RoleName.DOCTOR, 'ADMIN'])
    claims = codec.verify(token)
    assert claims.user_id == 7
    assert claims.clinic_id == 3
    assert claims.roles == frozenset({RoleName.DOCTOR, RoleName.ADMIN})


def test_roles_are_written_sorted(codec, secret):
    payload = jwt.decode(codec.issue(1, 1, ['RECEPTIONIST', 'ADMIN']), secret, algorithms=['HS256'])
    assert payload['roles'] == ['ADMIN', 'RECEPTIONIST']
    assert payload['userId'] == 1
    assert payload['exp'] - payload['iat'] == int(timedelta(days=7).total_seconds())


def test_wrong_secret_is_rejected(codec, secret):
    payload = jwt.decode(codec.issue(1, 1, ['DOCTOR']), secret, algorithms=['HS256'])
    forged = jwt.encode(payload, secret + '-other', algorithm='HS256')
    with pytest.raises(InvalidSession):
        codec.verify(forged)


def test_tampered_token_is_rejected(codec):
    token = codec.issue(1, 1, ['DOCTOR'])
    header, payload, signature = token.split('.')
    with pytest.raises(InvalidSession):
        codec.verify('.'.join([header, payload, signature[::-1]]))


def test_expired_token_is_rejected(app):
    token = SessionCodec(ttl=timedelta(seconds=-60)).issue(1, 1, ['DOCTOR'])
    with pytest.raises(InvalidSession, match='expired'):
        SessionCodec().verify(token)


@pytest.mark.parametrize('token', ['', None, 'not-a-jwt'])
def test_garbage_is_rejected(codec, token):
    with pytest.raises(InvalidSession):
        codec.verify(token)


@pytest.fixture
def signed(secret):
    def _signed(payload):
        now = int(time.time())
        base = {'iat': now - 10, 'exp': now + 3600}
        base.update(payload)
        return jwt.encode(base, secret, algorithm='HS256')
    return _signed


def test_unknown_role_is_rejected_at_decode_time(codec, signed):
    token = signed({'userId': 1, 'clinicId': 1, 'roles': ['DOCTOR', 'JANITOR']})
    with pytest.raises(InvalidSession, match='unknown role'):
        codec.verify(token)


def test_roles_must_be_a_list(codec, signed):
    token = signed({'userId': 1, 'clinicId': 1, 'roles': 'DOCTOR'})
    with pytest.raises(InvalidSession):
        codec.verify(token)


@pytest.mark.parametrize('user_id', [True, '1', 1.5])
def test_user_id_must_be_an_integer(codec, signed, user_id):
    token = signed({'userId': user_id, 'clinicId': 1, 'roles': []})
    with pytest.raises(InvalidSession):
        codec.verify(token)


def test_missing_user_id_is_rejected(codec, signed):
    with pytest.raises(InvalidSession):
        codec.verify(signed({'clinicId': 1, 'roles': []}))


def test_missing_clinic_decodes_as_none(codec, signed):
    token = signed({'userId': 4, 'roles': ['DOCTOR']})
    assert codec.verify(token).clinic_id is None


def test_missing_expiry_is_rejected(codec, secret):
    token = jwt.encode({'userId': 1, 'clinicId': 1, 'roles': [], 'iat': 1}, secret, algorithm='HS256')
    with pytest.raises(InvalidSession):
        codec.verify(token)
