import pytest

from clinicdesk.auth import AccessResolver, SessionCodec
from clinicdesk.errors import Unauthenticated
from clinicdesk.models import RoleName


@pytest.fixture
def resolver(app):
    return AccessResolver(SessionCodec())


def test_bearer_header_resolves_principal(app, resolver):
    token = resolver.codec.issue(5, 2, ['RECEPTIONIST'])
    with app.test_request_context(headers={'Authorization': f'Bearer {token}'}) as ctx:
        principal = resolver.resolve(ctx.request)
    assert principal.user_id == 5
    assert principal.clinic_id == 2
    assert principal.roles == frozenset({RoleName.RECEPTIONIST})
    assert not principal.is_super_admin


def test_cookie_wins_over_header(app, resolver):
    cookie_token = resolver.codec.issue(1, 1, ['DOCTOR'])
    header_token = resolver.codec.issue(2, 2, ['ADMIN'])
    headers = {
        'Cookie': f'token={cookie_token}',
        'Authorization': f'Bearer {header_token}',
    }
    with app.test_request_context(headers=headers) as ctx:
        assert resolver.resolve(ctx.request).user_id == 1


def test_missing_token_is_unauthenticated(app, resolver):
    with app.test_request_context() as ctx:
        with pytest.raises(Unauthenticated):
            resolver.resolve(ctx.request)


def test_non_bearer_scheme_is_ignored(app, resolver):
    token = resolver.codec.issue(1, 1, ['DOCTOR'])
    with app.test_request_context(headers={'Authorization': f'Basic {token}'}) as ctx:
        assert resolver.extract_token(ctx.request) is None


def test_invalid_token_gives_one_generic_error(app, resolver):
    with app.test_request_context(headers={'Authorization': 'Bearer nope'}) as ctx:
        with pytest.raises(Unauthenticated) as excinfo:
            resolver.resolve(ctx.request)
    assert excinfo.value.message == 'Authentication required'


def test_cookie_attributes(app, resolver):
    response = app.response_class()
    resolver.set_cookie(response, 'abc')
    header = response.headers['Set-Cookie']
    assert header.startswith('token=abc')
    assert 'HttpOnly' in header
    assert 'SameSite=Lax' in header
    assert f'Max-Age={7 * 24 * 3600}' in header
    assert 'Secure' not in header
