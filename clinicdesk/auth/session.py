"""
Signed session tokens.

A session token is an access JWT from the app's JWTManager carrying
``userId`` (the identity claim), ``clinicId`` and ``roles`` plus
``iat``/``exp``. The codec only signs and verifies; it knows nothing about
clinics or stores. Both operations need an application context.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt import ExpiredSignatureError, InvalidTokenError

from clinicdesk.models.role import RoleName


class InvalidSession(Exception):
    """Token is missing a valid signature, expired, or malformed."""


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    clinic_id: Optional[int]
    roles: frozenset


def _parse_roles(raw):
    if not isinstance(raw, list):
        raise InvalidSession("roles claim must be a list")
    try:
        return frozenset(RoleName.parse(value) for value in raw)
    except ValueError as e:
        raise InvalidSession(f"unknown role in token: {e}") from e


def _parse_id(payload, key, optional=False):
    value = payload.get(key)
    if value is None and optional:
        return None
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidSession(f"{key} claim must be an integer")
    return value


class SessionCodec:

    def __init__(self, ttl=timedelta(days=7)):
        self.ttl = ttl

    @property
    def max_age(self):
        """Lifetime in whole seconds, for the cookie's Max-Age."""
        return int(self.ttl.total_seconds())

    def issue(self, user_id, clinic_id, roles):
        return create_access_token(
            identity=int(user_id),
            additional_claims={
                'clinicId': int(clinic_id),
                'roles': sorted(RoleName.parse(r).value for r in roles),
            },
            expires_delta=self.ttl,
        )

    def verify(self, token):
        """Decode ``token`` or raise InvalidSession."""
        if not token or not isinstance(token, str):
            raise InvalidSession("empty token")
        try:
            payload = decode_token(token)
        except ExpiredSignatureError as e:
            raise InvalidSession("token expired") from e
        except (InvalidTokenError, JWTExtendedException) as e:
            raise InvalidSession(str(e)) from e

        # tokens without an expiry are never sessions
        if 'exp' not in payload or 'iat' not in payload:
            raise InvalidSession("token must carry iat and exp")

        return SessionClaims(
            user_id=_parse_id(payload, 'userId'),
            # older tokens may lack a clinic; authorization denies those
            clinic_id=_parse_id(payload, 'clinicId', optional=True),
            roles=_parse_roles(payload.get('roles')),
        )
