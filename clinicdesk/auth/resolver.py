"""
Turns an inbound request into an authenticated principal.

Resolution is stateless: the principal comes entirely from the verified
token. Endpoints that need current roles go through the projector and
re-issue the cookie.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from clinicdesk.errors import Unauthenticated
from clinicdesk.models.role import RoleName
from .session import InvalidSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user_id: int
    clinic_id: Optional[int]
    roles: frozenset

    @property
    def is_super_admin(self):
        return RoleName.SUPER_ADMIN in self.roles

    def has_any(self, roles):
        return bool(self.roles & frozenset(roles))

    def role_names(self):
        return sorted(role.value for role in self.roles)


class AccessResolver:

    def __init__(self, codec, cookie_name='token', cookie_secure=False):
        self.codec = codec
        self.cookie_name = cookie_name
        self.cookie_secure = cookie_secure

    def extract_token(self, request):
        """Cookie first, then ``Authorization: Bearer``."""
        token = request.cookies.get(self.cookie_name)
        if token:
            return token
        header = request.headers.get('Authorization', '')
        scheme, _, value = header.partition(' ')
        if scheme.lower() == 'bearer' and value.strip():
            return value.strip()
        return None

    def resolve(self, request):
        token = self.extract_token(request)
        if not token:
            raise Unauthenticated()
        try:
            claims = self.codec.verify(token)
        except InvalidSession as e:
            # cause stays in the log, the client only sees 401
            logger.info("Rejected session token: %s", e)
            raise Unauthenticated() from None
        return Principal(
            user_id=claims.user_id,
            clinic_id=claims.clinic_id,
            roles=claims.roles,
        )

    def set_cookie(self, response, token):
        response.set_cookie(
            self.cookie_name,
            token,
            max_age=self.codec.max_age,
            httponly=True,
            secure=self.cookie_secure,
            samesite='Lax',
            path='/',
        )
        return response

    def clear_cookie(self, response):
        response.delete_cookie(
            self.cookie_name,
            path='/',
            httponly=True,
            secure=self.cookie_secure,
            samesite='Lax',
        )
        return response
