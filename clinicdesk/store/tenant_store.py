"""
Record store for users, clinics, role associations, invites and subscriptions.

Every method works on the SQLAlchemy session handed to the constructor and
never commits on its own; callers group writes with ``transaction()``.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from clinicdesk.errors import InvalidRole
from clinicdesk.models import (
    Clinic,
    ClinicUserRole,
    Invite,
    Role,
    RoleName,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    User,
)
from clinicdesk.models.base import utcnow
from .retry import retry_on_disconnect

logger = logging.getLogger(__name__)

_DEPTH_KEY = 'clinicdesk.tx_depth'
_UPSERT_DIALECTS = {
    'postgresql': pg_insert,
    'sqlite': sqlite_insert,
}


class TenantStore:

    def __init__(self, session, system_clinic_name='System', retry_attempts=3, retry_delay=0.2):
        self.session = session
        self.system_clinic_name = system_clinic_name
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    # -- unit of work -----------------------------------------------------

    @property
    def in_transaction(self):
        return self.session.info.get(_DEPTH_KEY, 0) > 0

    @contextmanager
    def transaction(self):
        """
        Group writes into one commit.

        Re-entrant: only the outermost block commits, and any exception rolls
        back everything written since that block was entered.
        """
        info = self.session.info
        depth = info.get(_DEPTH_KEY, 0)
        info[_DEPTH_KEY] = depth + 1
        try:
            yield self
            if depth == 0:
                self.session.commit()
        except Exception:
            if depth == 0:
                self.session.rollback()
            raise
        finally:
            info[_DEPTH_KEY] = depth

    # -- users ------------------------------------------------------------

    @retry_on_disconnect
    def find_user(self, email=None, user_id=None):
        if user_id is not None:
            return self.session.get(User, user_id)
        if email:
            return self.session.execute(
                select(User).where(func.lower(User.email) == email.strip().lower())
            ).scalar_one_or_none()
        return None

    @retry_on_disconnect
    def find_user_by_verification_token(self, token):
        return self.session.execute(
            select(User).where(User.verification_token == token)
        ).scalar_one_or_none()

    @retry_on_disconnect
    def list_users(self):
        return self.session.execute(select(User).order_by(User.id)).scalars().all()

    def create_user(self, email, password, full_name, **fields):
        user = User(email=email.strip().lower(), full_name=full_name, **fields)
        user.set_password(password)
        self.session.add(user)
        self.session.flush()
        return user

    def update_user(self, user, **fields):
        for key, value in fields.items():
            setattr(user, key, value)
        self.session.flush()
        return user

    def delete_user(self, user):
        self.session.delete(user)
        self.session.flush()

    # -- clinics ----------------------------------------------------------

    @retry_on_disconnect
    def find_clinic(self, clinic_id):
        return self.session.get(Clinic, clinic_id)

    @retry_on_disconnect
    def list_clinics(self):
        return self.session.execute(select(Clinic).order_by(Clinic.id)).scalars().all()

    def create_clinic(self, name, **fields):
        clinic = Clinic(name=name, **fields)
        self.session.add(clinic)
        self.session.flush()
        return clinic

    def update_clinic(self, clinic, **fields):
        for key, value in fields.items():
            setattr(clinic, key, value)
        self.session.flush()
        return clinic

    def delete_clinic(self, clinic):
        self.session.delete(clinic)
        self.session.flush()

    @retry_on_disconnect
    def find_system_clinic_id(self):
        return self.session.execute(
            select(Clinic.id).where(Clinic.name == self.system_clinic_name).order_by(Clinic.id).limit(1)
        ).scalar_one_or_none()

    def find_or_create_system_clinic(self):
        clinic_id = self.find_system_clinic_id()
        if clinic_id is not None:
            return self.session.get(Clinic, clinic_id)
        logger.info("Creating %r clinic for super-admin associations", self.system_clinic_name)
        return self.create_clinic(self.system_clinic_name)

    # -- roles ------------------------------------------------------------

    @retry_on_disconnect
    def find_role(self, name):
        try:
            role_name = RoleName.parse(name)
        except ValueError:
            return None
        return self.session.execute(
            select(Role).where(Role.name == role_name.value)
        ).scalar_one_or_none()

    def require_role(self, name):
        role = self.find_role(name)
        if role is None:
            raise InvalidRole(f"Role not found: {name}")
        return role

    @retry_on_disconnect
    def find_clinic_user_roles(self, user_id, clinic_id=None):
        stmt = (
            select(ClinicUserRole)
            .join(ClinicUserRole.clinic)
            .join(ClinicUserRole.role)
            .where(ClinicUserRole.user_id == user_id)
        )
        if clinic_id is not None:
            stmt = stmt.where(ClinicUserRole.clinic_id == clinic_id)
        stmt = stmt.order_by(ClinicUserRole.clinic_id, Role.id)
        return self.session.execute(stmt).scalars().all()

    @retry_on_disconnect
    def list_clinic_members(self, clinic_id):
        return self.session.execute(
            select(ClinicUserRole)
            .where(ClinicUserRole.clinic_id == clinic_id)
            .order_by(ClinicUserRole.user_id, ClinicUserRole.role_id)
        ).scalars().all()

    @retry_on_disconnect
    def user_has_role_anywhere(self, user_id, role):
        role_name = RoleName.parse(role)
        return self.session.execute(
            select(func.count(ClinicUserRole.id))
            .join(ClinicUserRole.role)
            .where(ClinicUserRole.user_id == user_id, Role.name == role_name.value)
        ).scalar_one() > 0

    def create_clinic_user_role(self, user_id, clinic_id, role):
        """
        Idempotently grant ``role`` to a user in a clinic.

        Conflict target is the (user_id, clinic_id, role_id) unique
        constraint; an existing row is returned unchanged.
        """
        role_obj = role if isinstance(role, Role) else self.require_role(role)
        self.session.flush()
        values = {
            'user_id': user_id,
            'clinic_id': clinic_id,
            'role_id': role_obj.id,
            'created_at': utcnow(),
        }
        dialect = self.session.get_bind(ClinicUserRole).dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is not None:
            stmt = insert(ClinicUserRole.__table__).values(**values).on_conflict_do_nothing(
                index_elements=['user_id', 'clinic_id', 'role_id']
            )
            self.session.execute(stmt)
        elif self._find_association(user_id, clinic_id, role_obj.id) is None:
            self.session.add(ClinicUserRole(**values))
            self.session.flush()
        return self._find_association(user_id, clinic_id, role_obj.id)

    def _find_association(self, user_id, clinic_id, role_id):
        return self.session.execute(
            select(ClinicUserRole).where(
                ClinicUserRole.user_id == user_id,
                ClinicUserRole.clinic_id == clinic_id,
                ClinicUserRole.role_id == role_id,
            )
        ).scalar_one_or_none()

    def delete_clinic_user_role(self, user_id, clinic_id, roles=None):
        """Revoke ``roles`` (all roles when None) in a clinic. Returns rows removed."""
        self.session.flush()
        stmt = delete(ClinicUserRole).where(
            ClinicUserRole.user_id == user_id,
            ClinicUserRole.clinic_id == clinic_id,
        )
        if roles is not None:
            names = [RoleName.parse(r).value for r in roles]
            role_ids = select(Role.id).where(Role.name.in_(names))
            stmt = stmt.where(ClinicUserRole.role_id.in_(role_ids))
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.expire_all()
        return result.rowcount

    @retry_on_disconnect
    def count_role_rows(self, clinic_id, roles):
        names = [RoleName.parse(r).value for r in roles]
        return self.session.execute(
            select(func.count(ClinicUserRole.id))
            .join(ClinicUserRole.role)
            .where(ClinicUserRole.clinic_id == clinic_id, Role.name.in_(names))
        ).scalar_one()

    # -- plans and subscriptions -------------------------------------------

    @retry_on_disconnect
    def find_plan(self, name=None, plan_id=None):
        if plan_id is not None:
            return self.session.get(SubscriptionPlan, plan_id)
        if name:
            return self.session.execute(
                select(SubscriptionPlan).where(SubscriptionPlan.name == name.strip().upper())
            ).scalar_one_or_none()
        return None

    @retry_on_disconnect
    def list_plans(self):
        return self.session.execute(
            select(SubscriptionPlan).order_by(SubscriptionPlan.price_monthly, SubscriptionPlan.id)
        ).scalars().all()

    def find_subscription(self, clinic_id, for_update=False):
        """Load a clinic's subscription; ``for_update`` locks the row until commit."""
        stmt = select(Subscription).where(Subscription.clinic_id == clinic_id)
        if for_update:
            stmt = stmt.with_for_update(of=Subscription).execution_options(populate_existing=True)
            return self.session.execute(stmt).scalar_one_or_none()
        return self._read_subscription(stmt)

    @retry_on_disconnect
    def _read_subscription(self, stmt):
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert_subscription(self, clinic_id, **fields):
        subscription = self.find_subscription(clinic_id)
        if subscription is None:
            subscription = Subscription(clinic_id=clinic_id, **fields)
            self.session.add(subscription)
        else:
            for key, value in fields.items():
                setattr(subscription, key, value)
        self.session.flush()
        return subscription

    @retry_on_disconnect
    def list_expired_trials(self, now):
        return self.session.execute(
            select(Subscription).where(
                Subscription.status == SubscriptionStatus.TRIALING.value,
                Subscription.trial_ends_at.is_not(None),
                Subscription.trial_ends_at < now,
            )
        ).scalars().all()

    # -- invites ----------------------------------------------------------

    def create_invite(self, token_hash, email, clinic_id, role, expires_at, created_by=None):
        role_obj = role if isinstance(role, Role) else self.require_role(role)
        invite = Invite(
            token_hash=token_hash,
            email=email.strip().lower(),
            clinic_id=clinic_id,
            role_id=role_obj.id,
            expires_at=expires_at,
            created_by=created_by,
        )
        self.session.add(invite)
        self.session.flush()
        return invite

    def find_invite_by_hash(self, token_hash, for_update=False):
        stmt = select(Invite).where(Invite.token_hash == token_hash)
        if for_update:
            stmt = stmt.with_for_update(of=Invite).execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    @retry_on_disconnect
    def list_invites(self, clinic_id):
        return self.session.execute(
            select(Invite).where(Invite.clinic_id == clinic_id).order_by(Invite.created_at.desc(), Invite.id.desc())
        ).scalars().all()
