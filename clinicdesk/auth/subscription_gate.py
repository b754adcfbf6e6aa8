"""
Plan and usage checks for a clinic's subscription.

Checks raise the matching ``SubscriptionError`` subclass on denial and
return the subscription on success. ``require_active_subscription`` writes
trial expiry through to the row before denying, so it must be called outside
an open unit of work.
"""
import logging
from dataclasses import dataclass

from clinicdesk.errors import (
    DowngradeBlocked,
    FeatureNotInPlan,
    InvalidRole,
    SeatLimitExceeded,
    SubscriptionNotActive,
    SubscriptionRequired,
    TrialExpired,
)
from clinicdesk.models.base import utcnow
from clinicdesk.models.role import NON_SEAT_ROLES, SEAT_ROLES, RoleName
from clinicdesk.models.subscription import SubscriptionStatus

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE})


@dataclass(frozen=True)
class SeatUsage:
    doctors: int
    staff: int

    def to_dict(self):
        return {'doctors': self.doctors, 'staff': self.staff}


class SubscriptionGate:

    def __init__(self, store, clock=utcnow):
        self.store = store
        self._clock = clock

    def _require_subscription(self, clinic_id, for_update=False):
        subscription = None
        if clinic_id is not None:
            subscription = self.store.find_subscription(clinic_id, for_update=for_update)
        if subscription is None:
            raise SubscriptionRequired()
        return subscription

    def require_active_subscription(self, clinic_id):
        subscription = self._require_subscription(clinic_id)
        status = subscription.status_enum
        if status in INACTIVE_STATUSES:
            raise SubscriptionNotActive(status=status.value)

        now = self._clock()
        if subscription.trial_expired(now):
            trial_ends_at = subscription.trial_ends_at
            self._expire_trial(clinic_id, now)
            raise TrialExpired(trialEndsAt=trial_ends_at.isoformat())
        return subscription

    def _expire_trial(self, clinic_id, now):
        """Move an overdue trial to past_due. Returns True if this call wrote it."""
        with self.store.transaction():
            subscription = self.store.find_subscription(clinic_id, for_update=True)
            # another request may already have expired it
            if subscription is None or not subscription.trial_expired(now):
                return False
            subscription.transition_to(SubscriptionStatus.PAST_DUE)
            self.store.session.flush()
        logger.info("Trial expired for clinic %s; subscription is now past_due", clinic_id)
        return True

    def require_feature(self, clinic_id, feature):
        subscription = self._require_subscription(clinic_id)
        plan = subscription.plan
        if not plan.has_feature(feature):
            raise FeatureNotInPlan(
                f"The '{feature}' feature is not included in the {plan.name} plan",
                feature=feature,
                planName=plan.name,
            )
        return subscription

    def _count(self, clinic_id, role):
        if role == RoleName.DOCTOR:
            return self.store.count_role_rows(clinic_id, [RoleName.DOCTOR])
        return self.store.count_role_rows(clinic_id, SEAT_ROLES)

    def check_seat_limit(self, clinic_id, role_type, lock=False):
        """
        Deny adding one more ``role_type`` seat when the plan is full.

        DOCTOR rows count against max_doctors. Every seat role (DOCTOR and
        RECEPTIONIST) counts together against max_staff when a RECEPTIONIST
        is added. ADMIN takes no seat. ``lock`` holds the subscription row
        for the rest of the enclosing transaction.
        """
        subscription = self._require_subscription(clinic_id, for_update=lock)
        try:
            role = RoleName.parse(role_type)
        except ValueError:
            raise InvalidRole(f"Invalid role type: {role_type}") from None
        if role in NON_SEAT_ROLES:
            return subscription

        plan = subscription.plan
        limit = plan.max_doctors if role == RoleName.DOCTOR else plan.max_staff
        if limit is None:
            return subscription

        current = self._count(clinic_id, role)
        if current >= limit:
            label = 'doctors' if role == RoleName.DOCTOR else 'staff members'
            logger.info(
                "Seat limit reached for clinic %s: %s %d/%d",
                clinic_id, role.value, current, limit,
            )
            raise SeatLimitExceeded(
                f"Your {plan.name} plan allows up to {limit} {label}",
                current=current,
                limit=limit,
                role=role.value,
            )
        return subscription

    def seat_usage(self, clinic_id):
        return SeatUsage(
            doctors=self.store.count_role_rows(clinic_id, [RoleName.DOCTOR]),
            staff=self.store.count_role_rows(clinic_id, SEAT_ROLES),
        )

    def check_downgrade(self, clinic_id, plan):
        """Raise DowngradeBlocked if current usage does not fit ``plan``."""
        usage = self.seat_usage(clinic_id)
        over = []
        if plan.max_doctors is not None and usage.doctors > plan.max_doctors:
            over.append(f"{usage.doctors} doctors (limit {plan.max_doctors})")
        if plan.max_staff is not None and usage.staff > plan.max_staff:
            over.append(f"{usage.staff} staff members (limit {plan.max_staff})")
        if over:
            raise DowngradeBlocked(
                f"Cannot move to {plan.name}: clinic has " + ' and '.join(over),
                usage=usage.to_dict(),
                maxDoctors=plan.max_doctors,
                maxStaff=plan.max_staff,
            )
        return usage

    def expire_overdue_trials(self):
        """Sweep every overdue trial into past_due. Returns how many were moved."""
        now = self._clock()
        expired = 0
        for subscription in self.store.list_expired_trials(now):
            if self._expire_trial(subscription.clinic_id, now):
                expired += 1
        return expired
