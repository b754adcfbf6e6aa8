"""
Subscription plans and per-clinic subscriptions.
"""
import enum
import json

from clinicdesk.extensions import db
from clinicdesk.errors import InvalidSubscriptionTransition
from .base import TimestampMixin, utcnow


class SubscriptionStatus(str, enum.Enum):
    TRIALING = 'trialing'
    ACTIVE = 'active'
    PAST_DUE = 'past_due'
    CANCELED = 'canceled'


ALLOWED_TRANSITIONS = {
    SubscriptionStatus.TRIALING: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.PAST_DUE,
    }),
    SubscriptionStatus.PAST_DUE: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.CANCELED: frozenset(),
}


class SubscriptionPlan(db.Model):
    __tablename__ = 'subscription_plans'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    # Prices in cents
    price_monthly = db.Column(db.Integer, nullable=False, default=0)
    price_yearly = db.Column(db.Integer, nullable=False, default=0)
    # NULL means unlimited
    max_doctors = db.Column(db.Integer, nullable=True)
    max_staff = db.Column(db.Integer, nullable=True)
    multi_clinic = db.Column(db.Boolean, default=False, nullable=False)
    features = db.Column(db.Text, nullable=True)  # JSON list of feature tags
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def feature_set(self):
        if not self.features:
            return frozenset()
        return frozenset(json.loads(self.features))

    def has_feature(self, tag):
        return tag in self.feature_set

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'priceMonthly': self.price_monthly,
            'priceYearly': self.price_yearly,
            'maxDoctors': self.max_doctors,
            'maxStaff': self.max_staff,
            'multiClinic': self.multi_clinic,
            'features': sorted(self.feature_set),
        }

    def __repr__(self):
        return f"<SubscriptionPlan {self.name}>"


class Subscription(db.Model, TimestampMixin):
    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    # One subscription per clinic
    clinic_id = db.Column(db.Integer, db.ForeignKey('clinics.id', ondelete='CASCADE'), unique=True, nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('subscription_plans.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, index=True)
    billing_cycle = db.Column(db.String(10), nullable=False, default='monthly')

    trial_ends_at = db.Column(db.DateTime, nullable=True)
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)

    clinic = db.relationship('Clinic', back_populates='subscription')
    plan = db.relationship('SubscriptionPlan', lazy='joined')

    @property
    def status_enum(self):
        return SubscriptionStatus(self.status)

    def can_transition_to(self, status):
        status = SubscriptionStatus(status)
        current = self.status_enum
        return status == current or status in ALLOWED_TRANSITIONS[current]

    def transition_to(self, status):
        """Move to ``status`` if the state machine allows it."""
        status = SubscriptionStatus(status)
        if not self.can_transition_to(status):
            raise InvalidSubscriptionTransition(self.status, status.value)
        self.status = status.value

    def trial_expired(self, now):
        return (
            self.status_enum == SubscriptionStatus.TRIALING
            and self.trial_ends_at is not None
            and now > self.trial_ends_at
        )

    def trial_days_left(self, now):
        if self.status_enum != SubscriptionStatus.TRIALING or self.trial_ends_at is None:
            return None
        remaining = self.trial_ends_at - now
        # ceil to whole days, never negative
        days = -(-remaining.total_seconds() // 86400)
        return max(int(days), 0)

    def to_dict(self, now=None):
        now = now or utcnow()
        return {
            'id': self.id,
            'clinicId': self.clinic_id,
            'status': self.status,
            'planName': self.plan.name if self.plan else None,
            'billingCycle': self.billing_cycle,
            'trialEndsAt': self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            'trialDaysLeft': self.trial_days_left(now),
            'currentPeriodStart': self.current_period_start.isoformat() if self.current_period_start else None,
            'currentPeriodEnd': self.current_period_end.isoformat() if self.current_period_end else None,
            'endsAt': self.ends_at.isoformat() if self.ends_at else None,
        }

    def __repr__(self):
        return f"<Subscription clinic={self.clinic_id} status={self.status}>"
