"""
Plan changes for a clinic's subscription.

No payment provider is involved: an upgrade takes effect immediately. A
downgrade is checked against current usage before anything is written.
"""
import logging
from datetime import timedelta

from clinicdesk.components import get_components
from clinicdesk.errors import (
    Conflict,
    InvalidSubscriptionTransition,
    NotFound,
    SubscriptionRequired,
    ValidationError,
)
from clinicdesk.models import SubscriptionStatus
from clinicdesk.utils.audit import log_audit

logger = logging.getLogger(__name__)

BILLING_CYCLES = ('monthly', 'yearly')


def list_plans():
    return [plan.to_dict() for plan in get_components().store.list_plans()]


def _find_plan(plan_name):
    if not plan_name:
        raise ValidationError('Plan name is required')
    plan = get_components().store.find_plan(name=plan_name)
    if plan is None:
        raise NotFound('Plan not found')
    return plan


def _locked_subscription(clinic_id):
    subscription = get_components().store.find_subscription(clinic_id, for_update=True)
    if subscription is None:
        raise SubscriptionRequired()
    return subscription


def subscription_details(clinic_id):
    c = get_components()
    subscription = c.store.find_subscription(clinic_id)
    if subscription is None:
        raise SubscriptionRequired()
    plan = subscription.plan
    usage = c.gate.seat_usage(clinic_id)
    return {
        'subscription': subscription.to_dict(now=c.clock()),
        'plan': plan.to_dict(),
        'usage': {
            'doctors': usage.doctors,
            'totalStaff': usage.staff,
            'maxDoctors': plan.max_doctors,
            'maxStaff': plan.max_staff,
        },
    }


def upgrade(principal, clinic_id, plan_name, billing_cycle='monthly'):
    c = get_components()
    if billing_cycle not in BILLING_CYCLES:
        raise ValidationError('Billing cycle must be monthly or yearly')
    plan = _find_plan(plan_name)

    with c.store.transaction():
        subscription = _locked_subscription(clinic_id)
        current = subscription.plan
        if plan.price_monthly <= current.price_monthly:
            raise ValidationError('Use the downgrade endpoint to switch to a lower plan')

        now = c.clock()
        subscription.transition_to(SubscriptionStatus.ACTIVE)
        subscription.plan_id = plan.id
        subscription.plan = plan
        subscription.billing_cycle = billing_cycle
        subscription.trial_ends_at = None
        subscription.ends_at = None
        subscription.current_period_start = now
        subscription.current_period_end = now + timedelta(days=365 if billing_cycle == 'yearly' else 30)
        log_audit('subscription', 'upgrade', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=subscription.id, details={'from': current.name, 'to': plan.name,
                                                      'billingCycle': billing_cycle})

    logger.info("Clinic %s upgraded %s -> %s (%s)", clinic_id, current.name, plan.name, billing_cycle)
    return subscription_details(clinic_id)


def downgrade(principal, clinic_id, plan_name):
    c = get_components()
    plan = _find_plan(plan_name)

    with c.store.transaction():
        subscription = _locked_subscription(clinic_id)
        if subscription.status_enum == SubscriptionStatus.CANCELED:
            raise Conflict('A canceled subscription cannot change plans')
        current = subscription.plan
        if plan.price_monthly >= current.price_monthly:
            raise ValidationError('Use the upgrade endpoint to switch to a higher plan')

        # raises before any write
        c.gate.check_downgrade(clinic_id, plan)

        subscription.plan_id = plan.id
        subscription.plan = plan
        log_audit('subscription', 'downgrade', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=subscription.id, details={'from': current.name, 'to': plan.name})

    logger.info("Clinic %s downgraded %s -> %s", clinic_id, current.name, plan.name)
    return subscription_details(clinic_id)


def cancel(principal, clinic_id):
    c = get_components()
    with c.store.transaction():
        subscription = _locked_subscription(clinic_id)
        if subscription.status_enum == SubscriptionStatus.CANCELED:
            raise ValidationError('Subscription is already canceled')
        subscription.transition_to(SubscriptionStatus.CANCELED)
        subscription.ends_at = c.clock() + timedelta(days=c.cancel_grace_days)
        log_audit('subscription', 'cancel', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=subscription.id)

    logger.info("Clinic %s canceled its subscription", clinic_id)
    return {
        'message': 'Subscription canceled. Access continues until the end of your billing period.',
        'endsAt': subscription.ends_at.isoformat(),
    }


def assign_plan(principal, clinic_id, plan_name=None, status=None, trial_ends_at=None):
    """
    Super-admin override of a clinic's plan and status.

    Status changes still follow the subscription state machine; a clinic
    without a subscription gets a new one.
    """
    c = get_components()
    store = c.store
    plan = _find_plan(plan_name) if plan_name else None
    target = None
    if status:
        try:
            target = SubscriptionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown subscription status: {status}") from None

    with store.transaction():
        if store.find_clinic(clinic_id) is None:
            raise NotFound('Clinic not found')
        subscription = store.find_subscription(clinic_id, for_update=True)
        if subscription is None:
            if plan is None:
                raise ValidationError('Plan name is required')
            subscription = store.upsert_subscription(
                clinic_id,
                plan_id=plan.id,
                status=(target or SubscriptionStatus.ACTIVE).value,
                trial_ends_at=trial_ends_at,
                current_period_start=c.clock(),
            )
        else:
            if subscription.status_enum == SubscriptionStatus.CANCELED:
                raise InvalidSubscriptionTransition(subscription.status, (target or subscription.status_enum).value)
            if target is not None:
                subscription.transition_to(target)
            if plan is not None:
                subscription.plan_id = plan.id
                subscription.plan = plan
            if trial_ends_at is not None:
                subscription.trial_ends_at = trial_ends_at
        log_audit('subscription', 'assign', user_id=principal.user_id, clinic_id=clinic_id,
                  entity_id=subscription.id,
                  details={'plan': plan_name, 'status': status,
                           'trialEndsAt': trial_ends_at.isoformat() if trial_ends_at else None})

    logger.info("Super admin %s set clinic %s subscription to %s/%s",
                principal.user_id, clinic_id, plan_name, status)
    return subscription.to_dict(now=c.clock())
