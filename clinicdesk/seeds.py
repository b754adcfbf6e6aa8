"""
Reference data: the closed role set and the plan catalogue.

Safe to run repeatedly; rows that already exist are left alone.
"""
import json
import logging

from clinicdesk.extensions import db
from clinicdesk.models import Role, RoleName, SubscriptionPlan

logger = logging.getLogger(__name__)

STARTER_FEATURES = ["basic_appointments", "basic_prescriptions", "basic_invoicing"]
GROWTH_FEATURES = STARTER_FEATURES + ["patient_history", "reports"]
PRO_FEATURES = GROWTH_FEATURES + ["multi_clinic", "api_access", "priority_support"]

SUBSCRIPTION_PLANS = [
    {
        "name": "STARTER",
        "price_monthly": 0,
        "price_yearly": 0,
        "max_doctors": 1,
        "max_staff": 2,
        "multi_clinic": False,
        "features": STARTER_FEATURES,
    },
    {
        "name": "GROWTH",
        "price_monthly": 2900,
        "price_yearly": 29000,
        "max_doctors": 3,
        "max_staff": 10,
        "multi_clinic": False,
        "features": GROWTH_FEATURES,
    },
    {
        "name": "PRO",
        "price_monthly": 7900,
        "price_yearly": 79000,
        "max_doctors": None,
        "max_staff": None,
        "multi_clinic": True,
        "features": PRO_FEATURES,
    },
]


def seed_roles():
    """Insert any missing role rows. Returns the number created."""
    existing = {name for (name,) in db.session.execute(db.select(Role.name))}
    created = 0
    for role in RoleName:
        if role.value not in existing:
            db.session.add(Role(name=role.value))
            created += 1
    return created


def seed_plans(plans=SUBSCRIPTION_PLANS):
    """Insert any missing plans. Returns the number created."""
    existing = {name for (name,) in db.session.execute(db.select(SubscriptionPlan.name))}
    created = 0
    for plan in plans:
        if plan["name"] in existing:
            continue
        db.session.add(SubscriptionPlan(
            name=plan["name"],
            price_monthly=plan["price_monthly"],
            price_yearly=plan["price_yearly"],
            max_doctors=plan["max_doctors"],
            max_staff=plan["max_staff"],
            multi_clinic=plan["multi_clinic"],
            features=json.dumps(plan["features"]),
        ))
        created += 1
    return created


def seed_reference_data():
    """Seed roles and plans in one commit."""
    try:
        roles = seed_roles()
        plans = seed_plans()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Seeded %d roles and %d subscription plans", roles, plans)
    return roles, plans
