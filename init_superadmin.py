#!/usr/bin/env python3
"""
Bootstrap a super admin account.

Run with:
    SUPERADMIN_EMAIL=ops@example.com SUPERADMIN_PASSWORD=... python3 init_superadmin.py

Seeds roles and plans first, then creates the user if needed and grants
SUPER_ADMIN on the System clinic. Running it again is harmless.
"""
import os
import sys

from clinicdesk import create_app
from clinicdesk.components import get_components
from clinicdesk.models import RoleName
from clinicdesk.seeds import seed_reference_data
from clinicdesk.services.admin_service import GRANT_SUPER_ADMIN
from clinicdesk.utils.audit import log_audit


def create_superadmin(email, password, full_name):
    """Create or promote ``email``. Returns the user's id."""
    store = get_components().store
    with store.transaction():
        user = store.find_user(email=email)
        if user is None:
            user = store.create_user(email, password, full_name, email_verified=True)
            print(f"  ✓ Created user {user.email}")
        else:
            print(f"  - User {user.email} already exists (promoting)")
        system_clinic = store.find_or_create_system_clinic()
        store.create_clinic_user_role(user.id, system_clinic.id, RoleName.SUPER_ADMIN)
        log_audit('user', GRANT_SUPER_ADMIN, user_id=user.id,
                  clinic_id=system_clinic.id, entity_id=user.id,
                  details={'source': 'init_superadmin'})
    return user.id


def main():
    email = os.getenv('SUPERADMIN_EMAIL')
    password = os.getenv('SUPERADMIN_PASSWORD')
    full_name = os.getenv('SUPERADMIN_NAME', 'Super Admin')
    if not email or not password:
        print("SUPERADMIN_EMAIL and SUPERADMIN_PASSWORD must be set", file=sys.stderr)
        return 1

    app = create_app()
    with app.app_context():
        print("=" * 60)
        print("Initializing Super Admin")
        print("=" * 60)
        seed_reference_data()
        user_id = create_superadmin(email, password, full_name)
        print("=" * 60)
        print(f"✅ User {user_id} is a Super Admin")
        print("=" * 60)
    return 0


if __name__ == '__main__':
    sys.exit(main())
