"""
Audit logging: signups, invites, staff changes, subscription changes and
super-admin actions.
"""
import json
import logging
from typing import Any, Optional

from clinicdesk.extensions import db
from clinicdesk.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[int] = None,
    clinic_id: Optional[int] = None,
    entity_id: Optional[Any] = None,
    details: Optional[dict] = None,
) -> AuditLog:
    """
    Append an audit log entry to the current unit of work.

    The entry commits or rolls back with the change it describes.
    """
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        action=action,
        user_id=user_id,
        clinic_id=clinic_id,
        details=json.dumps(details, default=str) if details else None,
    )
    db.session.add(entry)
    logger.debug("Audit %s %s %s by user %s", entity_type, entity_id, action, user_id)
    return entry
