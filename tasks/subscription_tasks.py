"""
Celery tasks for subscription maintenance
"""
import logging

from clinicdesk.components import get_components
from clinicdesk.extensions import celery
from clinicdesk.models.base import utcnow

logger = logging.getLogger(__name__)


@celery.task(name='tasks.expire_trials')
def expire_trials():
    """
    Move trialing subscriptions past their trial end to past_due.

    Each clinic is expired in its own transaction, the same way a
    request hitting an expired trial does it.

    Returns:
        dict: Sweep results
    """
    expired = get_components().gate.expire_overdue_trials()
    if expired:
        logger.info("Expired %d overdue trial(s)", expired)
    return {
        'success': True,
        'expired_count': expired,
        'timestamp': utcnow().isoformat()
    }
