"""
Health check endpoints for monitoring and load balancers
"""
import logging

from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

from clinicdesk.extensions import db
from clinicdesk.models.base import utcnow

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
@health_bp.route('/ping', methods=['GET'])
def health_check():
    """Basic health check - no database connection"""
    return jsonify({
        'status': 'healthy',
        'timestamp': utcnow().isoformat(),
        'service': 'clinicdesk'
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness check - includes database connection"""
    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'connected'
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning("Readiness check failed: %s", e)
        db_status = 'unavailable'

    return jsonify({
        'status': 'ready' if db_status == 'connected' else 'not_ready',
        'database': db_status,
        'timestamp': utcnow().isoformat()
    }), 200 if db_status == 'connected' else 503


@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Liveness check for Kubernetes/containers"""
    return jsonify({
        'status': 'alive',
        'timestamp': utcnow().isoformat()
    }), 200
