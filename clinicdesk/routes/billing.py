"""
Billing routes for the active clinic's subscription.

There is no payment provider behind these: plan changes apply at once.
"""
from flask import Blueprint, jsonify

from clinicdesk.services import billing_service
from clinicdesk.utils.decorators import current_principal, require_clinic_context, require_role
from clinicdesk.utils.validation import get_json_body, require_fields

billing_bp = Blueprint('billing', __name__, url_prefix='/api/billing')


@billing_bp.route('/subscription', methods=['GET'])
@require_clinic_context
def get_subscription():
    """Subscription, plan and seat usage for the active clinic"""
    details = billing_service.subscription_details(current_principal().clinic_id)
    return jsonify({'success': True, 'data': details}), 200


@billing_bp.route('/plans', methods=['GET'])
def list_plans():
    """Public plan catalogue, cheapest first"""
    return jsonify({'success': True, 'data': billing_service.list_plans()}), 200


@billing_bp.route('/upgrade', methods=['POST'])
@require_role('ADMIN')
def upgrade():
    """Body: { "planName": "GROWTH", "billingCycle": "monthly" | "yearly" }"""
    principal = current_principal()
    data = get_json_body()
    (plan_name,) = require_fields(data, 'planName')
    details = billing_service.upgrade(
        principal,
        principal.clinic_id,
        plan_name,
        billing_cycle=data.get('billingCycle') or 'monthly',
    )
    return jsonify({
        'success': True,
        'message': 'Subscription upgraded successfully',
        'data': details,
    }), 200


@billing_bp.route('/downgrade', methods=['POST'])
@require_role('ADMIN')
def downgrade():
    """Body: { "planName": "STARTER" }. Refused while usage exceeds the plan."""
    principal = current_principal()
    data = get_json_body()
    (plan_name,) = require_fields(data, 'planName')
    details = billing_service.downgrade(principal, principal.clinic_id, plan_name)
    return jsonify({
        'success': True,
        'message': 'Subscription downgraded successfully',
        'data': details,
    }), 200


@billing_bp.route('/cancel', methods=['POST'])
@require_role('ADMIN')
def cancel():
    principal = current_principal()
    result = billing_service.cancel(principal, principal.clinic_id)
    return jsonify({'success': True, 'message': result['message'], 'data': {'endsAt': result['endsAt']}}), 200
