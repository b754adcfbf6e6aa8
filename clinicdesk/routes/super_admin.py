"""
Super Admin routes.

Platform-wide management of clinics, users, role associations and
subscriptions. Every route requires SUPER_ADMIN.
"""
from flask import Blueprint, jsonify

from clinicdesk.errors import ValidationError
from clinicdesk.services import admin_service, billing_service
from clinicdesk.utils.decorators import current_principal, require_super_admin
from clinicdesk.utils.validation import get_json_body, parse_datetime, require_fields

super_admin_bp = Blueprint("super_admin", __name__, url_prefix="/api/super-admin")


def _int_field(data, name):
    try:
        return int(data[name])
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer") from None


@super_admin_bp.route("/clinics", methods=["GET"])
@require_super_admin
def list_clinics():
    """All clinics with staff (super admins left out) and subscription."""
    return jsonify({"success": True, "data": admin_service.list_clinics()}), 200


@super_admin_bp.route("/clinics/<int:clinic_id>", methods=["PATCH"])
@require_super_admin
def update_clinic(clinic_id):
    clinic = admin_service.update_clinic(current_principal(), clinic_id, get_json_body())
    return jsonify({"success": True, "data": clinic}), 200


@super_admin_bp.route("/clinics/<int:clinic_id>", methods=["DELETE"])
@require_super_admin
def delete_clinic(clinic_id):
    admin_service.delete_clinic(current_principal(), clinic_id)
    return jsonify({"success": True, "message": "Clinic removed successfully"}), 200


@super_admin_bp.route("/clinics/<int:clinic_id>/subscription", methods=["PATCH"])
@require_super_admin
def update_clinic_subscription(clinic_id):
    """
    Body JSON:
    {
      "planName": "PRO",                      # optional
      "status": "active",                     # optional, must be a legal transition
      "trialEndsAt": "2026-01-31T00:00:00Z"   # optional
    }
    """
    data = get_json_body()
    if not any(data.get(key) for key in ("planName", "status", "trialEndsAt")):
        raise ValidationError("Provide planName, status or trialEndsAt")
    subscription = billing_service.assign_plan(
        current_principal(),
        clinic_id,
        plan_name=data.get("planName"),
        status=data.get("status"),
        trial_ends_at=parse_datetime(data.get("trialEndsAt"), "trialEndsAt"),
    )
    return jsonify({"success": True, "data": subscription}), 200


@super_admin_bp.route("/users", methods=["GET"])
@require_super_admin
def list_users():
    return jsonify({"success": True, "data": admin_service.list_users()}), 200


@super_admin_bp.route("/users/<int:user_id>", methods=["PATCH"])
@require_super_admin
def update_user(user_id):
    user = admin_service.update_user(current_principal(), user_id, get_json_body())
    return jsonify({"success": True, "data": user}), 200


@super_admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_super_admin
def delete_user(user_id):
    admin_service.delete_user(current_principal(), user_id)
    return jsonify({"success": True, "message": "User removed successfully"}), 200


@super_admin_bp.route("/users/<int:user_id>/verify-email", methods=["POST"])
@require_super_admin
def verify_user_email(user_id):
    user = admin_service.verify_user_email(current_principal(), user_id)
    return jsonify({"success": True, "data": user}), 200


@super_admin_bp.route("/make-superadmin", methods=["POST"])
@require_super_admin
def make_super_admin():
    """Body: { "userId": 5 }"""
    data = get_json_body()
    require_fields(data, "userId")
    user = admin_service.make_super_admin(current_principal(), _int_field(data, "userId"))
    return jsonify({"success": True, "message": "User is now a Super Admin", "data": user}), 200


@super_admin_bp.route("/users/<int:user_id>/clinics", methods=["POST"])
@require_super_admin
def add_user_to_clinic(user_id):
    """Body: { "clinicId": 3, "role": "DOCTOR" }. Not counted against seat limits."""
    data = get_json_body()
    _, role = require_fields(data, "clinicId", "role")
    admin_service.add_user_to_clinic(current_principal(), user_id, _int_field(data, "clinicId"), role)
    return jsonify({"success": True, "message": "User associated with clinic successfully"}), 200


@super_admin_bp.route("/users/<int:user_id>/clinics/<int:clinic_id>", methods=["DELETE"])
@require_super_admin
def remove_user_from_clinic(user_id, clinic_id):
    admin_service.remove_user_from_clinic(current_principal(), user_id, clinic_id)
    return jsonify({"success": True, "message": "User removed from clinic"}), 200


@super_admin_bp.route("/plans", methods=["GET"])
@require_super_admin
def list_plans():
    return jsonify({"success": True, "data": billing_service.list_plans()}), 200
