from flask import Blueprint, jsonify, request

from clinicdesk.components import get_components
from clinicdesk.services import account_service
from clinicdesk.utils.decorators import current_principal, require_auth
from clinicdesk.utils.validation import (
    get_json_body,
    normalize_email,
    optional_text,
    require_text_fields,
    validate_password,
)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _session_response(payload, status=200):
    """JSON envelope plus the httpOnly session cookie."""
    response = jsonify({'success': True, 'data': payload})
    get_components().resolver.set_cookie(response, payload['token'])
    return response, status


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """
    Create an account, its clinic and a trial subscription.
    Body: { "email", "password", "fullName" }
    """
    data = get_json_body()
    email, password, full_name = require_text_fields(data, 'email', 'password', 'fullName')
    payload = account_service.signup(
        normalize_email(email),
        validate_password(password),
        full_name.strip(),
    )
    return _session_response(payload, 201)


@auth_bp.route('/google-signup', methods=['POST'])
def google_signup():
    """
    Sign up with a Google ID token from the web client.
    Body: { "credential": "<Google ID token>" }
    """
    data = get_json_body()
    payload = account_service.google_signup(data.get('credential'))
    return _session_response(payload, 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login endpoint - returns the session and sets the cookie"""
    data = get_json_body()
    email, password = require_text_fields(data, 'email', 'password')
    payload = account_service.login(normalize_email(email), password)
    return _session_response(payload)


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Sessions are stateless; logging out clears the cookie"""
    response = jsonify({'success': True, 'message': 'Logged out'})
    get_components().resolver.clear_cookie(response)
    return response, 200


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    """Current user with roles re-read from the database; re-issues the session"""
    payload = account_service.refresh_session(current_principal())
    return _session_response(payload)


@auth_bp.route('/verify-email', methods=['GET'])
def verify_email():
    user = account_service.verify_email(request.args.get('token'))
    return jsonify({
        'success': True,
        'message': 'Email verified successfully',
        'data': user,
    }), 200


@auth_bp.route('/resend-verification', methods=['POST'])
def resend_verification():
    """
    Body: { "email": "user@example.com" }
    Same answer whether or not the address exists.
    """
    data = get_json_body()
    (email,) = require_text_fields(data, 'email')
    account_service.resend_verification(normalize_email(email))
    return jsonify({
        'success': True,
        'message': 'If this email is registered, a verification link has been sent.',
    }), 200


@auth_bp.route('/accept-invite', methods=['POST'])
def accept_invite():
    """
    Body: { "token", "password"?, "fullName"? }
    password and fullName are required when the invitee has no account yet.
    """
    data = get_json_body()
    password = data.get('password')
    if password:
        validate_password(password)
    payload = account_service.accept_invite(
        data.get('token'),
        password=password,
        full_name=optional_text(data, 'fullName'),
    )
    return _session_response(payload)


@auth_bp.route('/profile', methods=['GET'])
@require_auth
def get_profile():
    return jsonify({
        'success': True,
        'data': account_service.get_profile(current_principal().user_id),
    }), 200


@auth_bp.route('/profile', methods=['POST'])
@require_auth
def update_profile():
    """Body: { "fullName"?, "email"?, "profileImage"?, "password"? }"""
    data = get_json_body()
    email = normalize_email(data['email']) if data.get('email') else None
    password = validate_password(data['password']) if data.get('password') else None
    user = account_service.update_profile(
        current_principal().user_id,
        full_name=optional_text(data, 'fullName'),
        email=email,
        profile_image=data.get('profileImage'),
        password=password,
    )
    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'data': user,
    }), 200
