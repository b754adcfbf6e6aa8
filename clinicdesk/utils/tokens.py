"""
Random tokens for invites, email verification and temporary passwords.
"""
import hashlib
import secrets
import string

INVITE_TOKEN_BYTES = 32
TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_token(nbytes=INVITE_TOKEN_BYTES):
    """Hex-encoded random token (``nbytes`` bytes of entropy)."""
    return secrets.token_hex(nbytes)


def hash_token(token):
    """SHA-256 hex digest; only this form is ever stored."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_temporary_password(length=12):
    return ''.join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))
