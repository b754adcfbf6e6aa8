from . import email_service
from . import account_service
from . import staff_service
from . import billing_service
from . import admin_service

from .email_service import send_email, send_invite_email, send_verification_email, send_welcome_email

__all__ = [
    "account_service",
    "staff_service",
    "billing_service",
    "admin_service",
    "email_service",
    # Email Services
    "send_email",
    "send_invite_email",
    "send_verification_email",
    "send_welcome_email",
]
