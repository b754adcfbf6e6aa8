from .clinic import Clinic
from .user import User
from .role import Role, RoleName, ClinicUserRole
from .invite import Invite
from .subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from .patient import Patient
from .appointment import Appointment
from .prescription import Prescription
from .invoice import Invoice, Payment
from .audit_log import AuditLog

__all__ = [
    "Clinic", "User", "Role", "RoleName", "ClinicUserRole", "Invite",
    "Subscription", "SubscriptionPlan", "SubscriptionStatus",
    "Patient", "Appointment", "Prescription", "Invoice", "Payment", "AuditLog",
]
