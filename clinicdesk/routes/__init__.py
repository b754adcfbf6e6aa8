from .auth import auth_bp
from .clinics import clinics_bp
from .billing import billing_bp
from .super_admin import super_admin_bp
from .patient import patient_bp
from .appointment import appointment_bp
from .prescription import prescription_bp
from .invoice import invoice_bp
from .health import health_bp

__all__ = [
    'auth_bp', 'clinics_bp', 'billing_bp', 'super_admin_bp', 'patient_bp', 'appointment_bp',
    'prescription_bp', 'invoice_bp', 'health_bp',
]
