from .tenant_store import TenantStore
from .retry import retry_on_disconnect

__all__ = ["TenantStore", "retry_on_disconnect"]
