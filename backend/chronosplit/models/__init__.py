from .configuration import Configuration
from .audit import AuditLogEntry
from .shop_session import ShopSession

__all__ = [
    'Configuration',
    'AuditLogEntry',
    'ShopSession',
]
