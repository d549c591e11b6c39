from .base import Base
from .notification import WhatsAppNotification, NotificationStatus, DELIVERABLE_STATUSES
from .system_config import SystemConfig
from .catalog import Profile, Product

__all__ = [
    "Base",
    "WhatsAppNotification",
    "NotificationStatus",
    "DELIVERABLE_STATUSES",
    "SystemConfig",
    "Profile",
    "Product",
]
