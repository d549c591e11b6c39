from .whatsapp import (
    DispatchRequest,
    DispatchResponse,
    SweepResponse,
    ErrorResponse,
    WhatsAppConfigResponse,
    WhatsAppConfigUpdate,
    NotificationResponse,
    NotificationListResponse,
    NotificationStatsResponse,
)

__all__ = [
    "DispatchRequest",
    "DispatchResponse",
    "SweepResponse",
    "ErrorResponse",
    "WhatsAppConfigResponse",
    "WhatsAppConfigUpdate",
    "NotificationResponse",
    "NotificationListResponse",
    "NotificationStatsResponse",
]
