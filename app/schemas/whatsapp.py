from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Dict, List, Optional

from app.models import NotificationStatus


class DispatchRequest(BaseModel):
    """Request schema for dispatching the notifications of a paid order"""
    order_id: str = Field(..., min_length=1, description="Order that was paid")
    user_id: str = Field(..., min_length=1, description="Buyer profile ID")
    product_ids: List[str] = Field(..., min_length=1, description="Purchased products, at least one")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "order_id": "5b0f8c1e-0d7a-4d2b-9d4e-3f0f1c2a9e11",
                "user_id": "a3c1d2e4-7f8b-4c9d-8e1f-2a3b4c5d6e7f",
                "product_ids": ["b7e2f9a0-1c3d-4e5f-8a9b-0c1d2e3f4a5b"]
            }
        }
    )


class DispatchResponse(BaseModel):
    message: str
    products_processed: int

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "WhatsApp notifications processed",
                "products_processed": 1
            }
        }
    )


class SweepResponse(BaseModel):
    message: str
    processed: int = 0
    errors: int = 0
    total: int = 0
    skipped: int = 0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "Queue processing completed",
                "processed": 3,
                "errors": 1,
                "total": 4,
                "skipped": 0
            }
        }
    )


class ErrorResponse(BaseModel):
    error: str


class WhatsAppConfigResponse(BaseModel):
    """Current integration settings as the dispatch paths see them"""
    enabled: bool
    webhook_url: str
    message_template: str
    delay_minutes: int
    state: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "enabled": True,
                "webhook_url": "https://n8n.example.com/webhook/whatsapp",
                "message_template": "Olá {nome}! Sua compra de \"{produto}\" foi confirmada!",
                "delay_minutes": 5,
                "state": "ready"
            }
        }
    )


class WhatsAppConfigUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value"""
    enabled: Optional[bool] = Field(None, description="Turn the n8n integration on or off")
    webhook_url: Optional[str] = Field(None, description="n8n webhook URL, empty to unset")
    message_template: Optional[str] = Field(None, description="Template with {nome}, {produto}, {email}, {link_area_membros}")
    delay_minutes: Optional[int] = Field(None, ge=0, description="Suggested interval between queue sweeps")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "enabled": True,
                "webhook_url": "https://n8n.example.com/webhook/whatsapp"
            }
        }
    )


class NotificationResponse(BaseModel):
    """Response schema for one notification record"""
    id: str
    order_id: Optional[str]
    user_id: Optional[str]
    product_id: Optional[str]
    whatsapp_number: Optional[str]
    message_sent: Optional[str]
    n8n_webhook_url: Optional[str]
    status: NotificationStatus
    attempts: int
    max_attempts: int
    error_message: Optional[str]
    sent_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    # matching records overall, not just this page
    total: int


class NotificationStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 12,
                "by_status": {"pending": 1, "sent": 9, "failed": 1, "retry": 1}
            }
        }
    )
