"""
Endpoints backing the admin console WhatsApp screen
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.crud import notifications as notification_crud
from app.database.database import get_db
from app.models import NotificationStatus
from app.schemas.whatsapp import (
    NotificationListResponse,
    NotificationResponse,
    NotificationStatsResponse,
    WhatsAppConfigResponse,
    WhatsAppConfigUpdate,
)
from app.services.config_store import (
    ConfigLoader,
    KEY_DELAY_MINUTES,
    KEY_ENABLED,
    KEY_MESSAGE_TEMPLATE,
    KEY_WEBHOOK_URL,
    WhatsAppConfig,
    get_config_loader,
)

router = APIRouter(prefix="/admin/whatsapp", tags=["admin"])
logger = structlog.get_logger(__name__)


def _config_response(config: WhatsAppConfig) -> WhatsAppConfigResponse:
    return WhatsAppConfigResponse(
        enabled=config.enabled,
        webhook_url=config.webhook_url,
        message_template=config.message_template,
        delay_minutes=config.delay_minutes,
        state=config.state.value
    )


@router.get("/config", response_model=WhatsAppConfigResponse)
async def get_whatsapp_config(
    db: AsyncSession = Depends(get_db),
    config_loader: ConfigLoader = Depends(get_config_loader)
):
    """Get the integration settings"""
    config = await config_loader.load(db)
    return _config_response(config)


@router.put("/config", response_model=WhatsAppConfigResponse)
async def update_whatsapp_config(
    update: WhatsAppConfigUpdate,
    db: AsyncSession = Depends(get_db),
    config_loader: ConfigLoader = Depends(get_config_loader)
):
    """Update the integration settings; omitted fields are left unchanged"""
    values = {}
    if update.enabled is not None:
        values[KEY_ENABLED] = update.enabled
    if update.webhook_url is not None:
        values[KEY_WEBHOOK_URL] = update.webhook_url.strip()
    if update.message_template is not None:
        values[KEY_MESSAGE_TEMPLATE] = update.message_template
    if update.delay_minutes is not None:
        # stored as a numeric string, like the console always did
        values[KEY_DELAY_MINUTES] = str(update.delay_minutes)

    config = await config_loader.save(db, values)
    logger.info("WhatsApp config updated", keys=sorted(values), state=config.state.value)
    return _config_response(config)


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200, description="Number of records to return"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    status: Optional[NotificationStatus] = Query(None, description="Only records in this status"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent notification records first"""
    notifications = await notification_crud.get_recent_notifications(
        db, limit=limit, offset=offset, status=status
    )
    total = await notification_crud.count_notifications(db, status=status)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total
    )


@router.get("/stats", response_model=NotificationStatsResponse)
async def notification_stats(db: AsyncSession = Depends(get_db)):
    """Record counts per status"""
    stats = await notification_crud.get_notification_stats(db)
    return NotificationStatsResponse(**stats)
