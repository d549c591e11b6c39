from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.database.database import get_db
from app.schemas.whatsapp import DispatchRequest, DispatchResponse, ErrorResponse, SweepResponse
from app.services.config_store import ConfigLoader, get_config_loader
from app.services.dispatcher import NotificationDispatcher
from app.services.sweeper import QueueSweeper
from app.services.webhook_client import WebhookClient, get_webhook_client

router = APIRouter(tags=["whatsapp"])
logger = structlog.get_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Integration misconfigured or no WhatsApp number"},
    404: {"model": ErrorResponse, "description": "Profile or products not found"},
    500: {"model": ErrorResponse, "description": "Unexpected error"},
}


@router.post("/send-whatsapp-notification", response_model=DispatchResponse, responses=ERROR_RESPONSES)
async def send_whatsapp_notification(
    request: DispatchRequest,
    origin: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    webhook_client: WebhookClient = Depends(get_webhook_client),
    config_loader: ConfigLoader = Depends(get_config_loader)
):
    """Record and send the purchase confirmation for every product of an order"""
    logger.info(
        "Dispatch requested",
        order_id=request.order_id,
        user_id=request.user_id,
        product_ids=request.product_ids
    )

    dispatcher = NotificationDispatcher(db, webhook_client, config_loader)
    summary = await dispatcher.dispatch_order_notifications(
        order_id=request.order_id,
        user_id=request.user_id,
        product_ids=request.product_ids,
        origin=origin
    )

    if summary.disabled:
        return DispatchResponse(message="n8n integration disabled", products_processed=0)

    return DispatchResponse(
        message="WhatsApp notifications processed",
        products_processed=summary.products_processed
    )


@router.post("/process-whatsapp-queue", response_model=SweepResponse, responses=ERROR_RESPONSES)
async def process_whatsapp_queue(
    origin: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    webhook_client: WebhookClient = Depends(get_webhook_client),
    config_loader: ConfigLoader = Depends(get_config_loader)
):
    """Retry every notification that is still pending or awaiting retry"""
    sweeper = QueueSweeper(db, webhook_client, config_loader)
    summary = await sweeper.process_pending_queue(origin=origin)

    return SweepResponse(
        message=summary.message,
        processed=summary.processed,
        errors=summary.errors,
        total=summary.total,
        skipped=summary.skipped
    )
