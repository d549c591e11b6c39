"""
The single delivery step shared by the dispatcher and the queue sweeper.

Each call handles exactly one notification record and always returns an
AttemptOutcome; exceptions never escape it, so one bad record cannot cancel
its siblings. Records are handled as plain QueuedNotification snapshots
rather than ORM instances, which stay valid after a session rollback.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import get_settings
from app.crud import notifications as notification_crud
from app.middleware.metrics import whatsapp_delivery_attempts_total
from app.models import WhatsAppNotification
from app.services.renderer import customer_label
from app.services.webhook_client import WebhookClient, build_payload

logger = structlog.get_logger(__name__)


class AttemptResult(str, enum.Enum):
    SENT = "sent"
    RETRY = "retry"
    FAILED = "failed"
    # another worker holds this attempt, or the record left the queue meanwhile
    SKIPPED = "skipped"
    # unexpected exception; record state updated best-effort
    ERROR = "error"


@dataclass(frozen=True)
class AttemptOutcome:
    notification_id: str
    result: AttemptResult
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.result == AttemptResult.SENT


@dataclass(frozen=True)
class QueuedNotification:
    id: str
    order_id: Optional[str]
    user_id: Optional[str]
    product_id: Optional[str]
    whatsapp_number: Optional[str]
    message_template: Optional[str]
    message_sent: Optional[str]
    customer_name: Optional[str]
    customer_email: Optional[str]
    product_title: Optional[str]
    attempts: int
    max_attempts: int

    @classmethod
    def from_record(cls, record: WhatsAppNotification) -> "QueuedNotification":
        return cls(
            id=record.id,
            order_id=record.order_id,
            user_id=record.user_id,
            product_id=record.product_id,
            whatsapp_number=record.whatsapp_number,
            message_template=record.message_template,
            message_sent=record.message_sent,
            customer_name=record.customer_name,
            customer_email=record.customer_email,
            product_title=record.product_title,
            attempts=record.attempts or 0,
            max_attempts=record.max_attempts,
        )


async def _claim(db: AsyncSession, item: QueuedNotification) -> bool:
    return await notification_crud.claim_attempt(
        db,
        item.id,
        item.attempts,
        lease_seconds=get_settings().claim_lease_seconds
    )


async def attempt_delivery(
    db: AsyncSession,
    client: WebhookClient,
    item: QueuedNotification,
    endpoint: str,
    triggered_from: str,
    source: str
) -> AttemptOutcome:
    """Claim the next attempt of ``item``, call the webhook and record the outcome"""
    claimed = False
    try:
        claimed = await _claim(db, item)
        if not claimed:
            logger.info(
                "Notification attempt already taken, skipping",
                notification_id=item.id,
                attempts=item.attempts
            )
            return _count(source, AttemptOutcome(item.id, AttemptResult.SKIPPED))

        attempts = item.attempts + 1
        payload = build_payload(
            notification_id=item.id,
            whatsapp_number=item.whatsapp_number or "",
            message=item.message_sent or "",
            customer_name=customer_label(item.customer_name),
            customer_email=item.customer_email or "",
            product_title=item.product_title or "",
            order_id=item.order_id,
            user_id=item.user_id,
            triggered_from=triggered_from,
        )

        result = await client.deliver(endpoint, payload)

        if result.ok:
            await notification_crud.mark_sent(db, item.id, n8n_webhook_url=endpoint)
            return _count(source, AttemptOutcome(item.id, AttemptResult.SENT))

        status = await notification_crud.mark_attempt_failed(
            db,
            item.id,
            attempts=attempts,
            error_message=result.error.message,
            n8n_webhook_url=endpoint
        )
        if status is None:
            # lease ran out mid-call and another worker owns the record now
            return _count(source, AttemptOutcome(item.id, AttemptResult.SKIPPED, error=result.error.message))
        return _count(source, AttemptOutcome(item.id, AttemptResult(status.value), error=result.error.message))

    except Exception as e:
        logger.error(
            "Error processing notification",
            notification_id=item.id,
            error=str(e),
            exc_info=True
        )
        await record_unexpected_error(db, item, str(e), claimed=claimed)
        return _count(source, AttemptOutcome(item.id, AttemptResult.ERROR, error=str(e)))


async def record_unexpected_error(
    db: AsyncSession,
    item: QueuedNotification,
    error: str,
    claimed: bool
) -> None:
    """
    Charge an attempt for an unexpected failure so a record that keeps blowing
    up still reaches FAILED after max_attempts. Errors here are only logged.
    """
    try:
        await db.rollback()
        if not claimed:
            claimed = await _claim(db, item)
        if claimed:
            await notification_crud.mark_attempt_failed(
                db,
                item.id,
                attempts=item.attempts + 1,
                error_message=error
            )
    except Exception as record_error:
        logger.error(
            "Failed to record notification error",
            notification_id=item.id,
            error=str(record_error)
        )
        await db.rollback()


def _count(source: str, outcome: AttemptOutcome) -> AttemptOutcome:
    whatsapp_delivery_attempts_total.labels(source=source, outcome=outcome.result.value).inc()
    return outcome
