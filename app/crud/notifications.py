"""
CRUD operations for the WhatsApp notification record store.

State transitions are single-row conditional updates guarded by
``status IN (pending, retry)``, so a record in a terminal state is never
mutated again no matter how many sweeps run concurrently.

A worker claims an attempt by bumping ``attempts`` and setting
``claimed_until`` in one statement. Until that lease passes the record is
neither selected for delivery nor claimable, so a webhook call in flight
cannot be duplicated by a concurrent sweep.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, update, func, case, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.models import WhatsAppNotification, NotificationStatus, DELIVERABLE_STATUSES
from app.models.notification import DEFAULT_MAX_ATTEMPTS

logger = structlog.get_logger(__name__)

DEFAULT_CLAIM_LEASE_SECONDS = 60.0
ABANDONED_ERROR = "Delivery attempt abandoned before its result was recorded"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lease_expired(now: datetime):
    return or_(
        WhatsAppNotification.claimed_until.is_(None),
        WhatsAppNotification.claimed_until <= now
    )

# ============================================================================
# Create operations
# ============================================================================

async def create_notification(
    db: AsyncSession,
    order_id: str,
    user_id: str,
    product_id: str,
    whatsapp_number: str,
    message_template: str,
    message_sent: str,
    n8n_webhook_url: str,
    customer_name: Optional[str] = None,
    customer_email: Optional[str] = None,
    product_title: Optional[str] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
) -> WhatsAppNotification:
    """Insert a new pending notification record"""
    notification = WhatsAppNotification(
        order_id=order_id,
        user_id=user_id,
        product_id=product_id,
        whatsapp_number=whatsapp_number,
        message_template=message_template,
        message_sent=message_sent,
        n8n_webhook_url=n8n_webhook_url,
        customer_name=customer_name,
        customer_email=customer_email,
        product_title=product_title,
        status=NotificationStatus.PENDING,
        attempts=0,
        max_attempts=max_attempts,
    )

    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    logger.info(
        "Created notification",
        notification_id=notification.id,
        order_id=order_id,
        product_id=product_id
    )
    return notification

# ============================================================================
# Read operations
# ============================================================================

async def get_notification_by_id(
    db: AsyncSession,
    notification_id: str
) -> Optional[WhatsAppNotification]:
    """Get notification by ID"""
    result = await db.execute(
        select(WhatsAppNotification)
        .where(WhatsAppNotification.id == notification_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_notification_by_order_and_product(
    db: AsyncSession,
    order_id: str,
    product_id: str
) -> Optional[WhatsAppNotification]:
    """Get the record created for one product of one order, if any"""
    result = await db.execute(
        select(WhatsAppNotification).where(
            WhatsAppNotification.order_id == order_id,
            WhatsAppNotification.product_id == product_id
        ).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_deliverable_notifications(
    db: AsyncSession,
    limit: int = 100
) -> List[WhatsAppNotification]:
    """Unclaimed records still eligible for delivery, oldest first"""
    query = select(WhatsAppNotification).where(
        WhatsAppNotification.status.in_(DELIVERABLE_STATUSES),
        WhatsAppNotification.attempts < WhatsAppNotification.max_attempts,
        _lease_expired(_utcnow())
    ).order_by(
        WhatsAppNotification.created_at.asc()
    ).limit(limit).execution_options(populate_existing=True)

    result = await db.execute(query)
    return list(result.scalars().all())


def _status_filter(query, status: Optional[NotificationStatus]):
    if status:
        query = query.where(WhatsAppNotification.status == status)
    return query


async def get_recent_notifications(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
    status: Optional[NotificationStatus] = None
) -> List[WhatsAppNotification]:
    """Most recent records first (admin log)"""
    query = _status_filter(select(WhatsAppNotification), status)

    query = query.order_by(
        WhatsAppNotification.created_at.desc()
    ).limit(limit).offset(offset).execution_options(populate_existing=True)

    result = await db.execute(query)
    return list(result.scalars().all())


async def count_notifications(
    db: AsyncSession,
    status: Optional[NotificationStatus] = None
) -> int:
    """Number of records, optionally in one status"""
    query = _status_filter(select(func.count(WhatsAppNotification.id)), status)
    result = await db.execute(query)
    return result.scalar_one()

# ============================================================================
# Update operations
# ============================================================================

async def claim_attempt(
    db: AsyncSession,
    notification_id: str,
    observed_attempts: int,
    lease_seconds: float = DEFAULT_CLAIM_LEASE_SECONDS
) -> bool:
    """
    Reserve the next delivery attempt for this worker for ``lease_seconds``.

    Increments ``attempts`` only if nobody else has done so since the record
    was read and no other worker's lease is still running. Returns False when
    the record was taken by a concurrent worker or reached a terminal state in
    the meantime.
    """
    now = _utcnow()
    stmt = (
        update(WhatsAppNotification)
        .where(
            WhatsAppNotification.id == notification_id,
            WhatsAppNotification.attempts == observed_attempts,
            WhatsAppNotification.attempts < WhatsAppNotification.max_attempts,
            WhatsAppNotification.status.in_(DELIVERABLE_STATUSES),
            _lease_expired(now)
        )
        .values(
            attempts=WhatsAppNotification.attempts + 1,
            claimed_until=now + timedelta(seconds=lease_seconds)
        )
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1


async def mark_sent(
    db: AsyncSession,
    notification_id: str,
    n8n_webhook_url: Optional[str] = None
) -> bool:
    """Transition a claimed record to SENT"""
    values = {
        "status": NotificationStatus.SENT,
        "sent_at": _utcnow(),
        "claimed_until": None,
    }
    if n8n_webhook_url:
        values["n8n_webhook_url"] = n8n_webhook_url

    updated = await _transition(db, notification_id, values)
    if updated:
        logger.info("Notification marked as sent", notification_id=notification_id)
    return updated


async def mark_attempt_failed(
    db: AsyncSession,
    notification_id: str,
    attempts: int,
    error_message: str,
    n8n_webhook_url: Optional[str] = None
) -> Optional[NotificationStatus]:
    """
    Record the failure of the attempt this worker claimed. ``attempts`` is the
    counter value the claim produced; if the record has moved past it (the
    lease ran out and another worker claimed) nothing is written and None is
    returned.

    The new status comes from the stored counters: FAILED once
    attempts reach max_attempts, RETRY otherwise.
    """
    values = {
        "status": case(
            (
                WhatsAppNotification.attempts >= WhatsAppNotification.max_attempts,
                NotificationStatus.FAILED.value
            ),
            else_=NotificationStatus.RETRY.value
        ),
        "error_message": error_message,
        "claimed_until": None,
    }
    if n8n_webhook_url:
        values["n8n_webhook_url"] = n8n_webhook_url

    updated = await _transition(
        db,
        notification_id,
        values,
        WhatsAppNotification.attempts == attempts
    )
    if not updated:
        logger.warning(
            "Attempt result arrived after the claim moved on, not recorded",
            notification_id=notification_id,
            attempts=attempts
        )
        return None

    result = await db.execute(
        select(WhatsAppNotification.status).where(WhatsAppNotification.id == notification_id)
    )
    new_status = NotificationStatus(result.scalar_one())
    logger.info(
        "Notification attempt failed",
        notification_id=notification_id,
        attempts=attempts,
        new_status=new_status.value
    )
    return new_status


async def mark_undeliverable(
    db: AsyncSession,
    notification_id: str,
    error_message: str
) -> bool:
    """Terminal failure without a delivery attempt (no destination address)"""
    updated = await _transition(
        db,
        notification_id,
        {"status": NotificationStatus.FAILED, "error_message": error_message, "claimed_until": None}
    )
    if updated:
        logger.warning(
            "Notification marked as undeliverable",
            notification_id=notification_id,
            error=error_message
        )
    return updated


async def fail_abandoned_notifications(db: AsyncSession) -> int:
    """
    Close records whose last attempt was claimed but never reported back
    (worker died mid-call). Only records with no attempts left are touched;
    the others become selectable again once their lease passes.
    """
    now = _utcnow()
    stmt = (
        update(WhatsAppNotification)
        .where(
            WhatsAppNotification.status.in_(DELIVERABLE_STATUSES),
            WhatsAppNotification.attempts >= WhatsAppNotification.max_attempts,
            _lease_expired(now)
        )
        .values(
            status=NotificationStatus.FAILED,
            error_message=ABANDONED_ERROR,
            claimed_until=None
        )
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(stmt)
    await db.commit()
    if result.rowcount:
        logger.warning("Abandoned notifications marked as failed", count=result.rowcount)
    return result.rowcount


async def _transition(db: AsyncSession, notification_id: str, values: Dict, *criteria) -> bool:
    stmt = (
        update(WhatsAppNotification)
        .where(
            WhatsAppNotification.id == notification_id,
            WhatsAppNotification.status.in_(DELIVERABLE_STATUSES),
            *criteria
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1

# ============================================================================
# Statistics operations
# ============================================================================

async def get_notification_stats(db: AsyncSession) -> Dict:
    """Count records per status"""
    query = select(
        WhatsAppNotification.status,
        func.count(WhatsAppNotification.id).label("total")
    ).group_by(WhatsAppNotification.status)

    result = await db.execute(query)
    rows = result.all()

    stats = {
        "total": 0,
        "by_status": {status.value: 0 for status in NotificationStatus}
    }

    for row in rows:
        status = row.status.value if isinstance(row.status, NotificationStatus) else str(row.status)
        stats["by_status"][status] = stats["by_status"].get(status, 0) + row.total
        stats["total"] += row.total

    return stats
