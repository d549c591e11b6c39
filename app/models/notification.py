"""
WhatsApp notification record: the durable work item of the dispatch queue
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Integer, DateTime, UniqueConstraint, Enum as SQLEnum

from app.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class NotificationStatus(str, enum.Enum):
    """Delivery status"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    RETRY = "retry"


# Statuses the sweeper may still act on
DELIVERABLE_STATUSES = (NotificationStatus.PENDING, NotificationStatus.RETRY)

DEFAULT_MAX_ATTEMPTS = 3


class WhatsAppNotification(Base):
    """One purchase-confirmation message for one product of one order"""
    __tablename__ = "whatsapp_notifications"
    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_whatsapp_notifications_order_product"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String, index=True, nullable=True)
    user_id = Column(String, index=True, nullable=True)
    product_id = Column(String, nullable=True)

    # Snapshots taken at creation time
    whatsapp_number = Column(String, nullable=False)
    message_template = Column(Text, nullable=False)
    message_sent = Column(Text, nullable=True)
    n8n_webhook_url = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    product_title = Column(String, nullable=True)

    status = Column(
        SQLEnum(
            NotificationStatus,
            name="whatsapp_notification_status",
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=NotificationStatus.PENDING,
        nullable=False,
        index=True,
    )
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=DEFAULT_MAX_ATTEMPTS, nullable=False)
    error_message = Column(Text, nullable=True)
    # Set while a worker holds the current attempt; nobody else may claim before it passes
    claimed_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<WhatsAppNotification(id={self.id}, order_id={self.order_id}, "
            f"product_id={self.product_id}, status={self.status}, attempts={self.attempts})>"
        )
