"""
Queue sweeper: retries every notification still awaiting delivery.

Meant to be triggered periodically (HTTP endpoint or ``python -m
app.jobs.process_queue``). Concurrent sweeps do not send the same record
twice: each attempt is claimed with a lease before the webhook is called, and
a leased record is invisible to other sweeps until its result is recorded or
the lease (``CLAIM_LEASE_SECONDS``) runs out.
"""
import dataclasses
from dataclasses import dataclass
import time
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import Settings, get_settings
from app.core.exceptions import ConfigurationError
from app.crud import catalog as catalog_crud
from app.crud import notifications as notification_crud
from app.middleware.metrics import whatsapp_sweeps_total
from app.services.config_store import ConfigLoader, IntegrationState, WhatsAppConfig
from app.services.delivery import (
    AttemptResult,
    QueuedNotification,
    attempt_delivery,
    record_unexpected_error,
)
from app.services.renderer import MessageFields, member_area_link, render_message
from app.services.webhook_client import WebhookClient

logger = structlog.get_logger(__name__)

SWEEP_SOURCE = "sweep"
SWEEP_TRIGGER = "queue-processor"

# Written by the admin console when the number was not known yet
PLACEHOLDER_NUMBER = "pending-lookup"

MESSAGE_DISABLED = "n8n integration disabled"
MESSAGE_EMPTY = "No pending notifications"
MESSAGE_COMPLETED = "Queue processing completed"
MISSING_NUMBER_ERROR = "WhatsApp number not provided"


@dataclass
class SweepSummary:
    processed: int = 0
    errors: int = 0
    total: int = 0
    skipped: int = 0
    disabled: bool = False
    message: str = MESSAGE_COMPLETED


class QueueSweeper:
    def __init__(
        self,
        db: AsyncSession,
        webhook_client: WebhookClient,
        config_loader: ConfigLoader,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.db = db
        self.webhook_client = webhook_client
        self.config_loader = config_loader
        self.settings = settings or get_settings()
        self.clock = clock

    async def process_pending_queue(self, origin: Optional[str] = None) -> SweepSummary:
        """
        Make one delivery attempt for each deliverable record, oldest first.

        ``processed`` counts deliveries that succeeded, ``errors`` attempts that
        failed (including records given up for lack of a number) and
        ``skipped`` records not attempted in this run, either because the
        deadline passed or because another worker claimed them first.
        Records leased by a worker still waiting on the webhook are not
        selected at all.
        """
        config = await self.config_loader.load(self.db)

        if config.state == IntegrationState.DISABLED:
            logger.info("n8n integration disabled, skipping queue sweep")
            whatsapp_sweeps_total.labels(result="disabled").inc()
            return SweepSummary(disabled=True, message=MESSAGE_DISABLED)

        if config.state == IntegrationState.MISCONFIGURED:
            whatsapp_sweeps_total.labels(result="misconfigured").inc()
            raise ConfigurationError("n8n webhook URL not configured")

        # last attempt claimed by a worker that never reported back
        await notification_crud.fail_abandoned_notifications(self.db)

        records = await notification_crud.get_deliverable_notifications(
            self.db, limit=self.settings.sweep_batch_size
        )
        items = [QueuedNotification.from_record(record) for record in records]

        if not items:
            logger.info("No pending notifications")
            whatsapp_sweeps_total.labels(result="empty").inc()
            return SweepSummary(message=MESSAGE_EMPTY)

        logger.info("Processing notification queue", count=len(items))

        area_link = member_area_link(origin, self.settings.app_public_url)
        triggered_from = (origin or "").strip() or SWEEP_TRIGGER
        deadline = self.clock() + self.settings.sweep_deadline_seconds

        summary = SweepSummary(total=len(items))
        for index, item in enumerate(items):
            if self.clock() >= deadline:
                summary.skipped += len(items) - index
                logger.warning(
                    "Sweep deadline reached, leaving remaining notifications for the next run",
                    remaining=len(items) - index
                )
                break

            try:
                prepared = await self._prepare(item, config, area_link)
            except Exception as e:
                logger.error(
                    "Error preparing notification",
                    notification_id=item.id,
                    error=str(e),
                    exc_info=True
                )
                await record_unexpected_error(self.db, item, str(e), claimed=False)
                summary.errors += 1
                continue

            if prepared is None:
                summary.errors += 1
                continue

            outcome = await attempt_delivery(
                self.db,
                self.webhook_client,
                prepared,
                endpoint=config.webhook_url,
                triggered_from=triggered_from,
                source=SWEEP_SOURCE
            )

            if outcome.result == AttemptResult.SENT:
                summary.processed += 1
            elif outcome.result == AttemptResult.SKIPPED:
                summary.skipped += 1
            else:
                summary.errors += 1

        whatsapp_sweeps_total.labels(result="completed").inc()
        logger.info(
            "Queue processing completed",
            processed=summary.processed,
            errors=summary.errors,
            skipped=summary.skipped,
            total=summary.total
        )
        return summary

    async def _prepare(
        self,
        item: QueuedNotification,
        config: WhatsAppConfig,
        area_link: str
    ) -> Optional[QueuedNotification]:
        """
        Fill in whatever the record did not snapshot. Returns None when the
        record was closed as undeliverable.
        """
        number = (item.whatsapp_number or "").strip()
        if number == PLACEHOLDER_NUMBER:
            number = ""

        name, email, title = item.customer_name, item.customer_email, item.product_title

        if not number or (name is None and email is None):
            profile = await catalog_crud.get_profile(self.db, item.user_id) if item.user_id else None
            if profile is not None:
                number = number or (profile.whatsapp_number or "").strip()
                name = name if name is not None else profile.full_name
                email = email if email is not None else profile.email

        if not number:
            await notification_crud.mark_undeliverable(self.db, item.id, MISSING_NUMBER_ERROR)
            return None

        if title is None and item.product_id:
            product = await catalog_crud.get_product(self.db, item.product_id)
            if product is not None:
                title = product.title

        message = item.message_sent
        if not message:
            message = render_message(
                item.message_template or config.message_template,
                MessageFields(
                    recipient_name=name,
                    product_label=title,
                    recipient_email=email,
                    area_link=area_link,
                )
            )

        return dataclasses.replace(
            item,
            whatsapp_number=number,
            customer_name=name,
            customer_email=email,
            product_title=title,
            message_sent=message,
        )
