"""
Immediate dispatch of WhatsApp notifications for a freshly paid order
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import Settings, get_settings
from app.core.exceptions import ConfigurationError, MissingDestinationError, RecipientResolutionError
from app.crud import catalog as catalog_crud
from app.crud import notifications as notification_crud
from app.services.config_store import ConfigLoader, IntegrationState
from app.services.delivery import AttemptOutcome, QueuedNotification, attempt_delivery
from app.services.renderer import MessageFields, member_area_link, render_message
from app.services.webhook_client import WebhookClient

logger = structlog.get_logger(__name__)

DISPATCH_SOURCE = "dispatch"
DEFAULT_TRIGGER = "unknown"


@dataclass
class DispatchSummary:
    products_processed: int = 0
    outcomes: List[AttemptOutcome] = field(default_factory=list)
    disabled: bool = False


@dataclass(frozen=True)
class _Recipient:
    name: Optional[str]
    email: Optional[str]
    whatsapp_number: str


class NotificationDispatcher:
    """Creates one record per purchased product and tries to deliver it right away"""

    def __init__(
        self,
        db: AsyncSession,
        webhook_client: WebhookClient,
        config_loader: ConfigLoader,
        settings: Optional[Settings] = None
    ):
        self.db = db
        self.webhook_client = webhook_client
        self.config_loader = config_loader
        self.settings = settings or get_settings()

    async def dispatch_order_notifications(
        self,
        order_id: str,
        user_id: str,
        product_ids: Sequence[str],
        origin: Optional[str] = None
    ) -> DispatchSummary:
        """
        Record and deliver the confirmation for every product of an order.

        Raises ConfigurationError, RecipientResolutionError or
        MissingDestinationError before anything is written. Once records start
        being created, failures stay local to the product they belong to.
        """
        config = await self.config_loader.load(self.db)

        if config.state == IntegrationState.DISABLED:
            logger.info("n8n integration disabled, skipping dispatch", order_id=order_id)
            return DispatchSummary(disabled=True)

        if config.state == IntegrationState.MISCONFIGURED:
            raise ConfigurationError("n8n webhook URL not configured")

        recipient = await self._resolve_recipient(user_id)
        products = await self._resolve_products(product_ids)

        area_link = member_area_link(origin, self.settings.app_public_url)
        triggered_from = (origin or "").strip() or DEFAULT_TRIGGER
        endpoint = config.webhook_url

        logger.info(
            "Dispatching order notifications",
            order_id=order_id,
            user_id=user_id,
            products=len(products)
        )

        summary = DispatchSummary()
        for product_id, product_title in products:
            try:
                existing = await notification_crud.get_notification_by_order_and_product(
                    self.db, order_id, product_id
                )
                if existing is not None:
                    # Duplicate order event; the first record stays the only one
                    logger.info(
                        "Notification already recorded for product",
                        order_id=order_id,
                        product_id=product_id,
                        notification_id=existing.id,
                        status=existing.status.value
                    )
                    summary.products_processed += 1
                    continue

                message = render_message(
                    config.message_template,
                    MessageFields(
                        recipient_name=recipient.name,
                        product_label=product_title,
                        recipient_email=recipient.email,
                        area_link=area_link,
                    )
                )
                record = await notification_crud.create_notification(
                    self.db,
                    order_id=order_id,
                    user_id=user_id,
                    product_id=product_id,
                    whatsapp_number=recipient.whatsapp_number,
                    message_template=config.message_template,
                    message_sent=message,
                    n8n_webhook_url=endpoint,
                    customer_name=recipient.name,
                    customer_email=recipient.email,
                    product_title=product_title,
                    max_attempts=self.settings.notification_max_attempts,
                )
                item = QueuedNotification.from_record(record)

            except IntegrityError:
                # A concurrent dispatch of the same order inserted it first
                await self.db.rollback()
                logger.info(
                    "Notification created concurrently, leaving it to the sweeper",
                    order_id=order_id,
                    product_id=product_id
                )
                summary.products_processed += 1
                continue

            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Failed to record notification",
                    order_id=order_id,
                    product_id=product_id,
                    error=str(e),
                    exc_info=True
                )
                continue

            summary.products_processed += 1
            outcome = await attempt_delivery(
                self.db,
                self.webhook_client,
                item,
                endpoint=endpoint,
                triggered_from=triggered_from,
                source=DISPATCH_SOURCE
            )
            summary.outcomes.append(outcome)

        logger.info(
            "Order notifications dispatched",
            order_id=order_id,
            products_processed=summary.products_processed,
            delivered=sum(1 for outcome in summary.outcomes if outcome.delivered)
        )
        return summary

    async def _resolve_recipient(self, user_id: str) -> _Recipient:
        profile = await catalog_crud.get_profile(self.db, user_id)
        if profile is None:
            raise RecipientResolutionError("Profile not found")

        whatsapp_number = (profile.whatsapp_number or "").strip()
        if not whatsapp_number:
            raise MissingDestinationError("WhatsApp number not provided")

        return _Recipient(name=profile.full_name, email=profile.email, whatsapp_number=whatsapp_number)

    async def _resolve_products(self, product_ids: Sequence[str]) -> List[tuple]:
        """(id, title) pairs in request order, duplicates dropped"""
        unique_ids = list(dict.fromkeys(product_ids))
        found = {
            product.id: product.title
            for product in await catalog_crud.get_products(self.db, unique_ids)
        }

        missing = [product_id for product_id in unique_ids if product_id not in found]
        if not unique_ids or missing:
            logger.warning("Products not found", product_ids=missing)
            raise RecipientResolutionError("Products not found")

        return [(product_id, found[product_id]) for product_id in unique_ids]
