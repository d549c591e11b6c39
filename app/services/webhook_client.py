"""
HTTP client for the external automation webhook (n8n) that sends the
WhatsApp message
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from app.core.config import get_settings
from app.core.exceptions import DeliveryError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one webhook call. ``error`` is set iff the call failed."""
    status_code: Optional[int] = None
    error: Optional[DeliveryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_payload(
    notification_id: str,
    whatsapp_number: str,
    message: str,
    customer_name: str,
    customer_email: str,
    product_title: str,
    order_id: Optional[str],
    user_id: Optional[str],
    triggered_from: str,
) -> Dict[str, Any]:
    """Outbound body. ``notification_id`` lets the receiver deduplicate."""
    return {
        "notification_id": notification_id,
        "whatsapp_number": whatsapp_number,
        "message": message,
        "customer_name": customer_name,
        "customer_email": customer_email,
        "product_title": product_title,
        "order_id": order_id,
        "user_id": user_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "triggered_from": triggered_from,
    }


class WebhookClient:
    """
    Single-shot JSON POST to the configured webhook.

    Never retries and never raises for a failed delivery: retries belong to the
    queue sweeper, and the caller gets a DeliveryResult instead.
    """

    def __init__(
        self,
        timeout: Optional[httpx.Timeout] = None,
        max_error_length: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.timeout = timeout or httpx.Timeout(
            settings.webhook_timeout_seconds,
            connect=settings.webhook_connect_timeout_seconds
        )
        self.max_error_length = max_error_length or settings.error_message_max_length
        self.transport = transport

    def _truncate(self, text: str) -> str:
        if len(text) <= self.max_error_length:
            return text
        return text[: self.max_error_length - 3] + "..."

    async def deliver(self, endpoint: str, payload: Dict[str, Any]) -> DeliveryResult:
        """POST ``payload`` to ``endpoint``; 2xx is success, anything else a DeliveryError"""
        notification_id = payload.get("notification_id")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(endpoint, json=payload)

            if response.is_success:
                logger.info(
                    "Webhook delivery succeeded",
                    notification_id=notification_id,
                    status_code=response.status_code
                )
                return DeliveryResult(status_code=response.status_code)

            error_text = self._truncate(f"HTTP {response.status_code}: {response.text}")
            logger.warning(
                "Webhook returned an error status",
                notification_id=notification_id,
                status_code=response.status_code,
                response=error_text
            )
            return DeliveryResult(
                status_code=response.status_code,
                error=DeliveryError(error_text)
            )

        except httpx.TimeoutException as e:
            error_text = self._truncate(f"Timeout calling webhook: {e!r}")
            logger.error("Timeout while calling webhook", notification_id=notification_id, url=endpoint)
        except httpx.ConnectError as e:
            error_text = self._truncate(f"Connection error calling webhook: {e}")
            logger.error("Connection error to webhook", notification_id=notification_id, url=endpoint)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error_text = self._truncate(f"Webhook request failed: {e}")
            logger.error(
                "Webhook request failed",
                notification_id=notification_id,
                url=endpoint,
                error=str(e)
            )

        return DeliveryResult(error=DeliveryError(error_text))


async def get_webhook_client() -> WebhookClient:
    """Dependency to get the webhook client"""
    return WebhookClient()
