"""
Typed view over the WhatsApp/n8n integration keys of ``system_configs``.

Raw values are JSON blobs of loose type (``true``, ``"true"``, ``'""'`` ...).
They are decoded once here into a WhatsAppConfig with explicit defaults, so
the dispatch paths never parse config values themselves.
"""
import enum
from functools import lru_cache
import json
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import get_settings
from app.crud import system_configs as config_crud
from app.services.renderer import DEFAULT_MESSAGE_TEMPLATE

logger = structlog.get_logger(__name__)

KEY_ENABLED = "n8n_enabled"
KEY_WEBHOOK_URL = "n8n_webhook_url"
KEY_MESSAGE_TEMPLATE = "whatsapp_message_template"
KEY_DELAY_MINUTES = "whatsapp_delay_minutes"

CONFIG_KEYS = (KEY_ENABLED, KEY_WEBHOOK_URL, KEY_MESSAGE_TEMPLATE, KEY_DELAY_MINUTES)

DEFAULT_DELAY_MINUTES = 5

_TRUE_STRINGS = {"true", "1", "yes", "on"}


class IntegrationState(str, enum.Enum):
    DISABLED = "disabled"
    MISCONFIGURED = "misconfigured"
    READY = "ready"


class WhatsAppConfig(BaseModel):
    enabled: bool = False
    webhook_url: str = ""
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    # Advisory scheduling hint for whoever triggers the sweeper
    delay_minutes: int = Field(default=DEFAULT_DELAY_MINUTES, ge=0)

    @property
    def state(self) -> IntegrationState:
        if not self.enabled:
            return IntegrationState.DISABLED
        if not self.webhook_url:
            return IntegrationState.MISCONFIGURED
        return IntegrationState.READY


def decode_value(raw: Optional[str]) -> Any:
    """JSON-decode a stored value; non-JSON text is taken verbatim"""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    # double-encoded empty string
    return "" if value == '""' else value


def parse_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def build_config(raw_values: Dict[str, Optional[str]]) -> WhatsAppConfig:
    """Turn raw ``system_configs`` values into a WhatsAppConfig"""
    template = parse_text(decode_value(raw_values.get(KEY_MESSAGE_TEMPLATE)))
    return WhatsAppConfig(
        enabled=parse_bool(decode_value(raw_values.get(KEY_ENABLED))),
        webhook_url=parse_text(decode_value(raw_values.get(KEY_WEBHOOK_URL))),
        message_template=template or DEFAULT_MESSAGE_TEMPLATE,
        delay_minutes=parse_int(decode_value(raw_values.get(KEY_DELAY_MINUTES)), DEFAULT_DELAY_MINUTES),
    )


class ConfigLoader:
    """
    Loads WhatsAppConfig from the database.

    With ``ttl_seconds == 0`` every call reads the table. A positive TTL keeps
    the last value in process memory for at most that long; a flag flipped in
    the database may go unnoticed for up to ``ttl_seconds``.
    """

    def __init__(self, ttl_seconds: float = 0.0):
        self.ttl_seconds = ttl_seconds
        self._cached: Optional[WhatsAppConfig] = None
        self._expires_at = 0.0

    async def load(self, db: AsyncSession) -> WhatsAppConfig:
        if self.ttl_seconds > 0 and self._cached is not None and time.monotonic() < self._expires_at:
            return self._cached

        raw_values = await config_crud.get_raw_configs(db, CONFIG_KEYS)
        config = build_config(raw_values)
        logger.debug("Integration config loaded", state=config.state.value)

        if self.ttl_seconds > 0:
            self._cached = config
            self._expires_at = time.monotonic() + self.ttl_seconds
        return config

    async def save(self, db: AsyncSession, updates: Dict[str, Any]) -> WhatsAppConfig:
        """Persist the given keys (already in their stored shape) and reload"""
        unknown = set(updates) - set(CONFIG_KEYS)
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")

        await config_crud.upsert_configs(db, updates)
        self.invalidate()
        return await self.load(db)

    def invalidate(self):
        self._cached = None
        self._expires_at = 0.0


@lru_cache()
def get_config_loader() -> ConfigLoader:
    """Dependency returning the shared loader; it holds nothing but the TTL cache"""
    return ConfigLoader(ttl_seconds=get_settings().config_cache_ttl_seconds)
