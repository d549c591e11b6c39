"""
CRUD operations for the system_configs key/value table
"""
import json
from typing import Any, Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.models import SystemConfig

logger = structlog.get_logger(__name__)


async def get_raw_configs(db: AsyncSession, keys: Iterable[str]) -> Dict[str, str]:
    """Return the stored (still JSON-encoded) values for the requested keys"""
    result = await db.execute(
        select(SystemConfig.config_key, SystemConfig.config_value).where(
            SystemConfig.config_key.in_(list(keys))
        )
    )
    return {row.config_key: row.config_value for row in result.all()}


async def upsert_configs(db: AsyncSession, values: Dict[str, Any]) -> None:
    """JSON-encode and insert or update each key"""
    if not values:
        return

    result = await db.execute(
        select(SystemConfig).where(SystemConfig.config_key.in_(list(values)))
    )
    existing = {config.config_key: config for config in result.scalars().all()}

    for key, value in values.items():
        encoded = json.dumps(value)
        config = existing.get(key)
        if config is None:
            db.add(SystemConfig(config_key=key, config_value=encoded))
        else:
            config.config_value = encoded

    await db.commit()
    logger.info("System configs updated", keys=sorted(values))
