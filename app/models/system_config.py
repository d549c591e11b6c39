from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime

from app.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class SystemConfig(Base):
    """Key/value feature flags and tunables. ``config_value`` is JSON-encoded."""
    __tablename__ = "system_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    config_key = Column(String, unique=True, index=True, nullable=False)
    config_value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<SystemConfig(config_key='{self.config_key}')>"
