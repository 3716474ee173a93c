from datetime import datetime, timedelta
from typing import Dict, Any

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from ..core.database import Base


class ExternalSource(Base):
    __tablename__ = "external_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    base_url = Column(String(1000), nullable=False)
    rss_url = Column(String(1000))
    logo_url = Column(String(1000))
    fetch_frequency_minutes = Column(Integer, nullable=False, default=60)
    is_active = Column(Boolean, nullable=False, default=True)
    last_fetch = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ExternalSource(id={self.id}, name='{self.name}', active={self.is_active})>"

    def is_due(self, now: datetime) -> bool:
        if self.last_fetch is None:
            return True
        return self.last_fetch + timedelta(minutes=self.fetch_frequency_minutes) <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "baseUrl": self.base_url,
            "rssUrl": self.rss_url,
            "logoUrl": self.logo_url,
            "fetchFrequencyMinutes": self.fetch_frequency_minutes,
            "isActive": bool(self.is_active),
            "lastFetch": self.last_fetch.isoformat() if self.last_fetch else None,
        }
