"""
Processed webhook deliveries (idempotency keys), kept permanently.
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class WebhookEventModel(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_key = Column(String(128), nullable=False, unique=True, comment="Delivery id header or sha256 of body")
    provider = Column(String(32), nullable=False)
    event_type = Column(String(64), nullable=False)
    processed_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<WebhookEventModel(event_key='{self.event_key}', event_type='{self.event_type}')>"
