"""
Team ORM model. Rows are created by the registration flow; this service
only rewrites the payment projection columns.
"""
from sqlalchemy import Column, String, DateTime
from datetime import datetime, timezone

from .base import Base


class TeamModel(Base):
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    leader_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="draft", comment="draft/submitted/pending/approved/rejected")
    payment_status = Column(String(20), nullable=False, default="pending", comment="pending/paid/failed")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<TeamModel(id='{self.id}', status='{self.status}', payment_status='{self.payment_status}')>"
