"""
Payment ORM model - table mapping only, business rules live in domain.payment.entity.Payment
"""
from sqlalchemy import Column, String, Numeric, DateTime, Text, JSON, Index, text
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, comment="Payment id (uuid4)")

    user_id = Column(String(64), nullable=False, index=True, comment="Owning user (identity provider subject)")
    team_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)

    # Whole-currency units, never minor units
    amount = Column(Numeric(precision=12, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR", comment="ISO-4217")
    payment_method = Column(String(32), nullable=False, comment="razorpay/cashfree")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/authorized/paid/completed/failed/expired",
    )

    transaction_id = Column(String(128), nullable=True, index=True, comment="Latest gateway reference")
    gateway_order_id = Column(String(128), nullable=True, unique=True, comment="Gateway order id, fixed once set")
    gateway_payment_id = Column(String(128), nullable=True, index=True)
    gateway_response = Column(JSON, nullable=True, comment="Raw gateway payload, audit only")
    failure_reason = Column(Text, nullable=True)

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
    authorized_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # at most one open (pending or authorized) attempt per (team, event)
        Index(
            "uq_payments_team_event_open",
            "team_id",
            "event_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'authorized')"),
            sqlite_where=text("status IN ('pending', 'authorized')"),
        ),
        Index("ix_payments_user_event", "user_id", "event_id"),
        Index("ix_payments_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', team_id='{self.team_id}', "
            f"gateway_order_id='{self.gateway_order_id}', status='{self.status}')>"
        )
