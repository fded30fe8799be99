"""
Team domain entity (only the fields the payment pipeline reads or projects).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TeamStatus(str, Enum):
    """Registration workflow status."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TeamPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


@dataclass
class Team:
    id: str
    name: str
    leader_id: Optional[str]
    event_id: Optional[str]
    status: TeamStatus = TeamStatus.DRAFT
    payment_status: TeamPaymentStatus = TeamPaymentStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
