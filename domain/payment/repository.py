"""
Payment repository interfaces - what the payment store can do, not how.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from .entity import Payment, PaymentChanges, PaymentStats, PaymentStatus, Transition


class PaymentRepository(ABC):

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """Insert a new payment; raises PaymentInProgressException when another open attempt exists."""

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_open_for_team(self, team_id: str, event_id: str) -> Optional[Payment]:
        """The single pending or authorized attempt for (team, event), if any."""

    @abstractmethod
    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        pass

    @abstractmethod
    async def count_by_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def list_by_team(self, team_id: str) -> List[Payment]:
        pass

    @abstractmethod
    async def list_all(self, skip: int = 0, limit: int = 100, event_id: Optional[str] = None) -> List[Payment]:
        """Every user's payments, newest first."""

    @abstractmethod
    async def count_all(self, event_id: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def payment_stats(self, event_id: Optional[str] = None) -> PaymentStats:
        """Counts per status and the captured amount (paid and completed)."""

    @abstractmethod
    async def find_settled_for_event(self, user_id: str, event_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def list_stale(
        self,
        statuses: Iterable[PaymentStatus],
        created_before: datetime,
        limit: int = 100,
    ) -> List[Payment]:
        """Open payments older than the cut-off, oldest first."""

    @abstractmethod
    async def attach_gateway_order(self, payment_id: str, gateway_order_id: str) -> Payment:
        """Record the gateway order reference on a freshly created payment."""

    @abstractmethod
    async def transition(
        self,
        payment_id: str,
        target: PaymentStatus,
        changes: PaymentChanges,
        only_from: Optional[Iterable[PaymentStatus]] = None,
    ) -> Optional[Transition]:
        """Compare-and-set the payment's status to target.

        Returns None when the payment does not exist. A transition that the
        state machine forbids, or whose current status is outside only_from,
        is reported with applied=False and no write.
        """


class ProcessedWebhookRepository(ABC):
    """Set of webhook deliveries that were already processed successfully."""

    @abstractmethod
    async def exists(self, event_key: str) -> bool:
        pass

    @abstractmethod
    async def record(self, event_key: str, *, provider: str, event_type: str) -> bool:
        """Persist the key; False if another worker recorded it first."""
