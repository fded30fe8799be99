"""Unit of Work abstraction (transaction boundary for application services)."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentRepository, ProcessedWebhookRepository
from domain.team.repository import TeamRepository


class AbstractUnitOfWork(ABC):
    """Commits on clean exit, rolls back when the block raises."""

    payment_repository: PaymentRepository
    team_repository: TeamRepository
    webhook_event_repository: ProcessedWebhookRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.payment_repository = None  # type: ignore[assignment]
        self.team_repository = None  # type: ignore[assignment]
        self.webhook_event_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # auto-commit only when writable and not already committed
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
