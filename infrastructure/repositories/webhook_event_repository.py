"""
Processed webhook event store (SQLAlchemy)
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.repository import ProcessedWebhookRepository
from infrastructure.models.webhook_event import WebhookEventModel


logger = get_logger(__name__)


class SQLAlchemyWebhookEventRepository(ProcessedWebhookRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, event_key: str) -> bool:
        result = await self.session.execute(
            select(WebhookEventModel.id).where(WebhookEventModel.event_key == event_key)
        )
        return result.scalar_one_or_none() is not None

    async def record(self, event_key: str, *, provider: str, event_type: str) -> bool:
        try:
            self.session.add(
                WebhookEventModel(event_key=event_key, provider=provider, event_type=event_type)
            )
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.info("webhook_event_already_recorded", event_key=event_key, provider=provider)
            return False
        return True
