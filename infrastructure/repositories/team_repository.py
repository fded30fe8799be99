"""
Team repository implementation (SQLAlchemy)
"""
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import utcnow
from domain.team.entity import Team, TeamPaymentStatus, TeamStatus
from domain.team.repository import TeamRepository
from infrastructure.models.team import TeamModel


logger = get_logger(__name__)


class SQLAlchemyTeamRepository(TeamRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TeamModel) -> Team:
        return Team(
            id=model.id,
            name=model.name,
            leader_id=model.leader_id,
            event_id=model.event_id,
            status=TeamStatus(model.status),
            payment_status=TeamPaymentStatus(model.payment_status),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_by_id(self, team_id: str) -> Optional[Team]:
        result = await self.session.execute(
            select(TeamModel)
            .where(TeamModel.id == team_id)
            .execution_options(populate_existing=True)
        )
        db_team = result.scalar_one_or_none()
        return self._to_entity(db_team) if db_team else None

    async def update_payment_projection(
        self,
        team_id: str,
        *,
        payment_status: TeamPaymentStatus,
        status: Optional[TeamStatus] = None,
    ) -> Optional[Team]:
        values = {"payment_status": payment_status.value, "updated_at": utcnow()}
        if status is not None:
            values["status"] = status.value

        result = await self.session.execute(
            update(TeamModel)
            .where(TeamModel.id == team_id)
            .values(**values)
            .returning(TeamModel.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            return None

        logger.info(
            "team_payment_projection_updated",
            team_id=team_id,
            payment_status=payment_status.value,
            status=status.value if status else None,
        )
        return await self.get_by_id(team_id)
