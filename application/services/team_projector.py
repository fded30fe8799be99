"""
Rebuilds a team's cached payment/registration status from its payments.
"""
from __future__ import annotations

from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.team.projection import TeamProjection, derive_team_projection


logger = get_logger(__name__)


class TeamStatusProjector:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def project(self, team_id: Optional[str]) -> Optional[TeamProjection]:
        if not team_id:
            logger.warning("team_projection_skipped", reason="missing_team_id")
            return None

        async with self._uow_factory() as uow:
            team = await uow.team_repository.get_by_id(team_id)
            if team is None:
                logger.warning("team_projection_skipped", reason="team_not_found", team_id=team_id)
                return None
            payments = await uow.payment_repository.list_by_team(team_id)
            projection = derive_team_projection(payments)
            await uow.team_repository.update_payment_projection(
                team_id,
                payment_status=projection.payment_status,
                status=projection.status,
            )
        return projection
