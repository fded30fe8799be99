"""
Team repository interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Team, TeamPaymentStatus, TeamStatus


class TeamRepository(ABC):

    @abstractmethod
    async def get_by_id(self, team_id: str) -> Optional[Team]:
        pass

    @abstractmethod
    async def update_payment_projection(
        self,
        team_id: str,
        *,
        payment_status: TeamPaymentStatus,
        status: Optional[TeamStatus] = None,
    ) -> Optional[Team]:
        """Write the derived payment fields; None when the team does not exist."""
