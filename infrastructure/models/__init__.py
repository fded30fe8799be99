"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel
from .team import TeamModel
from .webhook_event import WebhookEventModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "TeamModel",
    "WebhookEventModel",
]
