"""SQLAlchemy ORM models."""

from cardswap.models.user import User
from cardswap.models.event import Event, EventParticipation
from cardswap.models.inventory import InventoryItem
from cardswap.models.trade import Trade, TradeItem, TradeApproval

__all__ = [
    "User",
    "Event",
    "EventParticipation",
    "InventoryItem",
    "Trade",
    "TradeItem",
    "TradeApproval",
]
