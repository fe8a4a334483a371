"""Status and role enumerations shared by the ORM models."""

import enum


class UserRole(str, enum.Enum):
    ADULT = "ADULT"
    MINOR = "MINOR"
    GUARDIAN = "GUARDIAN"


class InventoryStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    IN_PROPOSAL = "IN_PROPOSAL"
    SOLD = "SOLD"
    ARCHIVED = "ARCHIVED"


class TradeStatus(str, enum.Enum):
    PENDING_USER = "PENDING_USER"
    PENDING_PARENTAL_APPROVAL = "PENDING_PARENTAL_APPROVAL"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


TERMINAL_TRADE_STATUSES = frozenset(
    {TradeStatus.COMPLETED, TradeStatus.CANCELLED, TradeStatus.REJECTED}
)


class TradeSide(str, enum.Enum):
    PROPOSER = "PROPOSER"
    RECEIVER = "RECEIVER"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ParticipationStatus(str, enum.Enum):
    PENDING_PARENTAL_APPROVAL = "PENDING_PARENTAL_APPROVAL"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
