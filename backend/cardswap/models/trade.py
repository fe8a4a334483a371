"""Trade, TradeItem and TradeApproval models."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, Text, Index
from sqlalchemy.orm import relationship

from cardswap.database import Base
from cardswap.models.enums import ApprovalStatus, TradeSide, TradeStatus


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    proposer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(TradeStatus, name="trade_status", native_enum=False), nullable=False)
    proposer_cash = Column(Numeric(12, 2), nullable=True)
    receiver_cash = Column(Numeric(12, 2), nullable=True)
    # Valuations are frozen at proposal time
    proposer_valuation = Column(Numeric(12, 2), nullable=False)
    receiver_valuation = Column(Numeric(12, 2), nullable=False)
    value_difference = Column(Numeric(12, 2), nullable=False)
    value_difference_percent = Column(Numeric(7, 2), nullable=False)  # 0-100
    notes = Column(Text, nullable=True)
    chat_channel_id = Column(String(128), nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    proposer_handshake_at = Column(DateTime, nullable=True)
    receiver_handshake_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    event = relationship("Event", back_populates="trades")
    proposer = relationship("User", foreign_keys=[proposer_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    items = relationship("TradeItem", back_populates="trade", cascade="all, delete-orphan")
    approvals = relationship("TradeApproval", back_populates="trade", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Trade id={self.id} status={self.status} proposer={self.proposer_id} receiver={self.receiver_id}>"

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.proposer_id, self.receiver_id)

    def item_ids(self, side: Optional[TradeSide] = None) -> list[str]:
        return [i.inventory_item_id for i in self.items if side is None or i.side == side]


class TradeItem(Base):
    """Immutable line binding one inventory item to one side of a trade."""

    __tablename__ = "trade_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trade_id = Column(String(36), ForeignKey("trades.id", ondelete="CASCADE"), nullable=False)
    inventory_item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False)
    side = Column(Enum(TradeSide, name="trade_side", native_enum=False), nullable=False)
    valuation = Column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        Index("ix_trade_items_trade_item", trade_id, inventory_item_id),
    )

    # Relationships
    trade = relationship("Trade", back_populates="items")
    inventory_item = relationship("InventoryItem")


class TradeApproval(Base):
    """One guardian's sign-off on a trade involving their dependent."""

    __tablename__ = "trade_approvals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trade_id = Column(String(36), ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, index=True)
    guardian_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        Enum(ApprovalStatus, name="approval_status", native_enum=False),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    decision_at = Column(DateTime, nullable=True)
    decision_note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    trade = relationship("Trade", back_populates="approvals")
    guardian = relationship("User")
