"""Inventory item model: one owned stack of a card."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, Integer, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from cardswap.database import Base
from cardswap.models.enums import InventoryStatus


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    card_definition_id = Column(String(64), nullable=False)  # external card-data reference
    quantity = Column(Integer, nullable=False, default=1)
    condition = Column(String(20), nullable=True)  # mint | near_mint | played | ...
    language = Column(String(8), nullable=True)
    visibility = Column(String(20), nullable=False, default="public")  # public | private
    status = Column(
        Enum(InventoryStatus, name="inventory_status", native_enum=False),
        nullable=False,
        default=InventoryStatus.AVAILABLE,
        index=True,
    )
    estimated_value = Column(Numeric(12, 2), nullable=True)
    desired_sale_price = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    owner = relationship("User", back_populates="inventory_items")
