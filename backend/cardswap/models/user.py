"""User model."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship

from cardswap.database import Base
from cardswap.models.enums import UserRole


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, name="user_role", native_enum=False), nullable=False, default=UserRole.ADULT)
    # Set only for minors once a guardian has linked the account
    guardian_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_kyc_verified = Column(Boolean, nullable=False, default=False)
    parent_link_code = Column(String(8), unique=True, nullable=True)
    parent_link_code_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    guardian = relationship("User", remote_side=[id], back_populates="dependents")
    dependents = relationship("User", back_populates="guardian")
    inventory_items = relationship("InventoryItem", back_populates="owner")
    participations = relationship("EventParticipation", back_populates="user", foreign_keys="[EventParticipation.user_id]")

    @property
    def is_minor(self) -> bool:
        return self.role == UserRole.MINOR
