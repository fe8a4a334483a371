"""Event and EventParticipation models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from cardswap.database import Base
from cardswap.models.enums import ApprovalStatus, ParticipationStatus


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")  # scheduled | validated | closed
    starts_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    participations = relationship("EventParticipation", back_populates="event")
    trades = relationship("Trade", back_populates="event")


class EventParticipation(Base):
    __tablename__ = "event_participations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(
        Enum(ParticipationStatus, name="participation_status", native_enum=False),
        nullable=False,
        default=ParticipationStatus.CONFIRMED,
    )
    # Only set for minors
    parental_status = Column(Enum(ApprovalStatus, name="approval_status", native_enum=False), nullable=True)
    parental_decided_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    parental_decided_at = Column(DateTime, nullable=True)
    parental_decision_note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participation"),
    )

    # Relationships
    event = relationship("Event", back_populates="participations")
    user = relationship("User", back_populates="participations", foreign_keys=[user_id])
