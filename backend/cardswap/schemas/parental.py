"""Parental control request/response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from cardswap.models.enums import ApprovalStatus, ParticipationStatus, TradeStatus, UserRole
from cardswap.schemas.trade import TradeApprovalResponse


class LinkParentRequest(BaseModel):
    parent_link_code: str = Field(..., min_length=8, max_length=8)


class LinkParentResponse(BaseModel):
    child_id: str
    child_name: str
    linked_to: str


class DecisionRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class PendingTradeApprovalResponse(TradeApprovalResponse):
    trade_status: TradeStatus
    event_title: str
    proposer_name: str
    receiver_name: str


class EventParticipationResponse(BaseModel):
    id: str
    event_id: str
    user_id: str
    status: ParticipationStatus
    parental_status: Optional[ApprovalStatus] = None
    parental_decided_by_id: Optional[str] = None
    parental_decided_at: Optional[datetime] = None
    parental_decision_note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PendingEventSummary(BaseModel):
    participation_id: str
    event_id: str
    event_title: str
    starts_at: Optional[datetime] = None
    created_at: datetime


class PendingTradeSummary(BaseModel):
    approval_id: str
    trade_id: str
    trade_status: TradeStatus
    event_title: str
    created_at: datetime


class DependentSummary(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole
    inventory_count: int
    pending_events: list[PendingEventSummary] = []
    pending_trades: list[PendingTradeSummary] = []


class DashboardResponse(BaseModel):
    dependents: list[DependentSummary]
