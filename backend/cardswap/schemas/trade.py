"""Trade request/response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from cardswap.models.enums import ApprovalStatus, TradeSide, TradeStatus


class ProposeTradeRequest(BaseModel):
    event_id: str
    receiver_id: str
    proposer_item_ids: list[str]
    receiver_item_ids: list[str]
    proposer_cash: Optional[Decimal] = Field(None, ge=0, allow_inf_nan=False)
    receiver_cash: Optional[Decimal] = Field(None, ge=0, allow_inf_nan=False)
    notes: Optional[str] = Field(None, max_length=240)


class TradeItemResponse(BaseModel):
    id: str
    inventory_item_id: str
    side: TradeSide
    valuation: Decimal

    class Config:
        from_attributes = True


class TradeApprovalResponse(BaseModel):
    id: str
    trade_id: str
    guardian_id: str
    status: ApprovalStatus
    decision_at: Optional[datetime] = None
    decision_note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TradeResponse(BaseModel):
    id: str
    event_id: str
    proposer_id: str
    receiver_id: str
    status: TradeStatus
    proposer_cash: Optional[Decimal] = None
    receiver_cash: Optional[Decimal] = None
    proposer_valuation: Decimal
    receiver_valuation: Decimal
    value_difference: Decimal
    value_difference_percent: Decimal
    notes: Optional[str] = None
    chat_channel_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    proposer_handshake_at: Optional[datetime] = None
    receiver_handshake_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: list[TradeItemResponse] = []
    approvals: list[TradeApprovalResponse] = []

    class Config:
        from_attributes = True
