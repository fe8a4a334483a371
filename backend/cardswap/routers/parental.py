"""Parental router: account linking and guardian decisions on trades and events."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cardswap.database import get_db
from cardswap.middleware.auth import require_guardian
from cardswap.models.trade import TradeApproval
from cardswap.models.user import User
from cardswap.schemas.parental import (
    DashboardResponse,
    DecisionRequest,
    EventParticipationResponse,
    LinkParentRequest,
    LinkParentResponse,
    PendingTradeApprovalResponse,
)
from cardswap.schemas.trade import TradeApprovalResponse
from cardswap.services import parental_service

router = APIRouter(prefix="/api/parental", tags=["parental"])


def _pending_to_response(approval: TradeApproval) -> PendingTradeApprovalResponse:
    trade = approval.trade
    return PendingTradeApprovalResponse(
        id=approval.id,
        trade_id=approval.trade_id,
        guardian_id=approval.guardian_id,
        status=approval.status,
        decision_at=approval.decision_at,
        decision_note=approval.decision_note,
        created_at=approval.created_at,
        trade_status=trade.status,
        event_title=trade.event.title,
        proposer_name=trade.proposer.display_name,
        receiver_name=trade.receiver.display_name,
    )


@router.post("/link-account", response_model=LinkParentResponse)
def link_account(
    req: LinkParentRequest,
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    """Link a minor's account using the code shown on their device."""
    return LinkParentResponse(**parental_service.link_account(db, guardian.id, req.parent_link_code))


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    """Each dependent with inventory size and everything waiting on this guardian."""
    return DashboardResponse(**parental_service.get_dashboard(db, guardian.id))


@router.get("/trades/pending", response_model=list[PendingTradeApprovalResponse])
def pending_trade_approvals(
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    approvals = parental_service.list_pending_trade_approvals(db, guardian.id)
    return [_pending_to_response(a) for a in approvals]


@router.post("/trades/{approval_id}/approve", response_model=TradeApprovalResponse)
def approve_trade(
    approval_id: str,
    req: DecisionRequest,
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    approval = parental_service.decide_trade_approval(db, guardian.id, approval_id, True, req.note)
    return TradeApprovalResponse.model_validate(approval)


@router.post("/trades/{approval_id}/reject", response_model=TradeApprovalResponse)
def reject_trade(
    approval_id: str,
    req: DecisionRequest,
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    """Reject a trade; the trade is cancelled and its cards released."""
    approval = parental_service.decide_trade_approval(db, guardian.id, approval_id, False, req.note)
    return TradeApprovalResponse.model_validate(approval)


@router.get("/events/pending", response_model=list[EventParticipationResponse])
def pending_event_approvals(
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    participations = parental_service.list_pending_event_approvals(db, guardian.id)
    return [EventParticipationResponse.model_validate(p) for p in participations]


@router.post("/events/{participation_id}/approve", response_model=EventParticipationResponse)
def approve_event(
    participation_id: str,
    req: DecisionRequest,
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    participation = parental_service.decide_event_participation(db, guardian.id, participation_id, True, req.note)
    return EventParticipationResponse.model_validate(participation)


@router.post("/events/{participation_id}/reject", response_model=EventParticipationResponse)
def reject_event(
    participation_id: str,
    req: DecisionRequest,
    db: Session = Depends(get_db),
    guardian: User = Depends(require_guardian),
):
    participation = parental_service.decide_event_participation(db, guardian.id, participation_id, False, req.note)
    return EventParticipationResponse.model_validate(participation)
