"""Trading router: proposal, acceptance, handshake, cancellation, rejection."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cardswap.config import settings
from cardswap.database import get_db
from cardswap.middleware.auth import get_current_user
from cardswap.middleware.rate_limit import limiter
from cardswap.models.trade import Trade
from cardswap.models.user import User
from cardswap.schemas.trade import ProposeTradeRequest, TradeResponse
from cardswap.services import trade_service
from cardswap.services.chat_service import ChatProvisioner, get_chat_provisioner

router = APIRouter(prefix="/api/trading", tags=["trading"])


def _trade_to_response(trade: Trade) -> TradeResponse:
    return TradeResponse.model_validate(trade)


@router.post("/propose", response_model=TradeResponse, status_code=201)
@limiter.limit(settings.PROPOSE_RATE_LIMIT)
def propose_trade(
    request: Request,
    req: ProposeTradeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Propose a trade to another participant of the same event."""
    trade = trade_service.propose_trade(db, current_user, req)
    return _trade_to_response(trade)


@router.get("/me", response_model=list[TradeResponse])
def my_trades(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Trades the current user proposed or received."""
    return [_trade_to_response(t) for t in trade_service.list_trades_for_user(db, current_user)]


@router.get("/{trade_id}", response_model=TradeResponse)
def get_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _trade_to_response(trade_service.get_trade_for_user(db, current_user, trade_id))


@router.post("/{trade_id}/accept", response_model=TradeResponse)
def accept_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    chat: ChatProvisioner = Depends(get_chat_provisioner),
):
    """Accept a trade (receiver only) and open its chat channel."""
    return _trade_to_response(trade_service.accept_trade(db, current_user, trade_id, chat))


@router.post("/{trade_id}/confirm-handshake", response_model=TradeResponse)
def confirm_handshake(
    trade_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Confirm the physical exchange; the second confirmation completes the trade."""
    return _trade_to_response(trade_service.confirm_handshake(db, current_user, trade_id))


@router.post("/{trade_id}/cancel", response_model=TradeResponse)
def cancel_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _trade_to_response(trade_service.cancel_trade(db, current_user, trade_id))


@router.post("/{trade_id}/reject", response_model=TradeResponse)
def reject_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _trade_to_response(trade_service.reject_trade(db, current_user, trade_id))
