"""Trade service: proposal, acceptance, handshake completion, cancellation.

Every operation that changes a trade's status together with its inventory
items runs inside a single ``unit_of_work`` so either all rows change or none.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from cardswap import errors
from cardswap.config import settings
from cardswap.database import unit_of_work
from cardswap.models.enums import (
    ParticipationStatus,
    TERMINAL_TRADE_STATUSES,
    TradeSide,
    TradeStatus,
)
from cardswap.models.event import Event, EventParticipation
from cardswap.models.trade import Trade, TradeApproval, TradeItem
from cardswap.models.user import User
from cardswap.schemas.trade import ProposeTradeRequest
from cardswap.services import inventory_locks, parental_service, valuation
from cardswap.services.chat_service import ChatProvisioner, ChatProvisioningError

logger = logging.getLogger(__name__)

PROPOSER = "proposer"
RECEIVER = "receiver"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load_trade(db: Session, trade_id: str) -> Trade:
    """Fetch a trade with its row locked for the rest of the transaction."""
    trade = db.query(Trade).filter(Trade.id == trade_id).with_for_update().first()
    if not trade:
        raise errors.not_found("trade not found")
    return trade


def _ensure_participant(trade: Trade, user: User) -> None:
    if not trade.is_participant(user.id):
        raise errors.forbidden("you are not part of this trade")


def _ensure_confirmed(db: Session, event_id: str, user_id: str, side: str) -> None:
    participation = (
        db.query(EventParticipation)
        .filter(EventParticipation.event_id == event_id, EventParticipation.user_id == user_id)
        .first()
    )
    if not participation or participation.status != ParticipationStatus.CONFIRMED:
        raise errors.forbidden(f"{side} is not confirmed in this event", side=side)


def _ensure_balanced(proposer_value: Decimal, receiver_value: Decimal) -> None:
    if valuation.within_balance(proposer_value, receiver_value):
        return
    pct = valuation.difference_percent(proposer_value, receiver_value) * 100
    short_side = PROPOSER if proposer_value < receiver_value else RECEIVER
    raise errors.validation(
        f"trade value difference of {pct:.2f}% exceeds the "
        f"{settings.TRADE_MAX_VALUE_DIFFERENCE * 100:g}% limit "
        f"(proposer {proposer_value:.2f}, receiver {receiver_value:.2f})",
        side=short_side,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Proposal
# ─────────────────────────────────────────────────────────────────────────────

def propose_trade(db: Session, proposer: User, req: ProposeTradeRequest) -> Trade:
    """Create a trade proposal and lock both sides' items.

    Steps:
    1. Validate participants, event and confirmed participation
    2. Validate item ownership and availability on both sides
    3. Apply the minors' money rule and the value balance rule
    4. Lock items, insert trade, trade items and guardian approvals
    All writes happen in one transaction; any failure leaves nothing behind.
    """
    if proposer.id == req.receiver_id:
        raise errors.validation("receiver must be different from the proposer")

    if not req.proposer_item_ids or not req.receiver_item_ids:
        raise errors.validation("both sides must select at least one item")

    # Deduplicate while keeping the caller's order
    proposer_item_ids = list(dict.fromkeys(req.proposer_item_ids))
    receiver_item_ids = list(dict.fromkeys(req.receiver_item_ids))

    with unit_of_work(db):
        event = db.query(Event).filter(Event.id == req.event_id).first()
        if not event:
            raise errors.not_found("event not found")

        receiver = db.query(User).filter(User.id == req.receiver_id).first()
        if not receiver:
            raise errors.not_found("receiver not found", side=RECEIVER)

        _ensure_confirmed(db, event.id, proposer.id, PROPOSER)
        _ensure_confirmed(db, event.id, receiver.id, RECEIVER)

        proposer_items = inventory_locks.load_for_proposal(db, proposer_item_ids, proposer.id, PROPOSER)
        receiver_items = inventory_locks.load_for_proposal(db, receiver_item_ids, receiver.id, RECEIVER)

        parental_service.ensure_minor_cash_rule(proposer, req.proposer_cash, req.receiver_cash)

        proposer_value = valuation.valuation(proposer_items, req.proposer_cash)
        receiver_value = valuation.valuation(receiver_items, req.receiver_cash)
        _ensure_balanced(proposer_value, receiver_value)

        inventory_locks.lock_items(db, proposer_item_ids + receiver_item_ids)

        trade = Trade(
            event_id=event.id,
            proposer_id=proposer.id,
            receiver_id=receiver.id,
            status=parental_service.initial_trade_status(proposer, receiver),
            proposer_cash=valuation.to_money(req.proposer_cash) if req.proposer_cash else None,
            receiver_cash=valuation.to_money(req.receiver_cash) if req.receiver_cash else None,
            proposer_valuation=proposer_value,
            receiver_valuation=receiver_value,
            value_difference=abs(proposer_value - receiver_value),
            value_difference_percent=(
                valuation.difference_percent(proposer_value, receiver_value) * 100
            ).quantize(valuation.CENT),
            notes=req.notes,
        )
        for side, items in ((TradeSide.PROPOSER, proposer_items), (TradeSide.RECEIVER, receiver_items)):
            for item in items:
                trade.items.append(TradeItem(
                    inventory_item_id=item.id,
                    side=side,
                    valuation=valuation.item_valuation(item),
                ))
        for guardian_id in sorted(parental_service.approval_guardian_ids(proposer, receiver)):
            trade.approvals.append(TradeApproval(guardian_id=guardian_id))
        db.add(trade)

    logger.info(
        "Trade %s proposed by %s to %s (%s, %.2f vs %.2f)",
        trade.id, proposer.id, receiver.id, trade.status.value, proposer_value, receiver_value,
    )
    return trade


# ─────────────────────────────────────────────────────────────────────────────
# Acceptance and handshake
# ─────────────────────────────────────────────────────────────────────────────

def accept_trade(db: Session, user: User, trade_id: str, chat: ChatProvisioner) -> Trade:
    """Receiver accepts; a chat channel is opened for both participants.

    If the chat provider fails the transaction is rolled back and the trade
    stays exactly as it was.
    """
    with unit_of_work(db):
        trade = _load_trade(db, trade_id)
        _ensure_participant(trade, user)

        if trade.status not in (TradeStatus.PENDING_USER, TradeStatus.PENDING_PARENTAL_APPROVAL):
            raise errors.conflict("trade cannot be accepted in its current status")

        if trade.status == TradeStatus.PENDING_PARENTAL_APPROVAL and parental_service.approvals_outstanding(trade):
            raise errors.forbidden("trade is waiting for parental approval")

        if trade.receiver_id != user.id:
            raise errors.forbidden("only the receiver can accept this trade")

        try:
            channel_id = chat.create_trade_channel(trade.id, [trade.proposer_id, trade.receiver_id])
        except ChatProvisioningError as exc:
            logger.error("Chat channel for trade %s could not be created: %s", trade.id, exc)
            raise errors.external_failure("could not create the trade chat channel") from exc

        trade.status = TradeStatus.ACCEPTED
        trade.accepted_at = _now()
        trade.chat_channel_id = channel_id

    logger.info("Trade %s accepted (channel %s)", trade.id, trade.chat_channel_id)
    return trade


def _complete_trade(db: Session, trade: Trade, now: datetime) -> None:
    """Swap ownership of both sides' items and close the trade."""
    inventory_locks.transfer_items(db, trade.item_ids(TradeSide.PROPOSER), trade.receiver_id)
    inventory_locks.transfer_items(db, trade.item_ids(TradeSide.RECEIVER), trade.proposer_id)
    trade.status = TradeStatus.COMPLETED
    trade.completed_at = now


def confirm_handshake(db: Session, user: User, trade_id: str) -> Trade:
    """Stamp the caller's handshake; the second handshake completes the trade.

    Calling again re-stamps the caller's own timestamp.
    """
    with unit_of_work(db):
        trade = _load_trade(db, trade_id)
        _ensure_participant(trade, user)

        if trade.status != TradeStatus.ACCEPTED:
            raise errors.conflict("handshake can only be confirmed for accepted trades")

        now = _now()
        if user.id == trade.proposer_id:
            trade.proposer_handshake_at = now
        else:
            trade.receiver_handshake_at = now

        if trade.proposer_handshake_at and trade.receiver_handshake_at:
            _complete_trade(db, trade, now)

    logger.info("Trade %s handshake by %s (status %s)", trade.id, user.id, trade.status.value)
    return trade


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation and rejection
# ─────────────────────────────────────────────────────────────────────────────

def cancel_trade(db: Session, user: User, trade_id: str) -> Trade:
    with unit_of_work(db):
        trade = _load_trade(db, trade_id)
        _ensure_participant(trade, user)

        if trade.status in TERMINAL_TRADE_STATUSES:
            raise errors.conflict("trade cannot be cancelled in its current status")

        inventory_locks.release_items(db, trade.item_ids())
        trade.status = TradeStatus.CANCELLED
        trade.cancelled_at = _now()

    logger.info("Trade %s cancelled by %s", trade.id, user.id)
    return trade


def reject_trade(db: Session, user: User, trade_id: str) -> Trade:
    with unit_of_work(db):
        trade = _load_trade(db, trade_id)

        if trade.receiver_id != user.id:
            raise errors.forbidden("only the receiver can reject the trade")

        if trade.status not in (TradeStatus.PENDING_USER, TradeStatus.PENDING_PARENTAL_APPROVAL):
            raise errors.conflict("trade cannot be rejected in its current status")

        inventory_locks.release_items(db, trade.item_ids())
        trade.status = TradeStatus.REJECTED
        trade.cancelled_at = _now()

    logger.info("Trade %s rejected by %s", trade.id, user.id)
    return trade


# ─────────────────────────────────────────────────────────────────────────────
# Queries
# ─────────────────────────────────────────────────────────────────────────────

def list_trades_for_user(db: Session, user: User) -> list[Trade]:
    """Trades the user proposed or received, most recently updated first."""
    return (
        db.query(Trade)
        .filter(or_(Trade.proposer_id == user.id, Trade.receiver_id == user.id))
        .order_by(Trade.updated_at.desc())
        .all()
    )


def get_trade_for_user(db: Session, user: User, trade_id: str) -> Trade:
    trade = db.query(Trade).filter(Trade.id == trade_id).first()
    if not trade:
        raise errors.not_found("trade not found")
    _ensure_participant(trade, user)
    return trade
