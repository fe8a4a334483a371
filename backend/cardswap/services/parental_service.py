"""Parental approval gate: guardian sign-off for trades and events involving minors."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cardswap import errors
from cardswap.database import unit_of_work
from cardswap.models.enums import (
    ApprovalStatus,
    ParticipationStatus,
    TradeStatus,
    UserRole,
)
from cardswap.models.event import EventParticipation
from cardswap.models.trade import Trade, TradeApproval
from cardswap.models.user import User
from cardswap.services import inventory_locks

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Proposal-time rules
# ─────────────────────────────────────────────────────────────────────────────

def involves_minor(proposer: User, receiver: User) -> bool:
    return proposer.is_minor or receiver.is_minor


def initial_trade_status(proposer: User, receiver: User) -> TradeStatus:
    if involves_minor(proposer, receiver):
        return TradeStatus.PENDING_PARENTAL_APPROVAL
    return TradeStatus.PENDING_USER


def approval_guardian_ids(proposer: User, receiver: User) -> set[str]:
    """Guardians who must sign off: one per minor participant with a linked guardian.

    A minor without a guardian contributes nothing, so the set has 0, 1 or 2
    members (1 when both minors share a guardian).
    """
    return {
        user.guardian_id
        for user in (proposer, receiver)
        if user.is_minor and user.guardian_id
    }


def ensure_minor_cash_rule(proposer: User, proposer_cash: Optional[Decimal], receiver_cash: Optional[Decimal]) -> None:
    """Minors cannot propose trades that move money on either side."""
    if proposer.is_minor and ((proposer_cash or 0) > 0 or (receiver_cash or 0) > 0):
        raise errors.forbidden("Minors cannot propose trades involving money")


def approvals_outstanding(trade: Trade) -> bool:
    """True while a trade in PENDING_PARENTAL_APPROVAL may not be accepted.

    A trade with no approval rows (minor without a linked guardian) stays
    blocked: nobody can sign it off.
    """
    if not trade.approvals:
        return True
    return any(a.status == ApprovalStatus.PENDING for a in trade.approvals)


# ─────────────────────────────────────────────────────────────────────────────
# Guardian decisions
# ─────────────────────────────────────────────────────────────────────────────

def decide_trade_approval(
    db: Session,
    guardian_id: str,
    approval_id: str,
    approve: bool,
    note: Optional[str] = None,
) -> TradeApproval:
    """Record a guardian's decision on a trade approval.

    A rejection kills the trade immediately and releases its items, even if
    another guardian has not decided yet. An approval moves the trade to
    PENDING_USER once no approvals remain pending.
    """
    with unit_of_work(db):
        approval = (
            db.query(TradeApproval)
            .filter(TradeApproval.id == approval_id)
            .with_for_update()
            .first()
        )
        if not approval:
            raise errors.not_found("trade approval not found")
        if approval.guardian_id != guardian_id:
            raise errors.forbidden("guardian is not linked to this approval")
        if approval.status != ApprovalStatus.PENDING:
            raise errors.conflict("approval already processed")

        trade = db.query(Trade).filter(Trade.id == approval.trade_id).with_for_update().one()
        if trade.status != TradeStatus.PENDING_PARENTAL_APPROVAL:
            raise errors.conflict(f"trade is no longer awaiting parental approval (status: {trade.status.value})")

        now = datetime.now(timezone.utc)
        approval.status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        approval.decision_at = now
        approval.decision_note = note

        if not approve:
            inventory_locks.release_items(db, trade.item_ids())
            trade.status = TradeStatus.REJECTED
            trade.cancelled_at = now
        else:
            db.flush()
            pending = (
                db.query(func.count(TradeApproval.id))
                .filter(TradeApproval.trade_id == trade.id, TradeApproval.status == ApprovalStatus.PENDING)
                .scalar()
            )
            if pending == 0:
                trade.status = TradeStatus.PENDING_USER

    logger.info(
        "Guardian %s %s approval %s (trade %s now %s)",
        guardian_id, approval.status.value.lower(), approval.id, trade.id, trade.status.value,
    )
    return approval


def list_pending_trade_approvals(db: Session, guardian_id: str) -> list[TradeApproval]:
    """Approvals still waiting on this guardian, oldest first."""
    return (
        db.query(TradeApproval)
        .join(Trade, TradeApproval.trade_id == Trade.id)
        .filter(
            TradeApproval.guardian_id == guardian_id,
            TradeApproval.status == ApprovalStatus.PENDING,
            Trade.status == TradeStatus.PENDING_PARENTAL_APPROVAL,
        )
        .order_by(TradeApproval.created_at.asc())
        .all()
    )


def list_pending_event_approvals(db: Session, guardian_id: str) -> list[EventParticipation]:
    return (
        db.query(EventParticipation)
        .join(User, EventParticipation.user_id == User.id)
        .filter(
            User.guardian_id == guardian_id,
            EventParticipation.status == ParticipationStatus.PENDING_PARENTAL_APPROVAL,
            EventParticipation.parental_status == ApprovalStatus.PENDING,
        )
        .order_by(EventParticipation.created_at.asc())
        .all()
    )


def decide_event_participation(
    db: Session,
    guardian_id: str,
    participation_id: str,
    approve: bool,
    note: Optional[str] = None,
) -> EventParticipation:
    with unit_of_work(db):
        participation = (
            db.query(EventParticipation)
            .filter(EventParticipation.id == participation_id)
            .with_for_update()
            .first()
        )
        if not participation:
            raise errors.not_found("event participation not found")
        if participation.user.guardian_id != guardian_id:
            raise errors.forbidden("guardian is not linked to this user")
        if (
            participation.status != ParticipationStatus.PENDING_PARENTAL_APPROVAL
            or participation.parental_status != ApprovalStatus.PENDING
        ):
            raise errors.conflict("participation is not awaiting parental approval")

        participation.status = ParticipationStatus.CONFIRMED if approve else ParticipationStatus.REJECTED
        participation.parental_status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        participation.parental_decided_by_id = guardian_id
        participation.parental_decided_at = datetime.now(timezone.utc)
        participation.parental_decision_note = note

    logger.info("Guardian %s %s event participation %s", guardian_id,
                "approved" if approve else "rejected", participation.id)
    return participation


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard
# ─────────────────────────────────────────────────────────────────────────────

def get_dashboard(db: Session, guardian_id: str) -> dict:
    """Overview of every dependent: inventory size and what awaits the guardian.

    Pending trades are the guardian's own undecided approvals on trades the
    dependent takes part in.
    """
    dependents = (
        db.query(User)
        .filter(User.guardian_id == guardian_id)
        .order_by(User.display_name.asc())
        .all()
    )
    pending_approvals = list_pending_trade_approvals(db, guardian_id)

    summaries = []
    for child in dependents:
        pending_events = [
            {
                "participation_id": p.id,
                "event_id": p.event_id,
                "event_title": p.event.title,
                "starts_at": p.event.starts_at,
                "created_at": p.created_at,
            }
            for p in child.participations
            if p.status == ParticipationStatus.PENDING_PARENTAL_APPROVAL
        ]
        pending_trades = [
            {
                "approval_id": a.id,
                "trade_id": a.trade_id,
                "trade_status": a.trade.status,
                "event_title": a.trade.event.title,
                "created_at": a.created_at,
            }
            for a in pending_approvals
            if a.trade.is_participant(child.id)
        ]
        summaries.append({
            "id": child.id,
            "name": child.display_name,
            "email": child.email,
            "role": child.role,
            "inventory_count": len(child.inventory_items),
            "pending_events": pending_events,
            "pending_trades": pending_trades,
        })
    return {"dependents": summaries}


# ─────────────────────────────────────────────────────────────────────────────
# Account linking
# ─────────────────────────────────────────────────────────────────────────────

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def link_account(db: Session, guardian_id: str, link_code: str) -> dict:
    """Link a minor to a guardian using the minor's one-time link code."""
    with unit_of_work(db):
        minor = (
            db.query(User)
            .filter(User.parent_link_code == link_code, User.role == UserRole.MINOR)
            .with_for_update()
            .first()
        )
        if not minor:
            raise errors.not_found("parent link code is invalid")

        expires_at = minor.parent_link_code_expires_at
        if expires_at and _as_utc(expires_at) < datetime.now(timezone.utc):
            raise errors.gone("parent link code has expired")

        if minor.guardian_id and minor.guardian_id != guardian_id:
            raise errors.conflict("this user is already linked to another guardian")

        if minor.guardian_id != guardian_id:
            minor.guardian_id = guardian_id
            minor.parent_link_code = None
            minor.parent_link_code_expires_at = None
            logger.info("Guardian %s linked to minor %s", guardian_id, minor.id)

        result = {"child_id": minor.id, "child_name": minor.display_name, "linked_to": guardian_id}
    return result
