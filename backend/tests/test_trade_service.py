"""Tests for the trade state machine against an in-memory database."""

import os
import sys
from decimal import Decimal
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cardswap.errors import ErrorKind, ServiceError  # noqa: E402
from cardswap.models.enums import InventoryStatus, ParticipationStatus, TradeSide, TradeStatus  # noqa: E402
from cardswap.models.trade import Trade, TradeApproval, TradeItem  # noqa: E402
from cardswap.schemas.trade import ProposeTradeRequest  # noqa: E402
from cardswap.services import trade_service  # noqa: E402


def propose(db, proposer, receiver, event, give, take, **kwargs):
    req = ProposeTradeRequest(
        event_id=event.id,
        receiver_id=receiver.id,
        proposer_item_ids=[i.id for i in give],
        receiver_item_ids=[i.id for i in take],
        **kwargs,
    )
    return trade_service.propose_trade(db, proposer, req)


@pytest.fixture
def adults(make):
    event = make.event()
    alice = make.user(name="alice")
    bob = make.user(name="bob")
    make.join(event, alice, bob)
    return event, alice, bob


@pytest.fixture
def open_trade(db, make, adults):
    event, alice, bob = adults
    give = make.item(alice, value=50.0)
    take = make.item(bob, value=52.0)
    trade = propose(db, alice, bob, event, [give], [take])
    return trade, alice, bob, give, take


@pytest.fixture
def accepted_trade(db, open_trade, chat):
    trade, alice, bob, give, take = open_trade
    trade_service.accept_trade(db, bob, trade.id, chat)
    return trade, alice, bob, give, take


class TestProposeTrade:
    """Test proposal validation, valuation and item locking."""

    def test_balanced_adult_trade_is_created(self, db, open_trade):
        """50 vs 52 is a 3.8% gap: accepted, waiting on the receiver."""
        trade, alice, bob, give, take = open_trade

        assert trade.status == TradeStatus.PENDING_USER
        assert trade.proposer_valuation == 50.0
        assert trade.receiver_valuation == 52.0
        assert trade.value_difference == 2.0
        assert trade.value_difference_percent == Decimal("3.85")
        assert db.query(TradeApproval).count() == 0

    def test_items_are_locked(self, db, open_trade):
        _, _, _, give, take = open_trade
        db.refresh(give)
        db.refresh(take)
        assert give.status == InventoryStatus.IN_PROPOSAL
        assert take.status == InventoryStatus.IN_PROPOSAL

    def test_trade_items_capture_valuation_per_side(self, db, open_trade):
        trade, _, _, give, take = open_trade
        lines = {line.inventory_item_id: line for line in db.query(TradeItem).filter_by(trade_id=trade.id)}
        assert lines[give.id].side == TradeSide.PROPOSER
        assert lines[give.id].valuation == 50.0
        assert lines[take.id].side == TradeSide.RECEIVER
        assert lines[take.id].valuation == 52.0

    def test_unbalanced_trade_is_rejected_without_side_effects(self, db, make, adults):
        """10 vs 100 is a 90% gap: nothing is created or locked."""
        event, alice, bob = adults
        give = make.item(alice, value=10.0)
        take = make.item(bob, value=100.0)

        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [give], [take])

        assert exc.value.kind == ErrorKind.VALIDATION
        assert exc.value.side == "proposer"
        assert db.query(Trade).count() == 0
        db.refresh(give)
        db.refresh(take)
        assert give.status == InventoryStatus.AVAILABLE
        assert take.status == InventoryStatus.AVAILABLE

    def test_cash_counts_towards_balance(self, db, make, adults):
        event, alice, bob = adults
        give = make.item(alice, value=40.0)
        take = make.item(bob, value=50.0)

        trade = propose(db, alice, bob, event, [give], [take], proposer_cash=10.0)

        assert trade.proposer_valuation == 50.0
        assert trade.proposer_cash == 10.0

    def test_exactly_fifteen_percent_in_cents_is_accepted(self, db, make, adults):
        """1.70 vs 2.00 is exactly 15%: on the limit, so allowed."""
        event, alice, bob = adults
        give = make.item(alice, value="1.70")
        take = make.item(bob, value="2.00")

        trade = propose(db, alice, bob, event, [give], [take])

        assert trade.status == TradeStatus.PENDING_USER
        assert trade.proposer_valuation == Decimal("1.70")
        assert trade.value_difference == Decimal("0.30")
        assert trade.value_difference_percent == Decimal("15.00")

    def test_one_cent_over_fifteen_percent_is_rejected(self, db, make, adults):
        event, alice, bob = adults
        give = make.item(alice, value="1.69")
        take = make.item(bob, value="2.00")

        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [give], [take])

        assert exc.value.kind == ErrorKind.VALIDATION
        assert exc.value.side == "proposer"
        assert "15.50%" in exc.value.message

    def test_desired_price_used_when_no_estimate(self, db, make, adults):
        event, alice, bob = adults
        give = make.item(alice, desired=20.0)
        take = make.item(bob, value=20.0)

        trade = propose(db, alice, bob, event, [give], [take])

        assert trade.proposer_valuation == 20.0

    def test_duplicate_item_ids_are_collapsed(self, db, make, adults):
        event, alice, bob = adults
        give = make.item(alice, value=30.0)
        take = make.item(bob, value=30.0)

        trade = propose(db, alice, bob, event, [give, give], [take])

        assert db.query(TradeItem).filter_by(trade_id=trade.id).count() == 2
        assert trade.proposer_valuation == 30.0

    def test_cannot_trade_with_yourself(self, db, make, adults):
        event, alice, _ = adults
        a, b = make.item(alice, value=1.0), make.item(alice, value=1.0)
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, alice, event, [a], [b])
        assert exc.value.kind == ErrorKind.VALIDATION

    def test_both_sides_need_items(self, db, make, adults):
        event, alice, bob = adults
        give = make.item(alice, value=5.0)
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [give], [])
        assert exc.value.kind == ErrorKind.VALIDATION

    def test_unknown_event(self, db, make, adults):
        _, alice, bob = adults
        event = SimpleNamespace(id="missing")
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [make.item(alice)], [make.item(bob)])
        assert exc.value.kind == ErrorKind.NOT_FOUND

    def test_unknown_receiver(self, db, make, adults):
        event, alice, _ = adults
        req = ProposeTradeRequest(
            event_id=event.id,
            receiver_id="nobody",
            proposer_item_ids=[make.item(alice).id],
            receiver_item_ids=["x"],
        )
        with pytest.raises(ServiceError) as exc:
            trade_service.propose_trade(db, alice, req)
        assert exc.value.kind == ErrorKind.NOT_FOUND

    def test_receiver_must_be_confirmed_for_event(self, db, make, adults):
        event, alice, _ = adults
        carol = make.user(name="carol")
        make.join(event, carol, status=ParticipationStatus.PENDING_PARENTAL_APPROVAL)
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, carol, event, [make.item(alice)], [make.item(carol)])
        assert exc.value.kind == ErrorKind.FORBIDDEN
        assert exc.value.side == "receiver"

    def test_proposer_must_be_registered_for_event(self, db, make, adults):
        event, _, bob = adults
        dave = make.user(name="dave")
        with pytest.raises(ServiceError) as exc:
            propose(db, dave, bob, event, [make.item(dave)], [make.item(bob)])
        assert exc.value.kind == ErrorKind.FORBIDDEN
        assert exc.value.side == "proposer"

    def test_items_must_belong_to_their_side(self, db, make, adults):
        event, alice, bob = adults
        not_hers = make.item(bob, value=10.0)
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [not_hers], [make.item(bob, value=10.0)])
        assert exc.value.kind == ErrorKind.FORBIDDEN
        assert exc.value.side == "proposer"

    def test_missing_items(self, db, make, adults):
        event, alice, bob = adults
        req = ProposeTradeRequest(
            event_id=event.id,
            receiver_id=bob.id,
            proposer_item_ids=[make.item(alice).id],
            receiver_item_ids=["does-not-exist"],
        )
        with pytest.raises(ServiceError) as exc:
            trade_service.propose_trade(db, alice, req)
        assert exc.value.kind == ErrorKind.NOT_FOUND
        assert exc.value.side == "receiver"

    def test_locked_item_cannot_join_a_second_trade(self, db, make, open_trade):
        trade, alice, bob, _, take = open_trade
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, trade.event, [make.item(alice, value=52.0)], [take])
        assert exc.value.kind == ErrorKind.CONFLICT
        assert exc.value.side == "receiver"
        assert db.query(Trade).count() == 1

    def test_failed_proposal_does_not_lock_the_valid_side(self, db, make, open_trade):
        """Proposer items stay AVAILABLE when the receiver side is already locked."""
        trade, alice, bob, _, take = open_trade
        fresh = make.item(alice, value=52.0)
        with pytest.raises(ServiceError):
            propose(db, alice, bob, trade.event, [fresh], [take])
        db.refresh(fresh)
        assert fresh.status == InventoryStatus.AVAILABLE

    def test_archived_items_are_not_available(self, db, make, adults):
        event, alice, bob = adults
        archived = make.item(alice, value=10.0, status=InventoryStatus.ARCHIVED)
        with pytest.raises(ServiceError) as exc:
            propose(db, alice, bob, event, [archived], [make.item(bob, value=10.0)])
        assert exc.value.kind == ErrorKind.CONFLICT


class TestAcceptTrade:
    """Test acceptance and chat channel provisioning."""

    def test_receiver_accepts(self, db, open_trade, chat):
        trade, alice, bob, _, _ = open_trade

        accepted = trade_service.accept_trade(db, bob, trade.id, chat)

        assert accepted.status == TradeStatus.ACCEPTED
        assert accepted.accepted_at is not None
        assert accepted.chat_channel_id == f"channel-{trade.id}"
        assert chat.calls == [(trade.id, [alice.id, bob.id])]

    def test_proposer_cannot_accept(self, db, open_trade, chat):
        trade, alice, _, _, _ = open_trade
        with pytest.raises(ServiceError) as exc:
            trade_service.accept_trade(db, alice, trade.id, chat)
        assert exc.value.kind == ErrorKind.FORBIDDEN
        assert chat.calls == []

    def test_outsider_cannot_accept(self, db, make, open_trade, chat):
        trade = open_trade[0]
        with pytest.raises(ServiceError) as exc:
            trade_service.accept_trade(db, make.user(), trade.id, chat)
        assert exc.value.kind == ErrorKind.FORBIDDEN

    def test_unknown_trade(self, db, adults, chat):
        _, _, bob = adults
        with pytest.raises(ServiceError) as exc:
            trade_service.accept_trade(db, bob, "missing", chat)
        assert exc.value.kind == ErrorKind.NOT_FOUND

    def test_chat_failure_leaves_trade_untouched(self, db, open_trade, failing_chat):
        trade, _, bob, _, _ = open_trade

        with pytest.raises(ServiceError) as exc:
            trade_service.accept_trade(db, bob, trade.id, failing_chat)

        assert exc.value.kind == ErrorKind.EXTERNAL_FAILURE
        db.refresh(trade)
        assert trade.status == TradeStatus.PENDING_USER
        assert trade.accepted_at is None
        assert trade.chat_channel_id is None

    def test_accept_twice_conflicts(self, db, accepted_trade, chat):
        trade, _, bob, _, _ = accepted_trade
        with pytest.raises(ServiceError) as exc:
            trade_service.accept_trade(db, bob, trade.id, chat)
        assert exc.value.kind == ErrorKind.CONFLICT

    def test_later_value_edits_do_not_affect_open_trade(self, db, open_trade, chat):
        """Valuations are frozen at proposal time."""
        trade, _, bob, give, _ = open_trade
        give.estimated_value = 500.0
        db.commit()

        accepted = trade_service.accept_trade(db, bob, trade.id, chat)

        assert accepted.status == TradeStatus.ACCEPTED
        assert accepted.proposer_valuation == 50.0


class TestHandshake:
    """Test handshake confirmation and completion."""

    def test_one_handshake_does_not_complete(self, db, accepted_trade):
        trade, alice, bob, give, take = accepted_trade

        result = trade_service.confirm_handshake(db, alice, trade.id)

        assert result.status == TradeStatus.ACCEPTED
        assert result.proposer_handshake_at is not None
        assert result.receiver_handshake_at is None
        db.refresh(give)
        assert give.owner_id == alice.id
        assert give.status == InventoryStatus.IN_PROPOSAL

    def test_both_handshakes_swap_ownership(self, db, accepted_trade):
        trade, alice, bob, give, take = accepted_trade

        trade_service.confirm_handshake(db, alice, trade.id)
        result = trade_service.confirm_handshake(db, bob, trade.id)

        assert result.status == TradeStatus.COMPLETED
        assert result.completed_at is not None
        db.refresh(give)
        db.refresh(take)
        assert give.owner_id == bob.id
        assert take.owner_id == alice.id
        assert give.status == InventoryStatus.AVAILABLE
        assert take.status == InventoryStatus.AVAILABLE

    def test_repeat_handshake_restamps(self, db, accepted_trade):
        trade, alice, _, _, _ = accepted_trade

        first = trade_service.confirm_handshake(db, alice, trade.id).proposer_handshake_at
        second = trade_service.confirm_handshake(db, alice, trade.id).proposer_handshake_at

        assert second >= first
        db.refresh(trade)
        assert trade.status == TradeStatus.ACCEPTED

    def test_handshake_requires_accepted_trade(self, db, open_trade):
        trade, alice, _, _, _ = open_trade
        with pytest.raises(ServiceError) as exc:
            trade_service.confirm_handshake(db, alice, trade.id)
        assert exc.value.kind == ErrorKind.CONFLICT

    def test_outsider_cannot_handshake(self, db, make, accepted_trade):
        trade = accepted_trade[0]
        with pytest.raises(ServiceError) as exc:
            trade_service.confirm_handshake(db, make.user(), trade.id)
        assert exc.value.kind == ErrorKind.FORBIDDEN


class TestCancelAndReject:
    """Test releasing items when a trade is abandoned."""

    def test_either_side_can_cancel(self, db, open_trade):
        trade, alice, _, give, take = open_trade

        result = trade_service.cancel_trade(db, alice, trade.id)

        assert result.status == TradeStatus.CANCELLED
        assert result.cancelled_at is not None
        db.refresh(give)
        db.refresh(take)
        assert give.status == InventoryStatus.AVAILABLE
        assert take.status == InventoryStatus.AVAILABLE

    def test_accepted_trade_can_be_cancelled(self, db, accepted_trade):
        trade, _, bob, give, _ = accepted_trade
        result = trade_service.cancel_trade(db, bob, trade.id)
        assert result.status == TradeStatus.CANCELLED
        db.refresh(give)
        assert give.status == InventoryStatus.AVAILABLE

    def test_outsider_cannot_cancel(self, db, make, open_trade):
        with pytest.raises(ServiceError) as exc:
            trade_service.cancel_trade(db, make.user(), open_trade[0].id)
        assert exc.value.kind == ErrorKind.FORBIDDEN

    def test_receiver_rejects(self, db, open_trade):
        trade, _, bob, give, _ = open_trade

        result = trade_service.reject_trade(db, bob, trade.id)

        assert result.status == TradeStatus.REJECTED
        db.refresh(give)
        assert give.status == InventoryStatus.AVAILABLE

    def test_proposer_cannot_reject(self, db, open_trade):
        trade, alice, _, _, _ = open_trade
        with pytest.raises(ServiceError) as exc:
            trade_service.reject_trade(db, alice, trade.id)
        assert exc.value.kind == ErrorKind.FORBIDDEN

    def test_accepted_trade_cannot_be_rejected(self, db, accepted_trade):
        trade, _, bob, _, _ = accepted_trade
        with pytest.raises(ServiceError) as exc:
            trade_service.reject_trade(db, bob, trade.id)
        assert exc.value.kind == ErrorKind.CONFLICT

    def test_released_items_can_be_traded_again(self, db, make, open_trade):
        trade, alice, bob, give, take = open_trade
        trade_service.cancel_trade(db, bob, trade.id)

        again = propose(db, alice, bob, trade.event, [give], [take])

        assert again.status == TradeStatus.PENDING_USER


class TestTerminalStates:
    """Once completed, cancelled or rejected, nothing else may change a trade."""

    @pytest.fixture
    def completed(self, db, accepted_trade):
        trade, alice, bob, _, _ = accepted_trade
        trade_service.confirm_handshake(db, alice, trade.id)
        trade_service.confirm_handshake(db, bob, trade.id)
        return trade, alice, bob

    def test_completed_trade_is_final(self, db, completed, chat):
        trade, alice, bob = completed
        for call in (
            lambda: trade_service.cancel_trade(db, alice, trade.id),
            lambda: trade_service.reject_trade(db, bob, trade.id),
            lambda: trade_service.accept_trade(db, bob, trade.id, chat),
            lambda: trade_service.confirm_handshake(db, alice, trade.id),
        ):
            with pytest.raises(ServiceError) as exc:
                call()
            assert exc.value.kind == ErrorKind.CONFLICT
        db.refresh(trade)
        assert trade.status == TradeStatus.COMPLETED

    def test_cancelled_trade_is_final(self, db, open_trade, chat):
        trade, alice, bob, _, _ = open_trade
        trade_service.cancel_trade(db, alice, trade.id)
        for call in (
            lambda: trade_service.cancel_trade(db, bob, trade.id),
            lambda: trade_service.reject_trade(db, bob, trade.id),
            lambda: trade_service.accept_trade(db, bob, trade.id, chat),
        ):
            with pytest.raises(ServiceError) as exc:
                call()
            assert exc.value.kind == ErrorKind.CONFLICT

    def test_cancelling_a_completed_trade_keeps_new_owners(self, db, completed):
        trade, alice, bob = completed
        with pytest.raises(ServiceError):
            trade_service.cancel_trade(db, alice, trade.id)
        for line in db.query(TradeItem).filter_by(trade_id=trade.id):
            expected = bob.id if line.side == TradeSide.PROPOSER else alice.id
            assert line.inventory_item.owner_id == expected


class TestQueries:
    """Test trade listing and lookup."""

    def test_lists_trades_for_both_participants(self, db, make, open_trade):
        trade, alice, bob, _, _ = open_trade
        assert [t.id for t in trade_service.list_trades_for_user(db, alice)] == [trade.id]
        assert [t.id for t in trade_service.list_trades_for_user(db, bob)] == [trade.id]
        assert trade_service.list_trades_for_user(db, make.user()) == []

    def test_get_trade_hides_it_from_outsiders(self, db, make, open_trade):
        trade, alice, _, _, _ = open_trade
        assert trade_service.get_trade_for_user(db, alice, trade.id).id == trade.id
        with pytest.raises(ServiceError) as exc:
            trade_service.get_trade_for_user(db, make.user(), trade.id)
        assert exc.value.kind == ErrorKind.FORBIDDEN
