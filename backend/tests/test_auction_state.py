"""Tests for the auction lifecycle state machine."""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.clock import utcnow
from app.core.exceptions import StateConflictError
from app.models.auction import AuctionStatus, ListingType
from app.services.auction_state import (
    ListingCapabilities,
    can_transition,
    effective_status,
    initial_status,
    transition,
)


class TestTransitions:
    """Test the allowed lifecycle edges."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (AuctionStatus.UPCOMING, AuctionStatus.ACTIVE),
            (AuctionStatus.UPCOMING, AuctionStatus.CANCELLED),
            (AuctionStatus.ACTIVE, AuctionStatus.ENDED),
            (AuctionStatus.ACTIVE, AuctionStatus.SOLD),
            (AuctionStatus.ACTIVE, AuctionStatus.CANCELLED),
        ],
    )
    def test_allowed_transitions(self, current, target):
        assert can_transition(current, target)
        assert transition(current, target) == target

    @pytest.mark.parametrize(
        "terminal", [AuctionStatus.ENDED, AuctionStatus.SOLD, AuctionStatus.CANCELLED]
    )
    def test_terminal_states_have_no_exits(self, terminal):
        """A resolved auction never changes status again."""
        for target in AuctionStatus:
            assert not can_transition(terminal, target)

    def test_upcoming_cannot_be_sold_directly(self):
        with pytest.raises(StateConflictError) as exc_info:
            transition(AuctionStatus.UPCOMING, AuctionStatus.SOLD)

        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.status_code == 409


class TestEffectiveStatus:
    """Test the implicit upcoming -> active promotion."""

    def test_upcoming_before_start_stays_upcoming(self):
        now = utcnow()
        assert effective_status(AuctionStatus.UPCOMING, now + timedelta(minutes=1), now) == AuctionStatus.UPCOMING

    def test_upcoming_after_start_is_active(self):
        now = utcnow()
        assert effective_status(AuctionStatus.UPCOMING, now - timedelta(seconds=1), now) == AuctionStatus.ACTIVE

    def test_start_instant_counts_as_started(self):
        now = utcnow()
        assert effective_status(AuctionStatus.UPCOMING, now, now) == AuctionStatus.ACTIVE

    def test_other_statuses_pass_through(self):
        now = utcnow()
        for status in (AuctionStatus.ENDED, AuctionStatus.SOLD, AuctionStatus.CANCELLED):
            assert effective_status(status, now - timedelta(hours=1), now) == status

    def test_initial_status(self):
        now = utcnow()
        assert initial_status(now, now) == AuctionStatus.ACTIVE
        assert initial_status(now + timedelta(hours=1), now) == AuctionStatus.UPCOMING


class TestSnapshot:
    """Test AuctionSnapshot helpers."""

    def test_is_open_inside_window(self, snapshot_factory):
        now = utcnow()
        assert snapshot_factory(now).is_open(now)

    def test_is_open_end_time_is_exclusive(self, snapshot_factory):
        now = utcnow()
        snapshot = snapshot_factory(now, end_time=now)
        assert not snapshot.is_open(now)

    def test_started_upcoming_snapshot_is_open(self, snapshot_factory):
        now = utcnow()
        snapshot = snapshot_factory(now, status=AuctionStatus.UPCOMING)
        assert snapshot.status_at(now) == AuctionStatus.ACTIVE
        assert snapshot.is_open(now)

    def test_minimum_bid(self, snapshot_factory):
        now = utcnow()
        snapshot = snapshot_factory(now, current_bid=Decimal("120.00"), bid_increment=Decimal("2.50"))
        assert snapshot.minimum_bid == Decimal("122.50")

    def test_terminal(self, snapshot_factory):
        now = utcnow()
        assert snapshot_factory(now, status=AuctionStatus.SOLD).is_terminal()
        assert not snapshot_factory(now).is_terminal()


class TestListingCapabilities:
    """Test which sale mechanisms each listing type offers."""

    def test_auction_only(self):
        caps = ListingCapabilities.for_listing(ListingType.AUCTION, None)
        assert caps.can_bid and not caps.can_buy_now

    def test_buy_now_only(self):
        caps = ListingCapabilities.for_listing(ListingType.BUY_NOW, Decimal("50.00"))
        assert not caps.can_bid and caps.can_buy_now

    def test_auction_with_buy_now(self):
        caps = ListingCapabilities.for_listing(ListingType.AUCTION_BUY_NOW, Decimal("50.00"))
        assert caps.can_bid and caps.can_buy_now

    def test_buy_now_requires_price(self):
        caps = ListingCapabilities.for_listing(ListingType.AUCTION_BUY_NOW, None)
        assert not caps.can_buy_now
