"""Tests for the availability checker."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from staybook.models.booking import BookingStatus
from staybook.services.availability import is_available, nights_between, overlaps

pytestmark = pytest.mark.asyncio

START = date.today() + timedelta(days=30)


class TestOverlaps:
    """Half-open interval semantics."""

    async def test_checkout_day_is_free_for_next_checkin(self) -> None:
        assert not overlaps(START, START + timedelta(days=3), START + timedelta(days=3), START + timedelta(days=5))

    async def test_partial_overlap(self) -> None:
        assert overlaps(START, START + timedelta(days=3), START + timedelta(days=2), START + timedelta(days=4))

    async def test_containment(self) -> None:
        assert overlaps(START, START + timedelta(days=10), START + timedelta(days=2), START + timedelta(days=4))

    async def test_nights_between_excludes_checkout(self) -> None:
        assert nights_between(START, START + timedelta(days=2)) == [START, START + timedelta(days=1)]


class TestIsAvailable:
    """Tests for is_available() against stored bookings."""

    async def test_empty_calendar(self, db_session, villa) -> None:
        assert await is_available(db_session, villa.id, START, START + timedelta(days=2))

    async def test_pending_booking_blocks(self, db_session, villa, make_booking) -> None:
        await make_booking(check_in=START, nights=3)
        assert not await is_available(db_session, villa.id, START + timedelta(days=1), START + timedelta(days=5))

    async def test_confirmed_booking_blocks(self, db_session, villa, make_booking) -> None:
        await make_booking(check_in=START, nights=3, status=BookingStatus.CONFIRMED)
        assert not await is_available(db_session, villa.id, START, START + timedelta(days=1))

    async def test_cancelled_booking_does_not_block(self, db_session, villa, make_booking) -> None:
        await make_booking(check_in=START, nights=3, status=BookingStatus.CANCELLED)
        assert await is_available(db_session, villa.id, START, START + timedelta(days=3))

    async def test_back_to_back_stays_allowed(self, db_session, villa, make_booking) -> None:
        await make_booking(check_in=START, nights=3)
        assert await is_available(db_session, villa.id, START + timedelta(days=3), START + timedelta(days=6))
        assert await is_available(db_session, villa.id, START - timedelta(days=2), START)

    async def test_lookup_failure_reports_unavailable(self, db_session, villa) -> None:
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection lost")))
        with patch("staybook.services.availability.find_conflicting_booking", failing):
            assert not await is_available(db_session, villa.id, START, START + timedelta(days=1))
