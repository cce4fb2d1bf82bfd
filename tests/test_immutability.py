from datetime import timedelta

import pytest

from app.core.exceptions import ErrorCode, ImmutabilityViolationError
from app.domain.booking_state import BookingStatus, TransactionType
from app.models.booking import Booking
from app.services.ledger_service import ledger_service
from tests.conftest import NOW


async def add_entry(session_factory, booking_id):
    async with session_factory() as session:
        async with session.begin():
            booking = await session.get(Booking, booking_id)
            ledger_service.add_phase_entry(session, booking, TransactionType.BOOKING_ENDED)


async def test_ledger_entries_cannot_be_updated(session_factory, make_booking):
    booking_id = await make_booking()
    await add_entry(session_factory, booking_id)

    with pytest.raises(ImmutabilityViolationError) as exc_info:
        async with session_factory() as session:
            async with session.begin():
                entry = await ledger_service.get(session, booking_id, TransactionType.BOOKING_ENDED)
                entry.actor = "someone-else"

    assert exc_info.value.code is ErrorCode.IMMUTABLE_RECORD


async def test_ledger_entries_cannot_be_deleted(session_factory, make_booking, load_ledger):
    booking_id = await make_booking()
    await add_entry(session_factory, booking_id)

    with pytest.raises(ImmutabilityViolationError):
        async with session_factory() as session:
            async with session.begin():
                entry = await ledger_service.get(session, booking_id, TransactionType.BOOKING_ENDED)
                await session.delete(entry)

    assert len(await load_ledger(booking_id)) == 1


async def test_write_once_booking_fields(session_factory, make_booking, load_booking):
    booking_id = await make_booking(status=BookingStatus.STARTED, started_at=NOW)

    with pytest.raises(ImmutabilityViolationError):
        async with session_factory() as session:
            async with session.begin():
                booking = await session.get(Booking, booking_id)
                booking.started_at = NOW + timedelta(hours=1)

    async with session_factory() as session:
        async with session.begin():
            booking = await session.get(Booking, booking_id)
            booking.end_host_confirmed_at = NOW

    assert (await load_booking(booking_id)).end_host_confirmed_at is not None


async def test_status_cannot_move_backwards(session_factory, make_booking, load_booking):
    booking_id = await make_booking(status=BookingStatus.STARTED)

    with pytest.raises(ImmutabilityViolationError):
        async with session_factory() as session:
            async with session.begin():
                booking = await session.get(Booking, booking_id)
                booking.status = BookingStatus.HOST_APPROVED.value

    assert (await load_booking(booking_id)).status == BookingStatus.STARTED.value


async def test_bookings_cannot_be_deleted(session_factory, make_booking):
    booking_id = await make_booking()

    with pytest.raises(ImmutabilityViolationError):
        async with session_factory() as session:
            async with session.begin():
                booking = await session.get(Booking, booking_id)
                await session.delete(booking)
