import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import (
    AlreadyExistsError,
    AuthenticationError,
    AuthorizationError,
    ErrorCode,
    FailedPreconditionError,
    NotFoundError,
    ValidationError,
)
from app.domain.booking_state import Actor, BookingStatus, Phase, TransactionType
from app.domain.evidence import ArtifactKind
from app.domain.settlement import settle
from app.models.booking import Booking
from app.services.confirmation_service import ConfirmationService
from app.services.ledger_service import ledger_service
from tests.conftest import NOW, FailingNotifier


def upload_start_videos(gate, booking_id):
    gate.upload(booking_id, ArtifactKind.HOST_START_VIDEO)
    gate.upload(booking_id, ArtifactKind.RENTER_START_VIDEO)


async def start_trip(service, gate, booking_id, host, renter):
    upload_start_videos(gate, booking_id)
    await service.confirm_start(booking_id, host, "host")
    await service.confirm_start(booking_id, renter, "renter")


# ==================== START ====================


async def test_host_then_renter_start_the_trip_and_settle(
    confirmation_service, gate, make_booking, load_booking, load_ledger, host, renter
):
    booking_id = await make_booking(amount_paid=Decimal("100.00"))
    upload_start_videos(gate, booking_id)

    first = await confirmation_service.confirm_start(booking_id, host, "host")
    assert not first.advanced
    assert not first.both_confirmed
    assert first.new_status == BookingStatus.HOST_APPROVED.value
    assert first.message == "Host confirmed. Waiting for renter to confirm."

    second = await confirmation_service.confirm_start(booking_id, renter, "renter")
    assert second.advanced
    assert second.both_confirmed
    assert second.new_status == BookingStatus.STARTED.value
    assert second.message == "Both parties confirmed. Trip has started."

    booking = await load_booking(booking_id)
    assert booking.status == BookingStatus.STARTED.value
    assert booking.started_at is not None
    assert booking.platform_fee == Decimal("10.00")
    assert booking.host_earning == Decimal("90.00")

    entries = {entry.type: entry for entry in await load_ledger(booking_id)}
    assert set(entries) == {"booking_started", "funds_received"}
    assert entries["booking_started"].id == f"{booking_id}_booking_started"
    assert entries["booking_started"].actor == "system"
    assert entries["booking_started"].details == {"completed_by": "renter"}
    funds = entries["funds_received"]
    assert funds.gross_amount == Decimal("100.00")
    assert funds.platform_fee == Decimal("10.00")
    assert funds.host_earning == Decimal("90.00")
    assert funds.renter_id == booking.renter_id
    assert funds.owner_id == booking.owner_id
    assert funds.vehicle_id == "car-1"


async def test_renter_cannot_confirm_start_before_host(
    confirmation_service, gate, make_booking, load_booking, renter
):
    booking_id = await make_booking()
    upload_start_videos(gate, booking_id)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_start(booking_id, renter, "renter")

    assert exc_info.value.code is ErrorCode.INVALID_STATE
    booking = await load_booking(booking_id)
    assert booking.start_renter_confirmed_at is None


async def test_duplicate_start_confirmation_is_reported_not_rejected(
    confirmation_service, gate, make_booking, load_booking, host
):
    booking_id = await make_booking()
    upload_start_videos(gate, booking_id)
    await confirmation_service.confirm_start(booking_id, host, "host")
    first_confirmed_at = (await load_booking(booking_id)).start_host_confirmed_at

    again = await confirmation_service.confirm_start(booking_id, host, "host")

    assert again.already_confirmed
    assert not again.advanced
    assert (await load_booking(booking_id)).start_host_confirmed_at == first_confirmed_at


async def test_start_requires_walkaround_video(confirmation_service, make_booking, host):
    booking_id = await make_booking()

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_start(booking_id, host, "host")

    assert exc_info.value.code is ErrorCode.VIDEO_REQUIRED
    assert exc_info.value.details["required_action"] == "Upload walkaround video"


async def test_start_before_scheduled_time_is_rejected(
    confirmation_service, gate, make_booking, host
):
    booking_id = await make_booking(start_time=NOW + timedelta(hours=3))
    upload_start_videos(gate, booking_id)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_start(booking_id, host, "host")

    assert exc_info.value.code is ErrorCode.TIME_NOT_REACHED
    assert "start_time" in exc_info.value.details


async def test_start_from_admin_approved(confirmation_service, gate, make_booking, host, renter):
    booking_id = await make_booking(status=BookingStatus.ADMIN_APPROVED)
    await start_trip(confirmation_service, gate, booking_id, host, renter)

    result = await confirmation_service.confirm_start(booking_id, renter, "renter")

    assert result.already_confirmed
    assert result.both_confirmed
    assert result.new_status == BookingStatus.STARTED.value


@pytest.mark.parametrize("status", [BookingStatus.REQUESTED, BookingStatus.PENDING_ADMIN_APPROVAL, "approved"])
async def test_start_requires_approved_booking(confirmation_service, gate, make_booking, host, status):
    booking_id = await make_booking(status=status)
    upload_start_videos(gate, booking_id)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_start(booking_id, host, "host")

    assert exc_info.value.code is ErrorCode.INVALID_STATE
    assert exc_info.value.details["current_status"] == (
        status.value if isinstance(status, BookingStatus) else status
    )


# ==================== END ====================


async def test_end_either_party_first_then_both_end_the_trip(
    confirmation_service, gate, clock, make_booking, load_booking, load_ledger, host, renter
):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)
    clock.advance(days=3)

    first = await confirmation_service.confirm_end(booking_id, renter, "renter")
    assert not first.both_confirmed
    assert first.message == "Waiting for host confirmation"

    second = await confirmation_service.confirm_end(booking_id, host, "host")
    assert second.advanced
    assert second.new_status == BookingStatus.ENDED.value

    booking = await load_booking(booking_id)
    assert booking.ended_at is not None
    assert not booking.damage_reported
    types = [entry.type for entry in await load_ledger(booking_id)]
    assert TransactionType.BOOKING_ENDED.value in types


async def test_end_before_end_time_is_rejected(confirmation_service, gate, make_booking, host, renter):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_end(booking_id, renter, "renter")

    assert exc_info.value.code is ErrorCode.TIME_NOT_REACHED


async def test_end_requires_started_booking(confirmation_service, clock, make_booking, renter):
    booking_id = await make_booking()
    clock.advance(days=3)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_end(booking_id, renter, "renter")

    assert exc_info.value.code is ErrorCode.INVALID_STATE


async def test_duplicate_end_confirmation_is_rejected(
    confirmation_service, gate, clock, make_booking, host, renter
):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)
    clock.advance(days=3)
    await confirmation_service.confirm_end(booking_id, renter, "renter")

    with pytest.raises(AlreadyExistsError) as exc_info:
        await confirmation_service.confirm_end(booking_id, renter, "renter")

    assert exc_info.value.code is ErrorCode.DUPLICATE_ACTION


async def test_damage_report_requires_photos(
    confirmation_service, gate, clock, make_booking, load_booking, host, renter
):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)
    clock.advance(days=3)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_end(booking_id, host, "host", has_damage=True)
    assert exc_info.value.code is ErrorCode.DAMAGE_PHOTOS_REQUIRED
    assert exc_info.value.details["required_action"] == "Upload damage photos"
    assert (await load_booking(booking_id)).end_host_confirmed_at is None

    gate.upload_damage_photos(booking_id, 1)
    result = await confirmation_service.confirm_end(booking_id, host, "host", has_damage=True)

    assert not result.both_confirmed
    assert (await load_booking(booking_id)).damage_reported


# ==================== COMPLETION ====================


async def end_trip(service, gate, clock, booking_id, host, renter):
    await start_trip(service, gate, booking_id, host, renter)
    clock.advance(days=3)
    await service.confirm_end(booking_id, renter, "renter")
    await service.confirm_end(booking_id, host, "host")


async def test_completion_needs_return_video_and_both_parties(
    confirmation_service, gate, clock, make_booking, load_booking, load_ledger, host, renter
):
    booking_id = await make_booking()
    await end_trip(confirmation_service, gate, clock, booking_id, host, renter)

    with pytest.raises(FailedPreconditionError) as exc_info:
        await confirmation_service.confirm_completion(booking_id, host, "host")
    assert exc_info.value.code is ErrorCode.RETURN_VIDEO_REQUIRED

    gate.upload(booking_id, ArtifactKind.RETURN_VIDEO)
    first = await confirmation_service.confirm_completion(booking_id, host, "host")
    assert first.new_status == BookingStatus.ENDED.value

    second = await confirmation_service.confirm_completion(booking_id, renter, "renter")
    assert second.advanced
    assert second.new_status == BookingStatus.COMPLETED.value
    assert second.message == "Booking completed successfully"

    booking = await load_booking(booking_id)
    assert booking.completed_at is not None
    types = sorted(entry.type for entry in await load_ledger(booking_id))
    assert types == ["booking_completed", "booking_ended", "booking_started", "funds_received"]


async def test_confirmation_after_phase_recorded_is_idempotent(
    confirmation_service, gate, clock, make_booking, load_ledger, host, renter
):
    booking_id = await make_booking()
    await end_trip(confirmation_service, gate, clock, booking_id, host, renter)
    before = await load_ledger(booking_id)

    replay = await confirmation_service.confirm_end(booking_id, renter, "renter")

    assert replay.already_confirmed
    assert replay.both_confirmed
    assert not replay.advanced
    assert replay.message == "Booking already ended by both parties"
    assert [e.id for e in await load_ledger(booking_id)] == [e.id for e in before]


async def test_start_recorded_only_by_funds_received_is_idempotent(
    confirmation_service, session_factory, make_booking, load_ledger, renter
):
    # Rows written before booking_started existed carry only the settlement entry
    booking_id = await make_booking(status=BookingStatus.STARTED)
    async with session_factory() as session:
        async with session.begin():
            booking = await session.get(Booking, booking_id)
            ledger_service.add_funds_received(session, booking, settle(Decimal("100.00")))

    result = await confirmation_service.confirm_start(booking_id, renter, "renter")

    assert result.already_confirmed
    assert result.both_confirmed
    assert not result.advanced
    assert result.new_status == BookingStatus.STARTED.value
    assert result.message == "Trip has already started"
    assert [e.id for e in await load_ledger(booking_id)] == [f"{booking_id}_funds_received"]


# ==================== AUTH & INPUT ====================


async def test_only_the_booking_party_may_confirm_its_role(confirmation_service, gate, make_booking, renter):
    booking_id = await make_booking()
    upload_start_videos(gate, booking_id)

    with pytest.raises(AuthorizationError) as exc_info:
        await confirmation_service.confirm_start(booking_id, renter, "host")

    assert exc_info.value.code is ErrorCode.UNAUTHORIZED


async def test_invalid_inputs(confirmation_service, make_booking, host):
    booking_id = await make_booking()

    with pytest.raises(AuthenticationError):
        await confirmation_service.confirm_start(booking_id, None, "host")
    with pytest.raises(ValidationError):
        await confirmation_service.confirm_start("  ", host, "host")
    with pytest.raises(ValidationError) as exc_info:
        await confirmation_service.confirm_start(booking_id, host, "driver")
    assert exc_info.value.code is ErrorCode.INVALID_ACTOR


async def test_unknown_booking(confirmation_service, host):
    with pytest.raises(NotFoundError) as exc_info:
        await confirmation_service.confirm_start("missing", host, "host")

    assert exc_info.value.code is ErrorCode.BOOKING_NOT_FOUND


# ==================== CONCURRENCY ====================


async def test_concurrent_final_confirmations_write_one_entry(
    confirmation_service, gate, clock, make_booking, load_booking, load_ledger, host, renter
):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)
    clock.advance(days=3)

    results = await asyncio.gather(
        confirmation_service.confirm_end(booking_id, renter, "renter"),
        confirmation_service.confirm_end(booking_id, host, "host"),
    )

    assert sum(result.advanced for result in results) == 1
    assert (await load_booking(booking_id)).status == BookingStatus.ENDED.value
    ended = [e for e in await load_ledger(booking_id) if e.type == "booking_ended"]
    assert len(ended) == 1


async def test_concurrent_replays_of_completing_confirmation(
    confirmation_service, gate, make_booking, load_ledger, host, renter
):
    booking_id = await make_booking()
    upload_start_videos(gate, booking_id)
    await confirmation_service.confirm_start(booking_id, host, "host")

    results = await asyncio.gather(
        *[confirmation_service.confirm_start(booking_id, renter, "renter") for _ in range(4)]
    )

    assert sum(result.advanced for result in results) == 1
    assert all(result.both_confirmed for result in results)
    types = sorted(e.type for e in await load_ledger(booking_id))
    assert types == ["booking_started", "funds_received"]


# ==================== NOTIFICATIONS ====================


async def test_phase_events_are_published_after_commit(
    confirmation_service, gate, notifier, make_booking, host, renter
):
    booking_id = await make_booking()
    await start_trip(confirmation_service, gate, booking_id, host, renter)

    assert [(e.actor, e.both_confirmed) for e in notifier.events] == [("host", False), ("renter", True)]
    assert notifier.events[-1].new_status == BookingStatus.STARTED.value


async def test_notification_failure_does_not_affect_result(
    store, gate, clock, make_booking, load_booking, host
):
    service = ConfirmationService(store, gate, notifier=FailingNotifier(), clock=clock)
    booking_id = await make_booking()
    upload_start_videos(gate, booking_id)

    result = await service.confirm_start(booking_id, host, "host")

    assert result.actor is Actor.HOST
    assert (await load_booking(booking_id)).confirmation(Phase.START, Actor.HOST).is_confirmed
