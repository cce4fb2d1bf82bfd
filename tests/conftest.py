"""Shared fixtures.

Each test gets its own SQLite file database. Transactions open with
BEGIN IMMEDIATE (see app.database), so concurrent sessions serialise on the
write lock the same way row locks serialise them on PostgreSQL.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy import select

import app.models  # noqa: F401
from app.core.immutability import register_immutability_enforcement
from app.core.permissions import ClaimsAuthorizationPolicy, Principal
from app.database import Base, create_engine, create_session_factory
from app.domain.booking_state import BookingStatus
from app.domain.evidence import ArtifactKind
from app.models.booking import Booking
from app.models.ledger import BookingTransaction
from app.services.booking_store import BookingStore
from app.services.confirmation_service import ConfirmationService
from app.services.evidence_service import ArtifactStatus, EvidenceStatus, StoragePaths

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

RENTER_ID = "renter-1"
HOST_ID = "host-1"
ADMIN_ID = "ops-1"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeEvidenceGate:
    """In-memory evidence store keyed by booking and artifact kind."""

    def __init__(self) -> None:
        self.artifacts: set[tuple[str, ArtifactKind]] = set()
        self.damage_photos: dict[str, int] = {}

    def upload(self, booking_id: str, kind: ArtifactKind) -> None:
        self.artifacts.add((booking_id, kind))

    def upload_damage_photos(self, booking_id: str, n: int) -> None:
        self.damage_photos[booking_id] = n

    async def exists(self, booking_id: str, kind: ArtifactKind) -> bool:
        if kind is ArtifactKind.DAMAGE_PHOTO:
            return self.damage_photos.get(booking_id, 0) > 0
        return (booking_id, kind) in self.artifacts

    async def count_damage_photos(self, booking_id: str) -> int:
        return self.damage_photos.get(booking_id, 0)

    async def get_evidence_status(self, booking_id: str, include_urls: bool = True) -> EvidenceStatus:
        def status(kind: ArtifactKind) -> ArtifactStatus:
            if (booking_id, kind) not in self.artifacts:
                return ArtifactStatus(uploaded=False)
            path = StoragePaths.for_kind(booking_id, kind)
            return ArtifactStatus(uploaded=True, path=path, url=f"https://signed/{path}" if include_urls else None)

        photos = [
            StoragePaths.damage_photo(booking_id, n)
            for n in range(1, self.damage_photos.get(booking_id, 0) + 1)
        ]
        return EvidenceStatus(
            booking_id=booking_id,
            host_start_video=status(ArtifactKind.HOST_START_VIDEO),
            renter_start_video=status(ArtifactKind.RENTER_START_VIDEO),
            return_video=status(ArtifactKind.RETURN_VIDEO),
            damage_photo_paths=photos,
            damage_photo_urls=[f"https://signed/{p}" for p in photos] if include_urls else [],
            url_expires_in=300 if include_urls else None,
        )


class RecordingNotifier:
    def __init__(self) -> None:
        self.events = []

    async def publish_phase_changed(self, event) -> None:
        self.events.append(event)


class FailingNotifier:
    async def publish_phase_changed(self, event) -> None:
        raise RuntimeError("notification backend down")


@pytest.fixture
async def engine(tmp_path):
    register_immutability_enforcement()
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def gate():
    return FakeEvidenceGate()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def policy():
    return ClaimsAuthorizationPolicy(admin_roles=["admin"], admin_user_ids=[])


@pytest.fixture
def store(session_factory):
    return BookingStore(session_factory, max_attempts=5, deadline_seconds=30, retry_backoff_seconds=0)


@pytest.fixture
def confirmation_service(store, gate, notifier, clock):
    return ConfirmationService(
        store, gate, notifier=notifier, clock=clock, commission_rate=Decimal("0.10")
    )


@pytest.fixture
def renter():
    return Principal(user_id=RENTER_ID)


@pytest.fixture
def host():
    return Principal(user_id=HOST_ID)


@pytest.fixture
def admin():
    return Principal(user_id=ADMIN_ID, roles=frozenset({"admin"}))


_ids = count(1)


@pytest.fixture
def make_booking(session_factory):
    """Insert a booking and return its id."""

    async def _make(**overrides) -> str:
        booking_id = overrides.pop("id", None) or f"bk_{next(_ids)}"
        status = overrides.pop("status", BookingStatus.HOST_APPROVED)
        values = {
            "renter_id": RENTER_ID,
            "owner_id": HOST_ID,
            "vehicle_id": "car-1",
            "start_time": NOW - timedelta(hours=1),
            "end_time": NOW + timedelta(days=2),
            "amount_paid": Decimal("100.00"),
            "currency": "USD",
        }
        values.update(overrides)
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    Booking(
                        id=booking_id,
                        status=status.value if isinstance(status, BookingStatus) else status,
                        **values,
                    )
                )
        return booking_id

    return _make


@pytest.fixture
def load_booking(session_factory):
    async def _load(booking_id: str) -> Booking:
        async with session_factory() as session:
            return await session.get(Booking, booking_id)

    return _load


@pytest.fixture
def load_ledger(session_factory):
    async def _load(booking_id: str) -> list[BookingTransaction]:
        async with session_factory() as session:
            result = await session.execute(
                select(BookingTransaction)
                .where(BookingTransaction.booking_id == booking_id)
                .order_by(BookingTransaction.id)
            )
            return list(result.scalars().all())

    return _load
