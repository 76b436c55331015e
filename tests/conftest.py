from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from studio_booking.application.use_cases.availability import AvailabilityIndex
from studio_booking.domain.entities.booking import Booking, CustomerInfo, EventDetails
from studio_booking.domain.entities.service_offering import ServiceOffering
from studio_booking.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from studio_booking.infrastructure.gateway.mock_gateway import MockPaymentGateway
from studio_booking.infrastructure.gateway.signature import HmacSignatureVerifier
from studio_booking.infrastructure.store.memory_store import MemoryBookingStore, MemoryReservationStore
from studio_booking.wiring.dependencies import BookingEngine, build_engine


TZ = ZoneInfo("Asia/Kolkata")
START = datetime(2030, 1, 1, 0, 0, tzinfo=timezone.utc)
EVENT_DAY = date(2030, 1, 10)
GATEWAY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def publish(self, event: str, booking: Booking) -> None:
        self.events.append((event, booking.id))


TEST_CATALOG = {
    1: ServiceOffering(id=1, name="Studio Session", category="photography", price=5000, duration_minutes=60),
    2: ServiceOffering(id=2, name="Half Day Shoot", category="photography", price=20000, duration_minutes=240),
    3: ServiceOffering(
        id=3, name="Retired Package", category="other", price=1000, duration_minutes=60, is_active=False
    ),
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway(key_secret=GATEWAY_SECRET)


@pytest.fixture
def catalog() -> ServiceCatalogStore:
    return ServiceCatalogStore(TEST_CATALOG)


@pytest.fixture
def booking_store() -> MemoryBookingStore:
    return MemoryBookingStore()


@pytest.fixture
def engine(clock, notifier, gateway, catalog, booking_store) -> BookingEngine:
    return build_engine(
        catalog=catalog,
        booking_store=booking_store,
        reservation_store=MemoryReservationStore(),
        gateway=gateway,
        verifier=HmacSignatureVerifier(GATEWAY_SECRET),
        webhook_verifier=HmacSignatureVerifier(WEBHOOK_SECRET),
        notifier=notifier,
        clock=clock,
        hold_ttl=timedelta(minutes=15),
    )


@pytest.fixture
def availability(clock) -> AvailabilityIndex:
    return AvailabilityIndex(
        store=MemoryReservationStore(),
        timezone=TZ,
        hold_ttl=timedelta(minutes=15),
        open_hour=9,
        close_hour=20,
        clock=clock,
    )


def customer(name: str = "Asha Rao") -> CustomerInfo:
    return CustomerInfo(name=name, email="asha@example.com", phone="+91 98765 43210")


def event_at(hour: int, minute: int = 0, day: date = EVENT_DAY) -> EventDetails:
    return EventDetails(event_date=day, event_time=time(hour, minute), location="Studio A", event_type="portrait")


def local(hour: int, minute: int = 0, day: date = EVENT_DAY) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=TZ)
