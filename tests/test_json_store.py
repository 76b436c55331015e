"""
Tests for durable booking and reservation persistence.
"""

from __future__ import annotations

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import GATEWAY_SECRET, START, TEST_CATALOG, customer, event_at
from studio_booking.application.exceptions import ConcurrentModification, StorageUnavailable
from studio_booking.core.config import settings
from studio_booking.domain.entities.booking import Booking, BookingStatus, PaymentStatus
from studio_booking.domain.entities.payment_intent import CallbackOutcome, CallbackResult
from studio_booking.domain.entities.reservation import Reservation, ReservationState
from studio_booking.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from studio_booking.infrastructure.gateway.signature import HmacSignatureVerifier
from studio_booking.infrastructure.store.json_store import JsonBookingStore, JsonReservationStore
from studio_booking.wiring.dependencies import build_engine, get_booking_store, get_reservation_store


def test_booking_lifecycle_survives_restart(clock, gateway):
    """A confirmed booking, its intent and callback result are read back by a fresh store."""
    with tempfile.TemporaryDirectory() as tmpdir:
        def make_engine():
            return build_engine(
                catalog=ServiceCatalogStore(TEST_CATALOG),
                booking_store=JsonBookingStore(data_dir=str(Path(tmpdir) / "bookings")),
                reservation_store=JsonReservationStore(file_path=str(Path(tmpdir) / "reservations.json")),
                gateway=gateway,
                verifier=HmacSignatureVerifier(GATEWAY_SECRET),
                clock=clock,
            )

        engine = make_engine()
        booking = engine.ledger.create(1, customer(), event_at(10))
        intent = engine.ledger.request_payment(booking.id)
        first = engine.reconciler.handle_callback(
            intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1")
        )

        restarted = make_engine()
        stored = restarted.ledger.get(booking.id)
        assert stored.status == BookingStatus.confirmed
        assert stored.payment_status == PaymentStatus.paid
        assert stored.customer == booking.customer
        assert stored.event == booking.event
        assert stored.slot_start == booking.slot_start
        assert stored.version == 2
        assert restarted.availability.get(booking.id).state == ReservationState.committed

        replay = restarted.reconciler.handle_callback(
            intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1")
        )
        assert replay == first


def test_json_store_compare_and_swap(clock, gateway):
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = build_engine(
            catalog=ServiceCatalogStore(TEST_CATALOG),
            booking_store=JsonBookingStore(data_dir=tmpdir),
            reservation_store=JsonReservationStore(file_path=str(Path(tmpdir) / "res" / "reservations.json")),
            gateway=gateway,
            verifier=HmacSignatureVerifier(GATEWAY_SECRET),
            clock=clock,
        )
        booking = engine.ledger.create(1, customer(), event_at(10))
        other_worker = JsonBookingStore(data_dir=tmpdir)
        engine.ledger.cancel(booking.id)

        with pytest.raises(ConcurrentModification):
            other_worker.replace(booking, expected_version=booking.version)


def test_callback_results_are_recorded_once():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        booking_id = _stored_booking(store)
        first = CallbackResult(outcome=CallbackOutcome.confirmed, gateway_payment_id="pay_1", booking_id=booking_id)
        second = CallbackResult(outcome=CallbackOutcome.stale, gateway_payment_id="pay_1", booking_id=booking_id)

        store.record_callback_result("pay_1", first)
        store.record_callback_result("pay_1", second)

        assert store.get_callback_result("pay_1") == first
        assert store.get_callback_result("pay_2") is None


def test_reservation_store_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonReservationStore(file_path=str(Path(tmpdir) / "reservations.json"))
        held = Reservation(
            booking_id="bk_1",
            service_offering_id=1,
            start=START + timedelta(days=1),
            end=START + timedelta(days=1, hours=1),
            expires_at=START + timedelta(minutes=15),
        )

        store.put(held)
        assert store.get("bk_1") == held
        store.put(held.committed())
        assert store.get("bk_1").state == ReservationState.committed
        assert store.get("bk_1").expires_at is None
        assert store.delete("bk_1") is True
        assert store.delete("bk_1") is False
        assert store.all() == []


def test_corrupt_file_raises_storage_unavailable():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        (Path(tmpdir) / "bk_broken.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageUnavailable):
            store.get("bk_broken")


def _stored_booking(store: JsonBookingStore) -> str:
    booking = Booking(
        id="bk_1",
        service_offering_id=1,
        customer=customer(),
        event=event_at(10),
        slot_start=START + timedelta(days=9),
        slot_end=START + timedelta(days=9, hours=1),
        total_amount=5000,
        currency="INR",
        hold_expires_at=START + timedelta(minutes=15),
        created_at=START,
        updated_at=START,
    )
    store.add(booking)
    return booking.id


@pytest.mark.parametrize("provider", ["json", "memory"])
def test_stores_refuse_multiple_workers(monkeypatch, provider):
    monkeypatch.setattr(settings, "STORE_PROVIDER", provider)
    monkeypatch.setattr(settings, "WEB_CONCURRENCY", 2)

    with pytest.raises(ValueError):
        get_booking_store()
    with pytest.raises(ValueError):
        get_reservation_store()
