from __future__ import annotations

import threading

from studio_booking.application.exceptions import ConcurrentModification, InvariantViolation
from studio_booking.application.ports.booking_store import BookingStorePort
from studio_booking.application.ports.reservation_store import ReservationStorePort
from studio_booking.domain.entities.booking import Booking
from studio_booking.domain.entities.payment_intent import CallbackResult, PaymentIntent
from studio_booking.domain.entities.reservation import Reservation


class MemoryBookingStore(BookingStorePort):
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._intents: dict[str, PaymentIntent] = {}
        self._intents_by_booking: dict[str, list[str]] = {}
        self._callback_results: dict[str, CallbackResult] = {}
        self._lock = threading.Lock()

    def get(self, booking_id: str) -> Booking | None:
        with self._lock:
            return self._bookings.get(booking_id)

    def add(self, booking: Booking) -> None:
        with self._lock:
            if booking.id in self._bookings:
                raise InvariantViolation(f"Booking {booking.id} already exists")
            self._bookings[booking.id] = booking

    def replace(self, booking: Booking, expected_version: int) -> None:
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None or current.version != expected_version:
                raise ConcurrentModification(booking.id, expected_version)
            self._bookings[booking.id] = booking

    def list(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def add_intent(self, intent: PaymentIntent) -> None:
        with self._lock:
            self._intents[intent.id] = intent
            self._intents_by_booking.setdefault(intent.booking_id, []).append(intent.id)

    def replace_intent(self, intent: PaymentIntent) -> None:
        with self._lock:
            if intent.id not in self._intents:
                raise InvariantViolation(f"Payment intent {intent.id} does not exist")
            self._intents[intent.id] = intent

    def intents_for(self, booking_id: str) -> list[PaymentIntent]:
        with self._lock:
            return [self._intents[i] for i in self._intents_by_booking.get(booking_id, [])]

    def find_intent_by_order(self, gateway_order_id: str) -> PaymentIntent | None:
        with self._lock:
            for intent in self._intents.values():
                if intent.gateway_order_id == gateway_order_id:
                    return intent
            return None

    def find_intent_by_payment(self, gateway_payment_id: str) -> PaymentIntent | None:
        with self._lock:
            for intent in self._intents.values():
                if intent.gateway_payment_id == gateway_payment_id:
                    return intent
            return None

    def get_callback_result(self, gateway_payment_id: str) -> CallbackResult | None:
        with self._lock:
            return self._callback_results.get(gateway_payment_id)

    def record_callback_result(self, gateway_payment_id: str, result: CallbackResult) -> None:
        with self._lock:
            self._callback_results.setdefault(gateway_payment_id, result)


class MemoryReservationStore(ReservationStorePort):
    def __init__(self) -> None:
        self._reservations: dict[str, Reservation] = {}

    def get(self, booking_id: str) -> Reservation | None:
        return self._reservations.get(booking_id)

    def put(self, reservation: Reservation) -> None:
        self._reservations[reservation.booking_id] = reservation

    def delete(self, booking_id: str) -> bool:
        return self._reservations.pop(booking_id, None) is not None

    def all(self) -> list[Reservation]:
        return list(self._reservations.values())
