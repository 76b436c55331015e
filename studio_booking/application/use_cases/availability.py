from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from studio_booking.application.exceptions import (
    HoldExpired,
    InvariantViolation,
    ReservationNotFound,
    SlotConflict,
)
from studio_booking.application.ports.reservation_store import ReservationStorePort
from studio_booking.application.utils.clock import Clock, utc_now
from studio_booking.domain.entities.reservation import Reservation, ReservationState, Slot


class AvailabilityIndex:
    """
    The single studio calendar.

    Every read-modify-write of reservations happens under one mutex. The mutex
    is never held across a network call or while calling back into the ledger.
    """

    def __init__(
        self,
        store: ReservationStorePort,
        timezone: ZoneInfo,
        hold_ttl: timedelta = timedelta(minutes=15),
        open_hour: int = 9,
        close_hour: int = 20,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._hold_ttl = hold_ttl
        self._open_hour = open_hour
        self._close_hour = close_hour
        self._clock = clock
        self._lock = threading.Lock()
        self._on_expired: Callable[[str], None] | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def hold_ttl(self) -> timedelta:
        return self._hold_ttl

    def set_expiry_listener(self, listener: Callable[[str], None]) -> None:
        self._on_expired = listener

    def check_available(self, slot: Slot) -> bool:
        with self._lock:
            return self._first_overlap(slot, self._clock()) is None

    def get(self, booking_id: str) -> Reservation | None:
        with self._lock:
            return self._store.get(booking_id)

    def hold(
        self,
        slot: Slot,
        booking_id: str,
        service_offering_id: int,
        ttl: timedelta | None = None,
    ) -> Reservation:
        reservation: Reservation | None = None
        with self._lock:
            now = self._clock()
            lapsed = self._purge_expired(now)
            if self._store.get(booking_id) is not None:
                raise InvariantViolation(f"Booking {booking_id} already holds a reservation")
            conflict = self._first_overlap(slot, now)
            if conflict is None:
                reservation = Reservation(
                    booking_id=booking_id,
                    service_offering_id=service_offering_id,
                    start=slot.start,
                    end=slot.end,
                    state=ReservationState.held,
                    expires_at=now + (ttl or self._hold_ttl),
                )
                self._store.put(reservation)

        self._notify_expired(lapsed)

        if reservation is None:
            duration = int((slot.end - slot.start).total_seconds() // 60)
            local_day = slot.start.astimezone(self._timezone).date()
            alternatives = self.find_available_slots(local_day, duration, limit=3)
            self._logger.info(
                "Slot conflict",
                extra={"booking_id": booking_id, "reason": f"overlaps {conflict.booking_id}"},
            )
            raise SlotConflict(slot.start, slot.end, alternatives)

        self._logger.info("Slot held", extra={"booking_id": booking_id, "start": slot.start.isoformat()})
        return reservation

    def commit(self, booking_id: str) -> Reservation:
        with self._lock:
            reservation = self._store.get(booking_id)
            if reservation is None:
                raise ReservationNotFound(f"No reservation for booking {booking_id}")
            if reservation.state == ReservationState.committed:
                return reservation
            if reservation.is_expired(self._clock()):
                self._store.delete(booking_id)
                raise HoldExpired(f"Hold for booking {booking_id} expired")
            committed = reservation.committed()
            self._store.put(committed)

        self._logger.info("Reservation committed", extra={"booking_id": booking_id})
        return committed

    def release(self, booking_id: str) -> bool:
        with self._lock:
            removed = self._store.delete(booking_id)
        if removed:
            self._logger.info("Reservation released", extra={"booking_id": booking_id})
        return removed

    def sweep(self) -> list[str]:
        """Release lapsed holds and tell the ledger. Returns released booking ids."""
        with self._lock:
            lapsed = self._purge_expired(self._clock())
        self._notify_expired(lapsed)
        return lapsed

    def find_available_slots(
        self,
        day: date,
        duration_minutes: int,
        start_hour: int | None = None,
        end_hour: int | None = None,
        step_minutes: int = 30,
        limit: int = 10,
    ) -> list[datetime]:
        start_hour = self._open_hour if start_hour is None else start_hour
        end_hour = self._close_hour if end_hour is None else end_hour
        current = datetime.combine(day, time(hour=start_hour), tzinfo=self._timezone)
        end_time = datetime.combine(day, time(hour=end_hour), tzinfo=self._timezone)

        slots: list[datetime] = []
        with self._lock:
            now = self._clock()
            while current + timedelta(minutes=duration_minutes) <= end_time and len(slots) < limit:
                candidate = Slot(start=current, end=current + timedelta(minutes=duration_minutes))
                if current > now and self._first_overlap(candidate, now) is None:
                    slots.append(current)
                current += timedelta(minutes=step_minutes)
        return slots

    def _first_overlap(self, slot: Slot, now: datetime) -> Reservation | None:
        for reservation in self._store.all():
            if reservation.is_live(now) and reservation.slot.overlaps(slot):
                return reservation
        return None

    def _purge_expired(self, now: datetime) -> list[str]:
        lapsed: list[str] = []
        for reservation in self._store.all():
            if reservation.is_expired(now):
                self._store.delete(reservation.booking_id)
                lapsed.append(reservation.booking_id)
        return lapsed

    def _notify_expired(self, booking_ids: list[str]) -> None:
        for booking_id in booking_ids:
            self._logger.info("Hold expired", extra={"booking_id": booking_id, "reason": "expired"})
            if self._on_expired is None:
                continue
            try:
                self._on_expired(booking_id)
            except Exception as e:
                self._logger.exception(
                    "Failed to expire booking after hold lapsed",
                    extra={"booking_id": booking_id, "error": str(e)},
                )
