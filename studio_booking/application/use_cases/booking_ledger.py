from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from studio_booking.application.exceptions import (
    BookingNotFound,
    InvalidBookingRequest,
    InvalidState,
    InvariantViolation,
    ReservationNotFound,
    ServiceNotFound,
    StaleOrUnknownPayment,
)
from studio_booking.application.ports.booking_store import BookingStorePort
from studio_booking.application.ports.notifications import NotificationPort
from studio_booking.application.ports.service_catalog import ServiceCatalogPort
from studio_booking.application.use_cases.availability import AvailabilityIndex
from studio_booking.application.utils.clock import Clock, utc_now
from studio_booking.application.utils.ids import new_id
from studio_booking.application.utils.keyed_locks import KeyedLocks
from studio_booking.application.utils.validation import is_valid_email, is_valid_phone
from studio_booking.domain.booking_transitions import BookingEvent, check_payment_transition, next_status
from studio_booking.domain.entities.booking import (
    Booking,
    BookingStatus,
    CancellationReason,
    CustomerInfo,
    EventDetails,
    PaymentStatus,
)
from studio_booking.domain.entities.payment_intent import PaymentIntent, PaymentIntentStatus
from studio_booking.domain.entities.reservation import Slot

if TYPE_CHECKING:
    from studio_booking.application.use_cases.payment_reconciler import PaymentReconciler


class BookingLedger:
    """
    Owns Booking and PaymentIntent state.

    Every mutation of one booking runs under that booking's lock and is
    written with a compare-and-swap on `Booking.version`. Reservation changes
    go through AvailabilityIndex; the booking lock is always taken before the
    calendar lock, never the other way round.
    """

    def __init__(
        self,
        store: BookingStorePort,
        catalog: ServiceCatalogPort,
        availability: AvailabilityIndex,
        timezone: ZoneInfo,
        notifier: NotificationPort | None = None,
        currency: str = "INR",
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._availability = availability
        self._timezone = timezone
        self._notifier = notifier
        self._currency = currency
        self._clock = clock
        self._locks = KeyedLocks()
        self._reconciler: "PaymentReconciler | None" = None
        self._outbox = threading.local()
        self._logger = logging.getLogger(__name__)

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    def bind_reconciler(self, reconciler: "PaymentReconciler") -> None:
        self._reconciler = reconciler

    # Queries

    def get(self, booking_id: str) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def list(self) -> list[Booking]:
        return self._store.list()

    def intents(self, booking_id: str) -> list[PaymentIntent]:
        return self._store.intents_for(booking_id)

    def active_intent(self, booking_id: str) -> PaymentIntent | None:
        active = [intent for intent in self._store.intents_for(booking_id) if not intent.superseded]
        return active[-1] if active else None

    # Commands

    def create(
        self,
        service_offering_id: int,
        customer: CustomerInfo,
        event: EventDetails,
        special_requests: str = "",
        notes: str | None = None,
    ) -> Booking:
        offering = self._catalog.get(service_offering_id)
        if not offering.is_active:
            raise ServiceNotFound(service_offering_id)
        _validate_customer(customer)

        slot = Slot.from_parts(event.event_date, event.event_time, offering.duration_minutes, self._timezone)
        now = self._clock()
        if slot.start <= now:
            raise InvalidBookingRequest("Event date and time must be in the future")

        booking_id = new_id("bk")
        try:
            with self._locks.hold(booking_id):
                reservation = self._availability.hold(slot, booking_id, offering.id)
                booking = Booking(
                    id=booking_id,
                    service_offering_id=offering.id,
                    customer=customer,
                    event=event,
                    slot_start=slot.start,
                    slot_end=slot.end,
                    total_amount=offering.price,
                    currency=self._currency,
                    hold_expires_at=reservation.expires_at or now + self._availability.hold_ttl,
                    created_at=now,
                    updated_at=now,
                    special_requests=special_requests,
                    notes=notes,
                )
                try:
                    self._store.add(booking)
                except Exception:
                    self._availability.release(booking_id)
                    raise
        finally:
            self.flush_notifications()

        self._logger.info(
            "Booking created",
            extra={"booking_id": booking_id, "status": booking.status.value, "service": offering.name},
        )
        return booking

    def request_payment(self, booking_id: str) -> PaymentIntent:
        try:
            with self._locks.hold(booking_id):
                booking = self.get(booking_id)
                if booking.status != BookingStatus.pending:
                    raise InvalidState(
                        f"Cannot request payment for a {booking.status.value} booking",
                        current=booking.status.value,
                        event="request_payment",
                    )
                if booking.hold_expires_at <= self._clock():
                    self._expire_locked(booking)
                    raise InvalidState(
                        "Booking hold expired before payment was requested",
                        current=BookingStatus.cancelled.value,
                        event="request_payment",
                    )

                active = self.active_intent(booking_id)
                if active is not None and active.status in (
                    PaymentIntentStatus.created,
                    PaymentIntentStatus.authorized,
                ):
                    return active

                if self._reconciler is None:
                    raise InvariantViolation("No payment reconciler bound to the ledger")
                intent = self._reconciler.create_intent(booking)
                if active is not None:
                    self._store.replace_intent(replace(active, superseded=True, updated_at=self._clock()))
                self._store.add_intent(intent)
        finally:
            self.flush_notifications()

        self._logger.info(
            "Payment intent created",
            extra={"booking_id": booking_id, "gateway_order_id": intent.gateway_order_id},
        )
        return intent

    def apply_payment_result(
        self,
        booking_id: str,
        gateway_payment_id: str,
        verified: bool,
        gateway_order_id: str,
    ) -> Booking:
        """
        Sole entry point for payment-driven transitions.

        Unverified results only mark the intent; the booking stays pending so
        the customer can retry. Verified results confirm the booking once the
        hold is committed. Anything that does not line up with the booking's
        open intent raises StaleOrUnknownPayment.
        """
        try:
            return self._apply_payment_result(booking_id, gateway_payment_id, verified, gateway_order_id)
        finally:
            self.flush_notifications()

    def _apply_payment_result(
        self,
        booking_id: str,
        gateway_payment_id: str,
        verified: bool,
        gateway_order_id: str,
    ) -> Booking:
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            intent = self._open_intent_for_order(booking_id, gateway_order_id)

            if not verified:
                if intent is not None:
                    self._store.replace_intent(
                        replace(intent, status=PaymentIntentStatus.verification_failed, updated_at=self._clock())
                    )
                self._logger.warning(
                    "Payment signature verification failed",
                    extra={
                        "booking_id": booking_id,
                        "gateway_order_id": gateway_order_id,
                        "gateway_payment_id": gateway_payment_id,
                    },
                )
                return booking

            if intent is None:
                raise StaleOrUnknownPayment(f"No open payment intent for order {gateway_order_id}")
            if booking.status != BookingStatus.pending:
                raise StaleOrUnknownPayment(f"Booking {booking_id} is {booking.status.value}")

            try:
                self._availability.commit(booking_id)
            except ReservationNotFound as e:
                self._expire_locked(booking)
                raise StaleOrUnknownPayment(f"Hold for booking {booking_id} lapsed before payment") from e

            confirmed = self._transition(
                booking,
                BookingEvent.confirm_payment,
                payment_status=PaymentStatus.paid,
                payment_reference=gateway_payment_id,
            )
            self._store.replace_intent(
                replace(
                    intent,
                    status=PaymentIntentStatus.captured,
                    gateway_payment_id=gateway_payment_id,
                    updated_at=self._clock(),
                )
            )

        self._logger.info(
            "Booking confirmed",
            extra={"booking_id": booking_id, "gateway_payment_id": gateway_payment_id, "status": "confirmed"},
        )
        self._notify("booking.confirmed", confirmed)
        return confirmed

    def mark_intent_authorized(self, gateway_order_id: str) -> PaymentIntent | None:
        return self._update_intent_status(
            gateway_order_id,
            PaymentIntentStatus.authorized,
            allowed=(PaymentIntentStatus.created,),
        )

    def mark_intent_failed(self, gateway_order_id: str) -> PaymentIntent | None:
        return self._update_intent_status(
            gateway_order_id,
            PaymentIntentStatus.failed,
            allowed=(PaymentIntentStatus.created, PaymentIntentStatus.authorized),
        )

    def expire(self, booking_id: str) -> Booking | None:
        with self._locks.hold(booking_id):
            booking = self._store.get(booking_id)
            if booking is None:
                self._logger.warning("Expiry for unknown booking", extra={"booking_id": booking_id})
                return None
            if booking.status != BookingStatus.pending:
                return booking
            expired = self._expire_locked(booking)
        self.flush_notifications()
        return expired

    def cancel(self, booking_id: str, by: CancellationReason = CancellationReason.admin) -> Booking:
        refund_needed = False
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            payment_status = booking.payment_status
            if booking.status == BookingStatus.confirmed and booking.payment_status == PaymentStatus.paid:
                payment_status = PaymentStatus.refund_pending
                refund_needed = True
            cancelled = self._transition(
                booking,
                BookingEvent.cancel,
                cancellation_reason=by,
                payment_status=payment_status,
            )
            self._availability.release(booking_id)

        self._logger.info(
            "Booking cancelled",
            extra={"booking_id": booking_id, "reason": by.value, "payment_status": payment_status.value},
        )
        self._notify("booking.cancelled", cancelled)
        if refund_needed and self._reconciler is not None:
            self._reconciler.initiate_refund(booking_id)
        return cancelled

    def mark_completed(self, booking_id: str) -> Booking:
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            if booking.status == BookingStatus.confirmed and booking.slot_end > self._clock():
                raise InvalidState(
                    "Event has not taken place yet",
                    current=booking.status.value,
                    event=BookingEvent.complete.value,
                )
            completed = self._transition(booking, BookingEvent.complete)

        self._logger.info("Booking completed", extra={"booking_id": booking_id, "status": "completed"})
        self._notify("booking.completed", completed)
        return completed

    def complete_past_events(self) -> list[str]:
        now = self._clock()
        completed: list[str] = []
        for booking in self._store.list():
            if booking.status != BookingStatus.confirmed or booking.slot_end > now:
                continue
            try:
                self.mark_completed(booking.id)
            except InvalidState:
                continue
            completed.append(booking.id)
        return completed

    def override_status(
        self,
        booking_id: str,
        target: BookingStatus,
        by: CancellationReason = CancellationReason.admin,
    ) -> Booking:
        if target == BookingStatus.cancelled:
            return self.cancel(booking_id, by=by)
        if target == BookingStatus.completed:
            return self.mark_completed(booking_id)
        booking = self.get(booking_id)
        raise InvalidState(
            f"Status {target.value} cannot be set manually",
            current=booking.status.value,
            event=f"override:{target.value}",
        )

    def record_orphaned_payment(self, booking_id: str, gateway_order_id: str, gateway_payment_id: str) -> Booking:
        """A verified payment landed on a booking that already expired; queue it for refund."""
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            if booking.status != BookingStatus.cancelled or booking.payment_status != PaymentStatus.unpaid:
                raise InvalidState(
                    "Only an unpaid cancelled booking can absorb an orphaned payment",
                    current=booking.status.value,
                    event="orphaned_payment",
                )
            updated = self._save(
                booking,
                replace(
                    booking,
                    payment_status=check_payment_transition(booking.payment_status, PaymentStatus.refund_pending),
                    payment_reference=gateway_payment_id,
                ),
            )
            intent = self._store.find_intent_by_order(gateway_order_id)
            if intent is not None and intent.booking_id == booking_id:
                self._store.replace_intent(
                    replace(
                        intent,
                        status=PaymentIntentStatus.captured,
                        gateway_payment_id=gateway_payment_id,
                        updated_at=self._clock(),
                    )
                )

        self._logger.warning(
            "Orphaned payment queued for refund",
            extra={"booking_id": booking_id, "gateway_payment_id": gateway_payment_id},
        )
        return updated

    def record_stray_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        refund_id: str | None = None,
    ) -> PaymentIntent | None:
        """
        Note a verified payment that cannot pay for its booking on the intent it
        landed on. The booking itself is left alone. An intent already holding
        another payment keeps it, so refunds of that payment still match.
        """
        intent = self._store.find_intent_by_order(gateway_order_id)
        if intent is None:
            return None
        with self._locks.hold(intent.booking_id):
            intent = self._store.find_intent_by_order(gateway_order_id)
            if intent is None or intent.gateway_payment_id not in (None, gateway_payment_id):
                return intent
            intent = replace(
                intent,
                status=PaymentIntentStatus.captured,
                gateway_payment_id=gateway_payment_id,
                refund_id=refund_id or intent.refund_id,
                updated_at=self._clock(),
            )
            self._store.replace_intent(intent)
        return intent

    def record_refund_requested(self, booking_id: str, refund_id: str) -> None:
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            if booking.payment_reference is None:
                raise InvariantViolation(f"Refund requested for booking {booking_id} without a payment")
            intent = self._store.find_intent_by_payment(booking.payment_reference)
            if intent is not None:
                self._store.replace_intent(replace(intent, refund_id=refund_id, updated_at=self._clock()))

    def apply_refund_result(self, booking_id: str) -> Booking:
        with self._locks.hold(booking_id):
            booking = self.get(booking_id)
            if booking.payment_status == PaymentStatus.refunded:
                return booking
            refunded = self._save(
                booking,
                replace(
                    booking,
                    payment_status=check_payment_transition(booking.payment_status, PaymentStatus.refunded),
                ),
            )

        self._logger.info("Refund completed", extra={"booking_id": booking_id, "payment_status": "refunded"})
        self._notify("booking.refunded", refunded)
        return refunded

    # Internals

    def _expire_locked(self, booking: Booking) -> Booking:
        expired = self._transition(booking, BookingEvent.expire, cancellation_reason=CancellationReason.expired)
        self._availability.release(booking.id)
        self._logger.info("Booking expired", extra={"booking_id": booking.id, "reason": "expired"})
        self._notify("booking.expired", expired)
        return expired

    def _transition(self, booking: Booking, event: BookingEvent, **changes) -> Booking:
        status = next_status(booking.status, event)
        if "payment_status" in changes:
            check_payment_transition(booking.payment_status, changes["payment_status"])
        return self._save(booking, replace(booking, status=status, **changes))

    def _save(self, current: Booking, updated: Booking) -> Booking:
        updated = replace(updated, version=current.version + 1, updated_at=self._clock())
        self._store.replace(updated, expected_version=current.version)
        return updated

    def _open_intent_for_order(self, booking_id: str, gateway_order_id: str) -> PaymentIntent | None:
        intent = self._store.find_intent_by_order(gateway_order_id)
        if intent is None or intent.booking_id != booking_id or not intent.is_open:
            return None
        return intent

    def _update_intent_status(
        self,
        gateway_order_id: str,
        status: PaymentIntentStatus,
        allowed: tuple[PaymentIntentStatus, ...],
    ) -> PaymentIntent | None:
        intent = self._store.find_intent_by_order(gateway_order_id)
        if intent is None:
            return None
        with self._locks.hold(intent.booking_id):
            intent = self._store.find_intent_by_order(gateway_order_id)
            if intent is None or intent.superseded or intent.status not in allowed:
                return intent
            updated = replace(intent, status=status, updated_at=self._clock())
            self._store.replace_intent(updated)
        self._logger.info(
            "Payment intent updated",
            extra={"booking_id": updated.booking_id, "gateway_order_id": gateway_order_id, "status": status.value},
        )
        return updated

    def _notify(self, event: str, booking: Booking) -> None:
        if self._notifier is None:
            return
        self._pending_notifications().append((event, booking))
        self.flush_notifications()

    def flush_notifications(self) -> None:
        """Publish queued events once the calling thread holds no booking lock."""
        if self._notifier is None or self._locks.held():
            return
        pending = self._pending_notifications()
        while pending:
            event, booking = pending.pop(0)
            try:
                self._notifier.publish(event, booking)
            except Exception as e:
                self._logger.exception(
                    "Notification failed",
                    extra={"booking_id": booking.id, "reason": event, "error": str(e)},
                )

    def _pending_notifications(self) -> list[tuple[str, Booking]]:
        # Per thread, so one caller never publishes another caller's events.
        if not hasattr(self._outbox, "events"):
            self._outbox.events = []
        return self._outbox.events


def _validate_customer(customer: CustomerInfo) -> None:
    if not customer.name.strip():
        raise InvalidBookingRequest("Customer name is required")
    if not is_valid_email(customer.email):
        raise InvalidBookingRequest("Customer email is invalid")
    if not is_valid_phone(customer.phone):
        raise InvalidBookingRequest("Customer phone is invalid")
