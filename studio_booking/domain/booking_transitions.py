"""Booking lifecycle state machine."""

from __future__ import annotations

from enum import Enum

from studio_booking.application.exceptions import InvalidState
from studio_booking.domain.entities.booking import BookingStatus, PaymentStatus


class BookingEvent(str, Enum):
    confirm_payment = "confirm_payment"
    expire = "expire"
    cancel = "cancel"
    complete = "complete"


BOOKING_TRANSITIONS: dict[BookingStatus, dict[BookingEvent, BookingStatus]] = {
    BookingStatus.pending: {
        BookingEvent.confirm_payment: BookingStatus.confirmed,
        BookingEvent.expire: BookingStatus.cancelled,
        BookingEvent.cancel: BookingStatus.cancelled,
    },
    BookingStatus.confirmed: {
        BookingEvent.cancel: BookingStatus.cancelled,
        BookingEvent.complete: BookingStatus.completed,
    },
    BookingStatus.completed: {},
    BookingStatus.cancelled: {},
}


def next_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    target = BOOKING_TRANSITIONS.get(current, {}).get(event)
    if target is None:
        raise InvalidState(
            f"Invalid booking transition: {current.value} --{event.value}-->",
            current=current.value,
            event=event.value,
        )
    return target


def can_transition(current: BookingStatus, event: BookingEvent) -> bool:
    return event in BOOKING_TRANSITIONS.get(current, {})


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.unpaid: frozenset({PaymentStatus.paid, PaymentStatus.refund_pending}),
    PaymentStatus.paid: frozenset({PaymentStatus.refund_pending}),
    PaymentStatus.refund_pending: frozenset({PaymentStatus.refunded}),
    PaymentStatus.refunded: frozenset(),
}


def check_payment_transition(current: PaymentStatus, target: PaymentStatus) -> PaymentStatus:
    if current == target:
        return target
    if target not in PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise InvalidState(
            f"Invalid payment transition: {current.value} -> {target.value}",
            current=current.value,
            event=target.value,
        )
    return target
