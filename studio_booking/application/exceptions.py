from __future__ import annotations

from datetime import datetime


class BookingEngineError(Exception):
    """Base class for typed booking engine errors surfaced to callers."""
    pass


class ServiceNotFound(BookingEngineError):
    """Raised when a service offering does not exist or is not bookable."""

    def __init__(self, service_offering_id: int) -> None:
        super().__init__(f"Service offering {service_offering_id} not found")
        self.service_offering_id = service_offering_id


class BookingNotFound(BookingEngineError):
    """Raised when a booking id does not resolve to a stored booking."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class SlotConflict(BookingEngineError):
    """Raised when a requested window overlaps a live reservation."""

    def __init__(self, start: datetime, end: datetime, alternatives: list[datetime] | None = None) -> None:
        super().__init__(f"Slot {start.isoformat()} - {end.isoformat()} is not available")
        self.start = start
        self.end = end
        self.alternatives = list(alternatives or [])


class InvalidState(BookingEngineError):
    """Raised when an operation is not legal for the booking's current state."""

    def __init__(self, message: str, current: str | None = None, event: str | None = None) -> None:
        super().__init__(message)
        self.current = current
        self.event = event


class InvalidBookingRequest(BookingEngineError):
    """Raised when booking input fails validation."""
    pass


class StaleOrUnknownPayment(BookingEngineError):
    """Raised when a payment result does not match an active intent."""
    pass


class ConcurrentModification(BookingEngineError):
    """Raised when an optimistic version check fails; retry the whole command."""

    def __init__(self, booking_id: str, expected_version: int) -> None:
        super().__init__(f"Booking {booking_id} changed concurrently (expected version {expected_version})")
        self.booking_id = booking_id
        self.expected_version = expected_version


class ReservationNotFound(BookingEngineError):
    """Raised when no reservation exists for a booking."""
    pass


class HoldExpired(ReservationNotFound):
    """Raised when a held reservation lapsed before it could be committed."""
    pass


class GatewayUnavailable(BookingEngineError):
    """Transient payment gateway failure; the customer may retry."""
    pass


class GatewayTimeout(GatewayUnavailable):
    """Raised when the payment gateway does not answer in time."""
    pass


class GatewayError(GatewayUnavailable):
    """Raised when the payment gateway rejects a request or returns garbage."""
    pass


class WebhookSignatureInvalid(BookingEngineError):
    """Raised when a gateway webhook body fails signature verification."""
    pass


class StorageUnavailable(RuntimeError):
    """Raised when the persistence backend cannot be read or written."""
    pass


class InvariantViolation(RuntimeError):
    """Raised when stored state contradicts an engine invariant."""
    pass
