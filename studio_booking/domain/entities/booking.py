from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    unpaid = "unpaid"
    paid = "paid"
    refund_pending = "refund_pending"
    refunded = "refunded"


class CancellationReason(str, Enum):
    expired = "expired"
    customer = "customer"
    admin = "admin"


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class EventDetails:
    event_date: date
    event_time: time
    location: str
    event_type: str = ""
    guest_count: int | None = None


@dataclass(frozen=True)
class Booking:
    id: str
    service_offering_id: int
    customer: CustomerInfo
    event: EventDetails
    slot_start: datetime
    slot_end: datetime
    total_amount: int  # price snapshot, minor units
    currency: str
    hold_expires_at: datetime
    created_at: datetime
    updated_at: datetime
    special_requests: str = ""
    status: BookingStatus = BookingStatus.pending
    payment_status: PaymentStatus = PaymentStatus.unpaid
    payment_reference: str | None = None
    cancellation_reason: CancellationReason | None = None
    notes: str | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in (BookingStatus.completed, BookingStatus.cancelled)
