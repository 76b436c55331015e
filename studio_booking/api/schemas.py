from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, Field

from studio_booking.application.use_cases.booking_reports import DashboardStats
from studio_booking.domain.entities.booking import Booking, BookingStatus
from studio_booking.domain.entities.payment_intent import CallbackResult, PaymentIntent
from studio_booking.domain.entities.service_offering import ServiceOffering


class ServiceSchema(BaseModel):
    id: int
    name: str
    category: str
    price: int
    duration_minutes: int
    description: str = ""
    features: list[str] = Field(default_factory=list)
    is_popular: bool = False

    @classmethod
    def from_entity(cls, offering: ServiceOffering) -> "ServiceSchema":
        return cls(
            id=offering.id,
            name=offering.name,
            category=offering.category,
            price=offering.price,
            duration_minutes=offering.duration_minutes,
            description=offering.description,
            features=list(offering.features),
            is_popular=offering.is_popular,
        )


class AvailabilitySchema(BaseModel):
    event_date: date
    service_id: int
    duration_minutes: int
    slots: list[datetime] = Field(default_factory=list)


class CustomerSchema(BaseModel):
    name: str = Field(min_length=1)
    email: str
    phone: str


class CreateBookingSchema(BaseModel):
    service_id: int
    customer: CustomerSchema
    event_date: date
    event_time: time
    location: str = Field(min_length=1)
    event_type: str = ""
    guest_count: int | None = Field(default=None, ge=0)
    special_requests: str = ""


class BookingSchema(BaseModel):
    id: str
    service_id: int
    customer: CustomerSchema
    event_date: date
    event_time: time
    location: str
    event_type: str = ""
    guest_count: int | None = None
    special_requests: str = ""
    slot_start: datetime
    slot_end: datetime
    total_amount: int
    currency: str
    status: str
    payment_status: str
    payment_reference: str | None = None
    cancellation_reason: str | None = None
    hold_expires_at: datetime
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingSchema":
        return cls(
            id=booking.id,
            service_id=booking.service_offering_id,
            customer=CustomerSchema(
                name=booking.customer.name,
                email=booking.customer.email,
                phone=booking.customer.phone,
            ),
            event_date=booking.event.event_date,
            event_time=booking.event.event_time,
            location=booking.event.location,
            event_type=booking.event.event_type,
            guest_count=booking.event.guest_count,
            special_requests=booking.special_requests,
            slot_start=booking.slot_start,
            slot_end=booking.slot_end,
            total_amount=booking.total_amount,
            currency=booking.currency,
            status=booking.status.value,
            payment_status=booking.payment_status.value,
            payment_reference=booking.payment_reference,
            cancellation_reason=booking.cancellation_reason.value if booking.cancellation_reason else None,
            hold_expires_at=booking.hold_expires_at,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            version=booking.version,
        )


class PaymentIntentSchema(BaseModel):
    id: str
    booking_id: str
    amount: int
    currency: str
    gateway_order_id: str
    status: str

    @classmethod
    def from_entity(cls, intent: PaymentIntent) -> "PaymentIntentSchema":
        return cls(
            id=intent.id,
            booking_id=intent.booking_id,
            amount=intent.amount,
            currency=intent.currency,
            gateway_order_id=intent.gateway_order_id,
            status=intent.status.value,
        )


class VerifyPaymentSchema(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str | None = None


class CallbackResultSchema(BaseModel):
    outcome: str
    gateway_payment_id: str | None = None
    booking_id: str | None = None
    booking_status: str | None = None
    payment_status: str | None = None
    refund_initiated: bool = False

    @classmethod
    def from_result(cls, result: CallbackResult) -> "CallbackResultSchema":
        return cls(
            outcome=result.outcome.value,
            gateway_payment_id=result.gateway_payment_id,
            booking_id=result.booking_id,
            booking_status=result.booking_status,
            payment_status=result.payment_status,
            refund_initiated=result.refund_initiated,
        )


class StatusOverrideSchema(BaseModel):
    status: BookingStatus


class RefundSchema(BaseModel):
    booking_id: str
    refund_id: str | None = None
    payment_status: str


class MonthlyRevenueSchema(BaseModel):
    month: str
    revenue: int


class DashboardSchema(BaseModel):
    total_bookings: int
    total_revenue: int
    status_counts: dict[str, int] = Field(default_factory=dict)
    recent_bookings: list[BookingSchema] = Field(default_factory=list)
    monthly_revenue: list[MonthlyRevenueSchema] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: DashboardStats) -> "DashboardSchema":
        return cls(
            total_bookings=stats.total_bookings,
            total_revenue=stats.total_revenue,
            status_counts=stats.status_counts,
            recent_bookings=[BookingSchema.from_entity(b) for b in stats.recent_bookings],
            monthly_revenue=[MonthlyRevenueSchema(month=m, revenue=r) for m, r in stats.monthly_revenue],
        )


class SweepSchema(BaseModel):
    expired: list[str] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
