from fastapi import APIRouter, Depends

from studio_booking.api.errors import http_error
from studio_booking.api.schemas import BookingSchema, CreateBookingSchema, PaymentIntentSchema
from studio_booking.application.exceptions import BookingEngineError
from studio_booking.application.use_cases.booking_ledger import BookingLedger
from studio_booking.domain.entities.booking import CancellationReason, CustomerInfo, EventDetails
from studio_booking.wiring.dependencies import get_ledger

router = APIRouter()


@router.post("/bookings", response_model=BookingSchema, status_code=201)
def create_booking(req: CreateBookingSchema, ledger: BookingLedger = Depends(get_ledger)):
    try:
        booking = ledger.create(
            service_offering_id=req.service_id,
            customer=CustomerInfo(
                name=req.customer.name.strip(),
                email=req.customer.email.strip(),
                phone=req.customer.phone.strip(),
            ),
            event=EventDetails(
                event_date=req.event_date,
                event_time=req.event_time,
                location=req.location,
                event_type=req.event_type,
                guest_count=req.guest_count,
            ),
            special_requests=req.special_requests,
        )
    except BookingEngineError as e:
        raise http_error(e)
    return BookingSchema.from_entity(booking)


@router.get("/bookings/{booking_id}", response_model=BookingSchema)
def get_booking(booking_id: str, ledger: BookingLedger = Depends(get_ledger)):
    try:
        return BookingSchema.from_entity(ledger.get(booking_id))
    except BookingEngineError as e:
        raise http_error(e)


@router.post("/bookings/{booking_id}/payment", response_model=PaymentIntentSchema)
def request_payment(booking_id: str, ledger: BookingLedger = Depends(get_ledger)):
    try:
        intent = ledger.request_payment(booking_id)
    except BookingEngineError as e:
        raise http_error(e)
    return PaymentIntentSchema.from_entity(intent)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingSchema)
def cancel_booking(booking_id: str, ledger: BookingLedger = Depends(get_ledger)):
    try:
        booking = ledger.cancel(booking_id, by=CancellationReason.customer)
    except BookingEngineError as e:
        raise http_error(e)
    return BookingSchema.from_entity(booking)
