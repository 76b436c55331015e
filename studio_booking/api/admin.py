from datetime import date

from fastapi import APIRouter, Depends, Query

from studio_booking.api.errors import http_error
from studio_booking.api.schemas import (
    BookingSchema,
    DashboardSchema,
    RefundSchema,
    StatusOverrideSchema,
    SweepSchema,
)
from studio_booking.application.exceptions import BookingEngineError
from studio_booking.application.use_cases.booking_ledger import BookingLedger
from studio_booking.application.use_cases.booking_reports import BookingFilters, BookingReports
from studio_booking.application.use_cases.expiry_sweeper import ExpirySweeper
from studio_booking.application.use_cases.payment_reconciler import PaymentReconciler
from studio_booking.domain.entities.booking import BookingStatus, CancellationReason, PaymentStatus
from studio_booking.wiring.dependencies import (
    get_ledger,
    get_reconciler,
    get_reports,
    get_sweeper,
    require_admin,
)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.get("/bookings", response_model=list[BookingSchema])
def list_bookings(
    status: BookingStatus | None = Query(None),
    payment_status: PaymentStatus | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    search: str | None = Query(None),
    reports: BookingReports = Depends(get_reports),
):
    filters = BookingFilters(
        status=status,
        payment_status=payment_status,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    return [BookingSchema.from_entity(b) for b in reports.filter_bookings(filters)]


@router.get("/dashboard", response_model=DashboardSchema)
def dashboard(reports: BookingReports = Depends(get_reports)):
    return DashboardSchema.from_stats(reports.dashboard_stats())


@router.post("/bookings/{booking_id}/status", response_model=BookingSchema)
def override_status(
    booking_id: str,
    req: StatusOverrideSchema,
    ledger: BookingLedger = Depends(get_ledger),
):
    try:
        booking = ledger.override_status(booking_id, req.status, by=CancellationReason.admin)
    except BookingEngineError as e:
        raise http_error(e)
    return BookingSchema.from_entity(booking)


@router.post("/bookings/{booking_id}/complete", response_model=BookingSchema)
def complete_booking(booking_id: str, ledger: BookingLedger = Depends(get_ledger)):
    try:
        booking = ledger.mark_completed(booking_id)
    except BookingEngineError as e:
        raise http_error(e)
    return BookingSchema.from_entity(booking)


@router.post("/bookings/{booking_id}/refund", response_model=RefundSchema)
def retry_refund(
    booking_id: str,
    ledger: BookingLedger = Depends(get_ledger),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    try:
        refund_id = reconciler.initiate_refund(booking_id)
        booking = ledger.get(booking_id)
    except BookingEngineError as e:
        raise http_error(e)
    return RefundSchema(booking_id=booking.id, refund_id=refund_id, payment_status=booking.payment_status.value)


@router.post("/sweep", response_model=SweepSchema)
def run_sweep(sweeper: ExpirySweeper = Depends(get_sweeper)):
    report = sweeper.run_once()
    return SweepSchema(expired=report.expired, completed=report.completed)
