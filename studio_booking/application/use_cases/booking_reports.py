from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from studio_booking.application.use_cases.booking_ledger import BookingLedger
from studio_booking.domain.entities.booking import Booking, BookingStatus, PaymentStatus


@dataclass(frozen=True)
class BookingFilters:
    status: BookingStatus | None = None
    payment_status: PaymentStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    search: str | None = None


@dataclass(frozen=True)
class DashboardStats:
    total_bookings: int
    total_revenue: int
    status_counts: dict[str, int]
    recent_bookings: list[Booking] = field(default_factory=list)
    monthly_revenue: list[tuple[str, int]] = field(default_factory=list)


class BookingReports:
    """Read-only views for the admin dashboard."""

    def __init__(self, ledger: BookingLedger) -> None:
        self._ledger = ledger

    def filter_bookings(self, filters: BookingFilters) -> list[Booking]:
        bookings = [b for b in self._ledger.list() if _matches(b, filters)]
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    def dashboard_stats(self, recent: int = 5) -> DashboardStats:
        bookings = self._ledger.list()
        paid = [b for b in bookings if b.payment_status == PaymentStatus.paid]

        monthly: dict[str, int] = {}
        for booking in sorted(paid, key=lambda b: b.event.event_date):
            month = booking.event.event_date.strftime("%Y-%m")
            monthly[month] = monthly.get(month, 0) + booking.total_amount

        counts = Counter(b.status.value for b in bookings)
        return DashboardStats(
            total_bookings=len(bookings),
            total_revenue=sum(b.total_amount for b in paid),
            status_counts={status.value: counts.get(status.value, 0) for status in BookingStatus},
            recent_bookings=sorted(bookings, key=lambda b: b.created_at, reverse=True)[:recent],
            monthly_revenue=list(monthly.items()),
        )


def _matches(booking: Booking, filters: BookingFilters) -> bool:
    if filters.status is not None and booking.status != filters.status:
        return False
    if filters.payment_status is not None and booking.payment_status != filters.payment_status:
        return False
    if filters.date_from is not None and booking.event.event_date < filters.date_from:
        return False
    if filters.date_to is not None and booking.event.event_date > filters.date_to:
        return False
    if filters.search:
        needle = filters.search.lower().strip()
        haystack = " ".join((booking.id, booking.customer.name, booking.customer.email)).lower()
        if needle not in haystack:
            return False
    return True
