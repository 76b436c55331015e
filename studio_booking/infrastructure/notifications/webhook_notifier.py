from __future__ import annotations

import logging

import httpx

from studio_booking.application.ports.notifications import NotificationPort
from studio_booking.domain.entities.booking import Booking


class WebhookNotifier(NotificationPort):
    """POSTs booking events to an external endpoint (email/SMS service, CRM)."""

    def __init__(self, url: str, timeout_seconds: float = 5.0, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._logger = logging.getLogger(__name__)

    def publish(self, event: str, booking: Booking) -> None:
        payload = {
            "event": event,
            "booking": {
                "id": booking.id,
                "status": booking.status.value,
                "payment_status": booking.payment_status.value,
                "customer_name": booking.customer.name,
                "customer_email": booking.customer.email,
                "customer_phone": booking.customer.phone,
                "event_date": booking.event.event_date.isoformat(),
                "event_time": booking.event.event_time.isoformat(timespec="minutes"),
                "total_amount": booking.total_amount,
                "currency": booking.currency,
            },
        }
        resp = self._client.post(self._url, json=payload)
        if resp.status_code >= 400:
            self._logger.error(
                "Notification webhook failed",
                extra={"booking_id": booking.id, "reason": event, "status": resp.status_code},
            )
            resp.raise_for_status()
