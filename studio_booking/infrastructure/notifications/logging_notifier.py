from __future__ import annotations

import logging

from studio_booking.application.ports.notifications import NotificationPort
from studio_booking.domain.entities.booking import Booking


class LoggingNotifier(NotificationPort):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def publish(self, event: str, booking: Booking) -> None:
        self._logger.info(
            "Notification",
            extra={
                "reason": event,
                "booking_id": booking.id,
                "status": booking.status.value,
                "payment_status": booking.payment_status.value,
            },
        )
