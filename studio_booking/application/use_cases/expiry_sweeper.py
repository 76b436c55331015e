from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from studio_booking.application.use_cases.availability import AvailabilityIndex
from studio_booking.application.use_cases.booking_ledger import BookingLedger


@dataclass(frozen=True)
class SweepReport:
    expired: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)


class ExpirySweeper:
    """Periodically releases lapsed holds and completes past events."""

    def __init__(
        self,
        availability: AvailabilityIndex,
        ledger: BookingLedger,
        interval_seconds: float = 60.0,
    ) -> None:
        self._availability = availability
        self._ledger = ledger
        self._interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SweepReport:
        # Holds first: the availability sweep expires bookings through the ledger listener.
        expired = self._availability.sweep()
        completed = self._ledger.complete_past_events()
        if expired or completed:
            self._logger.info(
                "Sweep finished",
                extra={"reason": f"expired={len(expired)} completed={len(completed)}"},
            )
        return SweepReport(expired=expired, completed=completed)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        self._logger.info("Expiry sweeper started", extra={"reason": f"interval={self._interval_seconds}s"})

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self._interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                self._logger.exception("Sweep failed", extra={"error": str(e)})
