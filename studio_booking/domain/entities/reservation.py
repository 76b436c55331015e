from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class Slot:
    """Half-open window [start, end) on the studio calendar."""

    start: datetime
    end: datetime

    @classmethod
    def from_parts(cls, day: date, start_time: time, duration_minutes: int, tz: ZoneInfo) -> "Slot":
        start = datetime.combine(day, start_time, tzinfo=tz)
        return cls(start=start, end=start + timedelta(minutes=duration_minutes))

    def overlaps(self, other: "Slot") -> bool:
        return self.start < other.end and other.start < self.end


class ReservationState(str, Enum):
    held = "held"
    committed = "committed"


@dataclass(frozen=True)
class Reservation:
    booking_id: str
    service_offering_id: int
    start: datetime
    end: datetime
    state: ReservationState = ReservationState.held
    expires_at: datetime | None = None

    @property
    def slot(self) -> Slot:
        return Slot(start=self.start, end=self.end)

    def is_expired(self, now: datetime) -> bool:
        return (
            self.state == ReservationState.held
            and self.expires_at is not None
            and self.expires_at <= now
        )

    def is_live(self, now: datetime) -> bool:
        return not self.is_expired(now)

    def committed(self) -> "Reservation":
        return replace(self, state=ReservationState.committed, expires_at=None)
