from __future__ import annotations

from abc import ABC, abstractmethod

from studio_booking.domain.entities.reservation import Reservation


class ReservationStorePort(ABC):
    """Raw reservation rows. Callers are responsible for serializing access."""

    @abstractmethod
    def get(self, booking_id: str) -> Reservation | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, reservation: Reservation) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, booking_id: str) -> bool:
        """Delete reservation. Returns True if a row was removed."""
        raise NotImplementedError

    @abstractmethod
    def all(self) -> list[Reservation]:
        raise NotImplementedError
