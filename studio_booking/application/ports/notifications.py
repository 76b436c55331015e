from abc import ABC, abstractmethod

from studio_booking.domain.entities.booking import Booking


class NotificationPort(ABC):
    @abstractmethod
    def publish(self, event: str, booking: Booking) -> None:
        raise NotImplementedError
