from __future__ import annotations

from abc import ABC, abstractmethod

from studio_booking.domain.entities.booking import Booking
from studio_booking.domain.entities.payment_intent import CallbackResult, PaymentIntent


class BookingStorePort(ABC):
    @abstractmethod
    def get(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def add(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def replace(self, booking: Booking, expected_version: int) -> None:
        """
        Compare-and-swap write.
        Stores `booking` only if the stored row is still at `expected_version`,
        otherwise raises ConcurrentModification.
        """
        raise NotImplementedError

    @abstractmethod
    def list(self) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def add_intent(self, intent: PaymentIntent) -> None:
        raise NotImplementedError

    @abstractmethod
    def replace_intent(self, intent: PaymentIntent) -> None:
        raise NotImplementedError

    @abstractmethod
    def intents_for(self, booking_id: str) -> list[PaymentIntent]:
        """All intents of a booking, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def find_intent_by_order(self, gateway_order_id: str) -> PaymentIntent | None:
        raise NotImplementedError

    @abstractmethod
    def find_intent_by_payment(self, gateway_payment_id: str) -> PaymentIntent | None:
        raise NotImplementedError

    @abstractmethod
    def get_callback_result(self, gateway_payment_id: str) -> CallbackResult | None:
        raise NotImplementedError

    @abstractmethod
    def record_callback_result(self, gateway_payment_id: str, result: CallbackResult) -> None:
        raise NotImplementedError
