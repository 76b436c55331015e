from __future__ import annotations

from abc import ABC, abstractmethod

from studio_booking.domain.entities.payment_intent import GatewayOrder


class PaymentGatewayPort(ABC):
    @abstractmethod
    def create_order(self, amount: int, currency: str, reference: str) -> GatewayOrder:
        """
        Create a gateway order for `amount` minor units.
        Raises GatewayTimeout / GatewayError on transient failures.
        """
        raise NotImplementedError

    @abstractmethod
    def refund(self, gateway_payment_id: str, amount: int) -> str:
        """Request a refund. Returns the gateway refund id."""
        raise NotImplementedError


class SignatureVerifierPort(ABC):
    @abstractmethod
    def verify(self, payload: bytes, signature: str | None) -> bool:
        raise NotImplementedError
