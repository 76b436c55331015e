from __future__ import annotations

import itertools
import logging

from studio_booking.application.exceptions import GatewayError, GatewayTimeout
from studio_booking.application.ports.payment_gateway import PaymentGatewayPort
from studio_booking.domain.entities.payment_intent import GatewayOrder
from studio_booking.infrastructure.gateway.signature import sign_payload


class MockPaymentGateway(PaymentGatewayPort):
    """In-process gateway for dev and tests. `fail_next` injects a transient failure."""

    def __init__(self, key_secret: str = "mock_secret") -> None:
        self._key_secret = key_secret
        self._order_seq = itertools.count(1)
        self._refund_seq = itertools.count(1)
        self.orders: dict[str, GatewayOrder] = {}
        self.refunds: dict[str, tuple[str, int]] = {}
        self.fail_next: str | None = None  # "timeout" or "error"
        self._logger = logging.getLogger(__name__)

    def create_order(self, amount: int, currency: str, reference: str) -> GatewayOrder:
        self._maybe_fail()
        order = GatewayOrder(order_id=f"order_mock_{next(self._order_seq)}", amount=amount, currency=currency)
        self.orders[order.order_id] = order
        self._logger.info("Mock gateway order created", extra={"gateway_order_id": order.order_id, "booking_id": reference})
        return order

    def refund(self, gateway_payment_id: str, amount: int) -> str:
        self._maybe_fail()
        refund_id = f"rfnd_mock_{next(self._refund_seq)}"
        self.refunds[refund_id] = (gateway_payment_id, amount)
        self._logger.info("Mock refund created", extra={"gateway_payment_id": gateway_payment_id})
        return refund_id

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        """Signature the checkout widget would hand back for a successful payment."""
        return sign_payload(self._key_secret, f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8"))

    def _maybe_fail(self) -> None:
        failure, self.fail_next = self.fail_next, None
        if failure == "timeout":
            raise GatewayTimeout("Mock gateway timed out")
        if failure == "error":
            raise GatewayError("Mock gateway error")
