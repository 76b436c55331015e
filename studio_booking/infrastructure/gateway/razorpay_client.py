from __future__ import annotations

import logging

import httpx

from studio_booking.application.exceptions import GatewayError, GatewayTimeout
from studio_booking.application.ports.payment_gateway import PaymentGatewayPort
from studio_booking.core.config import settings
from studio_booking.domain.entities.payment_intent import GatewayOrder


class RazorpayGateway(PaymentGatewayPort):
    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._key_id = key_id or settings.RAZORPAY_KEY_ID
        self._key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        self._base_url = (base_url or settings.RAZORPAY_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_seconds or settings.GATEWAY_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._key_id or not self._key_secret:
            raise ValueError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required for Razorpay")

    def create_order(self, amount: int, currency: str, reference: str) -> GatewayOrder:
        data = self._post("/orders", {"amount": amount, "currency": currency, "receipt": reference})
        order_id = data.get("id")
        if not order_id:
            raise GatewayError("No order id returned from Razorpay")

        self._logger.info("Gateway order created", extra={"gateway_order_id": order_id, "booking_id": reference})
        return GatewayOrder(
            order_id=str(order_id),
            amount=int(data.get("amount", amount)),
            currency=str(data.get("currency", currency)),
        )

    def refund(self, gateway_payment_id: str, amount: int) -> str:
        data = self._post(f"/payments/{gateway_payment_id}/refund", {"amount": amount})
        refund_id = data.get("id")
        if not refund_id:
            raise GatewayError("No refund id returned from Razorpay")
        return str(refund_id)

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.post(url, json=payload, auth=(self._key_id, self._key_secret))
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            self._logger.error("Razorpay request timed out", extra={"error": str(e), "reason": path})
            raise GatewayTimeout(f"Razorpay timed out on {path}") from e
        except httpx.HTTPStatusError as e:
            self._logger.error(
                "Razorpay rejected request",
                extra={"error": e.response.text, "status": e.response.status_code, "reason": path},
            )
            raise GatewayError(f"Razorpay returned {e.response.status_code} on {path}") from e
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("Razorpay request failed", extra={"error": str(e), "reason": path})
            raise GatewayError(f"Razorpay request failed on {path}") from e
