from __future__ import annotations

import json
import logging
from typing import Any

from studio_booking.application.exceptions import (
    BookingNotFound,
    GatewayError,
    GatewayUnavailable,
    InvalidState,
    InvariantViolation,
    StaleOrUnknownPayment,
    WebhookSignatureInvalid,
)
from studio_booking.application.ports.booking_store import BookingStorePort
from studio_booking.application.ports.payment_gateway import PaymentGatewayPort, SignatureVerifierPort
from studio_booking.application.use_cases.booking_ledger import BookingLedger
from studio_booking.application.utils.clock import Clock, utc_now
from studio_booking.application.utils.ids import new_id
from studio_booking.domain.entities.booking import Booking, BookingStatus, PaymentStatus
from studio_booking.domain.entities.payment_intent import CallbackOutcome, CallbackResult, PaymentIntent


CAPTURE_EVENTS = frozenset({"payment.captured", "order.paid"})


class PaymentReconciler:
    """
    Maps gateway callbacks and webhooks onto bookings.

    Delivery may be duplicated, reordered or missing. Verified results are
    recorded by gateway payment id, so replays return the first result
    instead of being applied again. Stale or unknown payments are logged and
    reported, never raised back to the gateway.
    """

    def __init__(
        self,
        ledger: BookingLedger,
        gateway: PaymentGatewayPort,
        verifier: SignatureVerifierPort,
        store: BookingStorePort,
        webhook_verifier: SignatureVerifierPort | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._ledger = ledger
        self._gateway = gateway
        self._verifier = verifier
        self._webhook_verifier = webhook_verifier
        self._store = store
        self._clock = clock
        self._logger = logging.getLogger(__name__)
        ledger.bind_reconciler(self)

    def create_intent(self, booking: Booking) -> PaymentIntent:
        """Open a gateway order for the booking. The ledger stores the returned intent."""
        order = self._gateway.create_order(booking.total_amount, booking.currency, reference=booking.id)
        if order.amount != booking.total_amount:
            raise GatewayError(
                f"Gateway order {order.order_id} amount {order.amount} does not match booking total "
                f"{booking.total_amount}"
            )
        now = self._clock()
        return PaymentIntent(
            id=new_id("pi"),
            booking_id=booking.id,
            amount=booking.total_amount,
            currency=booking.currency,
            gateway_order_id=order.order_id,
            created_at=now,
            updated_at=now,
        )

    def handle_callback(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str | None,
    ) -> CallbackResult:
        payload = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
        verified = self._verifier.verify(payload, signature)
        return self._reconcile(gateway_order_id, gateway_payment_id, verified)

    def handle_webhook(self, body: bytes, signature: str | None) -> CallbackResult:
        if self._webhook_verifier is None or not self._webhook_verifier.verify(body, signature):
            raise WebhookSignatureInvalid("Webhook signature verification failed")

        try:
            data = json.loads(body.decode("utf-8")) if body else {}
        except (UnicodeDecodeError, ValueError):
            self._logger.warning("Unparseable webhook body ignored")
            return CallbackResult(outcome=CallbackOutcome.ignored)

        event = data.get("event")
        payment = _entity(data, "payment")
        order_id = payment.get("order_id")
        payment_id = payment.get("id")

        if event in CAPTURE_EVENTS and order_id and payment_id:
            return self._reconcile(str(order_id), str(payment_id), verified=True)

        if event == "payment.authorized" and order_id:
            intent = self._ledger.mark_intent_authorized(str(order_id))
            return CallbackResult(
                outcome=CallbackOutcome.authorized if intent else CallbackOutcome.stale,
                gateway_payment_id=payment_id,
                booking_id=intent.booking_id if intent else None,
            )

        if event == "payment.failed" and order_id:
            intent = self._ledger.mark_intent_failed(str(order_id))
            return CallbackResult(
                outcome=CallbackOutcome.failed if intent else CallbackOutcome.stale,
                gateway_payment_id=payment_id,
                booking_id=intent.booking_id if intent else None,
            )

        if event == "refund.processed":
            return self._handle_refund_processed(_entity(data, "refund"))

        self._logger.info("Webhook event ignored", extra={"reason": event})
        return CallbackResult(outcome=CallbackOutcome.ignored, gateway_payment_id=payment_id)

    def initiate_refund(self, booking_id: str) -> str | None:
        booking = self._ledger.get(booking_id)
        if booking.payment_status != PaymentStatus.refund_pending or booking.payment_reference is None:
            self._logger.info(
                "No refund needed",
                extra={"booking_id": booking_id, "payment_status": booking.payment_status.value},
            )
            return None

        intent = self._store.find_intent_by_payment(booking.payment_reference)
        if intent is not None and intent.refund_id:
            return intent.refund_id
        amount = intent.amount if intent is not None else booking.total_amount

        try:
            refund_id = self._gateway.refund(booking.payment_reference, amount)
        except GatewayUnavailable as e:
            self._logger.error(
                "Refund request failed; booking stays refund_pending",
                extra={"booking_id": booking_id, "gateway_payment_id": booking.payment_reference, "error": str(e)},
            )
            return None

        self._ledger.record_refund_requested(booking_id, refund_id)
        self._logger.info(
            "Refund requested",
            extra={"booking_id": booking_id, "gateway_payment_id": booking.payment_reference, "refund_id": refund_id},
        )
        return refund_id

    def confirm_refund(self, booking_id: str) -> Booking:
        return self._ledger.apply_refund_result(booking_id)

    def _handle_refund_processed(self, refund: dict[str, Any]) -> CallbackResult:
        refunded_payment_id = refund.get("payment_id")
        intent = self._store.find_intent_by_payment(str(refunded_payment_id)) if refunded_payment_id else None
        if intent is None:
            self._logger.warning(
                "Refund webhook for unknown payment",
                extra={"gateway_payment_id": refunded_payment_id},
            )
            return CallbackResult(outcome=CallbackOutcome.stale, gateway_payment_id=refunded_payment_id)

        booking = self._get_booking(intent.booking_id)
        if booking.payment_reference != refunded_payment_id:
            self._logger.info(
                "Refund processed for stray payment",
                extra={"booking_id": booking.id, "gateway_payment_id": refunded_payment_id},
            )
            return _result(CallbackOutcome.refunded, refunded_payment_id, booking)

        try:
            booking = self.confirm_refund(booking.id)
        except InvalidState as e:
            # e.g. refunded from the gateway dashboard while the booking is still paid
            self._logger.warning(
                "Refund webhook does not fit booking state",
                extra={
                    "booking_id": booking.id,
                    "gateway_payment_id": refunded_payment_id,
                    "payment_status": booking.payment_status.value,
                    "error": str(e),
                },
            )
            return _result(CallbackOutcome.stale, refunded_payment_id, self._get_booking(booking.id))
        return _result(CallbackOutcome.refunded, refunded_payment_id, booking)

    def _reconcile(self, gateway_order_id: str, gateway_payment_id: str, verified: bool) -> CallbackResult:
        if verified:
            prior = self._prior_result(gateway_payment_id)
            if prior is not None:
                return prior

        intent = self._store.find_intent_by_order(gateway_order_id)
        if intent is None:
            self._logger.warning(
                "Payment for unknown order",
                extra={"gateway_order_id": gateway_order_id, "gateway_payment_id": gateway_payment_id},
            )
            return CallbackResult(outcome=CallbackOutcome.stale, gateway_payment_id=gateway_payment_id)

        booking_id = intent.booking_id
        refund_needed = False
        stray = False
        try:
            with self._ledger.locks.hold(booking_id):
                if verified:
                    prior = self._prior_result(gateway_payment_id)
                    if prior is not None:
                        return prior
                try:
                    booking = self._ledger.apply_payment_result(
                        booking_id,
                        gateway_payment_id,
                        verified,
                        gateway_order_id=gateway_order_id,
                    )
                    outcome = CallbackOutcome.confirmed if verified else CallbackOutcome.verification_failed
                except StaleOrUnknownPayment as e:
                    self._logger.warning(
                        "Stale payment ignored",
                        extra={
                            "booking_id": booking_id,
                            "gateway_order_id": gateway_order_id,
                            "gateway_payment_id": gateway_payment_id,
                            "reason": str(e),
                        },
                    )
                    booking = self._get_booking(booking_id)
                    outcome = CallbackOutcome.stale
                    if booking.status == BookingStatus.cancelled and booking.payment_status == PaymentStatus.unpaid:
                        booking = self._ledger.record_orphaned_payment(
                            booking_id, gateway_order_id, gateway_payment_id
                        )
                        refund_needed = True
                    elif booking.payment_reference != gateway_payment_id:
                        self._ledger.record_stray_payment(gateway_order_id, gateway_payment_id)
                        stray = True
                except BookingNotFound as e:
                    raise InvariantViolation(
                        f"Payment intent {intent.id} points at missing booking {booking_id}"
                    ) from e

                result = _result(outcome, gateway_payment_id, booking, refund_initiated=refund_needed or stray)
                if verified:
                    self._store.record_callback_result(gateway_payment_id, result)
        finally:
            self._ledger.flush_notifications()

        if refund_needed:
            self.initiate_refund(booking_id)
        if stray:
            self._refund_stray_payment(intent, gateway_payment_id)
        return result

    def _refund_stray_payment(self, intent: PaymentIntent, gateway_payment_id: str) -> str | None:
        """Return a verified payment the booking cannot use. Booking state is not touched."""
        extra = {
            "booking_id": intent.booking_id,
            "gateway_order_id": intent.gateway_order_id,
            "gateway_payment_id": gateway_payment_id,
        }
        try:
            refund_id = self._gateway.refund(gateway_payment_id, intent.amount)
        except GatewayUnavailable as e:
            self._logger.error("Stray payment refund failed; needs manual refund", extra={**extra, "error": str(e)})
            return None

        self._ledger.record_stray_payment(intent.gateway_order_id, gateway_payment_id, refund_id=refund_id)
        self._logger.warning("Stray payment refunded", extra={**extra, "refund_id": refund_id})
        return refund_id

    def _prior_result(self, gateway_payment_id: str) -> CallbackResult | None:
        prior = self._store.get_callback_result(gateway_payment_id)
        if prior is not None:
            self._logger.info(
                "Duplicate payment callback",
                extra={"gateway_payment_id": gateway_payment_id, "booking_id": prior.booking_id},
            )
        return prior

    def _get_booking(self, booking_id: str) -> Booking:
        try:
            return self._ledger.get(booking_id)
        except BookingNotFound as e:
            raise InvariantViolation(f"Payment points at missing booking {booking_id}") from e


def _entity(data: dict[str, Any], name: str) -> dict[str, Any]:
    payload = data.get("payload") or {}
    wrapper = payload.get(name) or {}
    return wrapper.get("entity") or {}


def _result(
    outcome: CallbackOutcome,
    gateway_payment_id: str | None,
    booking: Booking,
    refund_initiated: bool = False,
) -> CallbackResult:
    return CallbackResult(
        outcome=outcome,
        gateway_payment_id=gateway_payment_id,
        booking_id=booking.id,
        booking_status=booking.status.value,
        payment_status=booking.payment_status.value,
        refund_initiated=refund_initiated,
    )
