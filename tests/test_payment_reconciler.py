"""
Tests for payment callbacks, webhooks and refunds.
"""

from __future__ import annotations

import json

import pytest

from conftest import WEBHOOK_SECRET, customer, event_at
from studio_booking.application.exceptions import WebhookSignatureInvalid
from studio_booking.domain.entities.booking import BookingStatus, CancellationReason, PaymentStatus
from studio_booking.domain.entities.payment_intent import CallbackOutcome, PaymentIntentStatus
from studio_booking.domain.entities.reservation import ReservationState
from studio_booking.infrastructure.gateway.signature import sign_payload


def _webhook(event, payment=None, refund=None):
    payload = {}
    if payment is not None:
        payload["payment"] = {"entity": payment}
    if refund is not None:
        payload["refund"] = {"entity": refund}
    body = json.dumps({"entity": "event", "event": event, "payload": payload}).encode("utf-8")
    return body, sign_payload(WEBHOOK_SECRET, body)


@pytest.fixture
def pending(engine):
    booking = engine.ledger.create(1, customer(), event_at(10))
    intent = engine.ledger.request_payment(booking.id)
    return booking, intent


def test_successful_payment_confirms_booking(engine, gateway, notifier, pending):
    """Hold, pay, verify: booking ends confirmed and paid with the slot committed."""
    booking, intent = pending

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1")
    )

    assert result.outcome == CallbackOutcome.confirmed
    assert result.booking_id == booking.id
    confirmed = engine.ledger.get(booking.id)
    assert confirmed.status == BookingStatus.confirmed
    assert confirmed.payment_status == PaymentStatus.paid
    assert confirmed.payment_reference == "pay_1"
    assert engine.availability.get(booking.id).state == ReservationState.committed
    assert engine.ledger.intents(booking.id)[0].status == PaymentIntentStatus.captured
    assert ("booking.confirmed", booking.id) in notifier.events


def test_duplicate_callback_returns_first_result(engine, gateway, pending):
    booking, intent = pending
    signature = gateway.sign(intent.gateway_order_id, "pay_1")

    first = engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", signature)
    version = engine.ledger.get(booking.id).version
    second = engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", signature)

    assert second == first
    assert engine.ledger.get(booking.id).version == version


def test_bad_signature_keeps_booking_pending(engine, gateway, pending):
    booking, intent = pending

    result = engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", "deadbeef")

    assert result.outcome == CallbackOutcome.verification_failed
    assert engine.ledger.get(booking.id).status == BookingStatus.pending
    assert engine.ledger.intents(booking.id)[0].status == PaymentIntentStatus.verification_failed

    # A forged callback must not block the genuine one.
    genuine = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1")
    )
    assert genuine.outcome == CallbackOutcome.confirmed


def test_unknown_order_is_stale(engine, gateway):
    result = engine.reconciler.handle_callback("order_nope", "pay_x", gateway.sign("order_nope", "pay_x"))

    assert result.outcome == CallbackOutcome.stale
    assert result.booking_id is None


def test_late_callback_after_sweep_is_refunded(engine, gateway, clock, notifier, pending):
    """Expiry wins over a late payment; the orphaned payment is refunded."""
    booking, intent = pending
    clock.advance(minutes=16)
    assert engine.sweeper.run_once().expired == [booking.id]

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_late", gateway.sign(intent.gateway_order_id, "pay_late")
    )

    assert result.outcome == CallbackOutcome.stale
    assert result.refund_initiated is True
    late = engine.ledger.get(booking.id)
    assert late.status == BookingStatus.cancelled
    assert late.cancellation_reason == CancellationReason.expired
    assert late.payment_status == PaymentStatus.refund_pending
    assert list(gateway.refunds.values()) == [("pay_late", 5000)]


def test_late_callback_before_sweep_expires_booking(engine, gateway, clock, pending):
    """Without a sweep the lapsed hold is detected at commit time."""
    booking, intent = pending
    clock.advance(minutes=15)

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_late", gateway.sign(intent.gateway_order_id, "pay_late")
    )

    assert result.outcome == CallbackOutcome.stale
    late = engine.ledger.get(booking.id)
    assert late.status == BookingStatus.cancelled
    assert late.payment_status == PaymentStatus.refund_pending
    assert engine.availability.get(booking.id) is None
    assert len(gateway.refunds) == 1

    # Replays of the late payment do not refund twice.
    engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_late", gateway.sign(intent.gateway_order_id, "pay_late")
    )
    assert len(gateway.refunds) == 1


def test_cancel_and_refund_flow(engine, gateway, notifier, pending):
    """Confirmed booking cancelled by admin, refund confirmed by the gateway webhook."""
    booking, intent = pending
    engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1"))

    cancelled = engine.ledger.cancel(booking.id)
    assert cancelled.payment_status == PaymentStatus.refund_pending

    body, signature = _webhook("refund.processed", refund={"id": "rfnd_1", "payment_id": "pay_1"})
    result = engine.reconciler.handle_webhook(body, signature)

    assert result.outcome == CallbackOutcome.refunded
    refunded = engine.ledger.get(booking.id)
    assert refunded.status == BookingStatus.cancelled
    assert refunded.payment_status == PaymentStatus.refunded
    assert ("booking.refunded", booking.id) in notifier.events

    # Redelivered refund webhook is harmless.
    again = engine.reconciler.handle_webhook(body, signature)
    assert again.payment_status == PaymentStatus.refunded.value


def test_refund_gateway_failure_leaves_refund_pending(engine, gateway, pending):
    booking, intent = pending
    engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1"))
    gateway.fail_next = "error"

    cancelled = engine.ledger.cancel(booking.id)

    assert cancelled.payment_status == PaymentStatus.refund_pending
    assert gateway.refunds == {}

    refund_id = engine.reconciler.initiate_refund(booking.id)
    assert refund_id in gateway.refunds
    assert engine.reconciler.initiate_refund(booking.id) == refund_id
    assert len(gateway.refunds) == 1


def test_initiate_refund_noop_for_unpaid(engine, pending):
    booking, _ = pending
    assert engine.reconciler.initiate_refund(booking.id) is None


def test_webhook_capture_confirms_booking(engine, pending):
    booking, intent = pending
    body, signature = _webhook(
        "payment.captured",
        payment={"id": "pay_wh", "order_id": intent.gateway_order_id, "amount": 5000},
    )

    result = engine.reconciler.handle_webhook(body, signature)

    assert result.outcome == CallbackOutcome.confirmed
    assert engine.ledger.get(booking.id).payment_reference == "pay_wh"

    # The checkout callback for the same payment arriving later is a duplicate.
    dup = engine.reconciler.handle_callback(intent.gateway_order_id, "pay_wh", None)
    assert dup.outcome == CallbackOutcome.verification_failed
    assert engine.ledger.get(booking.id).status == BookingStatus.confirmed


def test_webhook_rejects_bad_signature(engine, pending):
    _, intent = pending
    body, _ = _webhook("payment.captured", payment={"id": "pay_wh", "order_id": intent.gateway_order_id})

    with pytest.raises(WebhookSignatureInvalid):
        engine.reconciler.handle_webhook(body, "sha256=0000")


def test_webhook_authorized_and_failed_update_intent(engine, pending):
    booking, intent = pending

    body, signature = _webhook("payment.authorized", payment={"id": "pay_a", "order_id": intent.gateway_order_id})
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.authorized
    assert engine.ledger.active_intent(booking.id).status == PaymentIntentStatus.authorized

    body, signature = _webhook("payment.failed", payment={"id": "pay_a", "order_id": intent.gateway_order_id})
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.failed
    assert engine.ledger.active_intent(booking.id).status == PaymentIntentStatus.failed
    assert engine.ledger.get(booking.id).status == BookingStatus.pending


def test_webhook_for_unknown_order_is_stale(engine):
    body, signature = _webhook("payment.failed", payment={"id": "pay_a", "order_id": "order_unknown"})
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.stale


def test_unhandled_webhook_event_is_ignored(engine):
    body, signature = _webhook("subscription.charged")
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.ignored


def test_retry_after_failed_attempt_on_same_order_confirms(engine, gateway, pending):
    """A declined attempt leaves the order open; the customer's retry on it still confirms."""
    booking, intent = pending
    body, signature = _webhook("payment.failed", payment={"id": "pay_declined", "order_id": intent.gateway_order_id})
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.failed

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_ok", gateway.sign(intent.gateway_order_id, "pay_ok")
    )

    assert result.outcome == CallbackOutcome.confirmed
    confirmed = engine.ledger.get(booking.id)
    assert confirmed.status == BookingStatus.confirmed
    assert confirmed.payment_status == PaymentStatus.paid
    assert engine.ledger.active_intent(booking.id).status == PaymentIntentStatus.captured
    assert gateway.refunds == {}


def test_verified_payment_on_superseded_order_is_refunded(engine, gateway, pending):
    booking, first = pending
    engine.reconciler.handle_callback(first.gateway_order_id, "pay_old", "forged")
    second = engine.ledger.request_payment(booking.id)
    assert second.gateway_order_id != first.gateway_order_id

    result = engine.reconciler.handle_callback(
        first.gateway_order_id, "pay_old", gateway.sign(first.gateway_order_id, "pay_old")
    )

    assert result.outcome == CallbackOutcome.stale
    assert result.refund_initiated is True
    assert list(gateway.refunds.values()) == [("pay_old", 5000)]
    still_pending = engine.ledger.get(booking.id)
    assert still_pending.status == BookingStatus.pending
    assert still_pending.payment_status == PaymentStatus.unpaid
    superseded = engine.ledger.intents(booking.id)[0]
    assert superseded.superseded
    assert superseded.gateway_payment_id == "pay_old"
    assert superseded.refund_id in gateway.refunds

    # Replays do not refund twice, and the live order still confirms.
    engine.reconciler.handle_callback(first.gateway_order_id, "pay_old", gateway.sign(first.gateway_order_id, "pay_old"))
    assert len(gateway.refunds) == 1
    confirmed = engine.reconciler.handle_callback(
        second.gateway_order_id, "pay_new", gateway.sign(second.gateway_order_id, "pay_new")
    )
    assert confirmed.outcome == CallbackOutcome.confirmed

    # The gateway confirming the stray refund leaves the booking's own payment alone.
    body, signature = _webhook("refund.processed", refund={"id": "rfnd_x", "payment_id": "pay_old"})
    assert engine.reconciler.handle_webhook(body, signature).outcome == CallbackOutcome.refunded
    assert engine.ledger.get(booking.id).payment_status == PaymentStatus.paid


def test_second_payment_on_paid_booking_is_refunded(engine, gateway, pending):
    booking, intent = pending
    engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1"))

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_2", gateway.sign(intent.gateway_order_id, "pay_2")
    )

    assert result.outcome == CallbackOutcome.stale
    assert result.refund_initiated is True
    assert list(gateway.refunds.values()) == [("pay_2", 5000)]
    paid = engine.ledger.get(booking.id)
    assert paid.payment_status == PaymentStatus.paid
    assert paid.payment_reference == "pay_1"
    assert engine.ledger.intents(booking.id)[0].gateway_payment_id == "pay_1"


def test_stray_refund_gateway_failure_is_not_raised(engine, gateway, pending):
    booking, intent = pending
    engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1"))
    gateway.fail_next = "timeout"

    result = engine.reconciler.handle_callback(
        intent.gateway_order_id, "pay_2", gateway.sign(intent.gateway_order_id, "pay_2")
    )

    assert result.outcome == CallbackOutcome.stale
    assert gateway.refunds == {}
    assert engine.ledger.get(booking.id).status == BookingStatus.confirmed


def test_refund_webhook_for_paid_booking_is_answered(engine, gateway, pending):
    """A refund issued outside the engine does not move a paid booking and is not raised."""
    booking, intent = pending
    engine.reconciler.handle_callback(intent.gateway_order_id, "pay_1", gateway.sign(intent.gateway_order_id, "pay_1"))
    body, signature = _webhook("refund.processed", refund={"id": "rfnd_dash", "payment_id": "pay_1"})

    result = engine.reconciler.handle_webhook(body, signature)

    assert result.outcome == CallbackOutcome.stale
    assert result.payment_status == PaymentStatus.paid.value
    paid = engine.ledger.get(booking.id)
    assert paid.status == BookingStatus.confirmed
    assert paid.payment_status == PaymentStatus.paid
