from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PaymentIntentStatus(str, Enum):
    created = "created"
    authorized = "authorized"
    captured = "captured"
    failed = "failed"
    verification_failed = "verification_failed"


# Intents in these states can still be paid against. A failed attempt may be
# retried on the same order.
OPEN_INTENT_STATUSES = frozenset(
    {
        PaymentIntentStatus.created,
        PaymentIntentStatus.authorized,
        PaymentIntentStatus.failed,
        PaymentIntentStatus.verification_failed,
    }
)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    booking_id: str
    amount: int
    currency: str
    gateway_order_id: str
    created_at: datetime
    updated_at: datetime
    status: PaymentIntentStatus = PaymentIntentStatus.created
    gateway_payment_id: str | None = None
    refund_id: str | None = None
    superseded: bool = False

    @property
    def is_open(self) -> bool:
        return not self.superseded and self.status in OPEN_INTENT_STATUSES


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: int
    currency: str


class CallbackOutcome(str, Enum):
    confirmed = "confirmed"
    verification_failed = "verification_failed"
    stale = "stale"
    failed = "failed"
    authorized = "authorized"
    refunded = "refunded"
    ignored = "ignored"


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    gateway_payment_id: str | None = None
    booking_id: str | None = None
    booking_status: str | None = None
    payment_status: str | None = None
    refund_initiated: bool = False
