#!/usr/bin/env python3
from __future__ import annotations

import argparse
import hashlib
import hmac
import json
import time
from typing import Any

import httpx
from httpx import ConnectError


def build_payload(event: str, order_id: str, payment_id: str, amount: int) -> dict[str, Any]:
    payment = {
        "id": payment_id,
        "entity": "payment",
        "amount": amount,
        "currency": "INR",
        "order_id": order_id,
        "status": "captured" if event in ("payment.captured", "order.paid") else "failed",
    }
    payload: dict[str, Any] = {
        "entity": "event",
        "event": event,
        "contains": ["payment"],
        "payload": {"payment": {"entity": payment}},
        "created_at": int(time.time()),
    }
    if event == "refund.processed":
        payload["contains"] = ["refund", "payment"]
        payload["payload"]["refund"] = {
            "entity": {"id": f"rfnd_{int(time.time())}", "payment_id": payment_id, "amount": amount}
        }
    return payload


def sign_body(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a signed Razorpay webhook POST")
    parser.add_argument("--url", default="http://127.0.0.1:8001/webhooks/razorpay")
    parser.add_argument(
        "--event",
        default="payment.captured",
        choices=["payment.authorized", "payment.captured", "order.paid", "payment.failed", "refund.processed"],
    )
    parser.add_argument("--order-id", required=True, help="gateway_order_id from POST /bookings/{id}/payment")
    parser.add_argument("--payment-id", default=f"pay_{int(time.time())}")
    parser.add_argument("--amount", type=int, default=0, help="Amount in paise")
    parser.add_argument("--secret", default="mock_secret", help="Webhook secret for signature")
    args = parser.parse_args()

    payload = build_payload(args.event, args.order_id, args.payment_id, args.amount)
    body = json.dumps(payload).encode("utf-8")

    headers = {
        "Content-Type": "application/json",
        "X-Razorpay-Signature": sign_body(args.secret, body),
    }

    try:
        resp = httpx.post(args.url, content=body, headers=headers, timeout=10.0)
    except ConnectError:
        print("Connection refused. Is the FastAPI server running?")
        print("Try: uvicorn studio_booking.main:app --reload --port 8001")
        return

    print(resp.status_code)
    if resp.text:
        print(resp.text)


if __name__ == "__main__":
    main()
