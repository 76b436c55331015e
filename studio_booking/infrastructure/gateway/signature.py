from __future__ import annotations

import hashlib
import hmac
import logging

from studio_booking.application.ports.payment_gateway import SignatureVerifierPort


logger = logging.getLogger(__name__)


def sign_payload(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class HmacSignatureVerifier(SignatureVerifierPort):
    """HMAC-SHA256 hex digest check, as used by Razorpay checkout callbacks and webhooks."""

    def __init__(self, secret: str | None) -> None:
        self._secret = secret

    def verify(self, payload: bytes, signature: str | None) -> bool:
        if not signature:
            return False

        if not self._secret:
            logger.error("Missing secret for signature verification")
            return False

        # Accept both bare hex digests and "sha256=<hex>" headers.
        if "=" in signature:
            algo, signature = signature.split("=", 1)
            if algo.lower() != "sha256":
                return False

        expected = sign_payload(self._secret, payload)
        return hmac.compare_digest(expected, signature.strip().lower())
