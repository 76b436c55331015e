from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool

from studio_booking.api.errors import http_error
from studio_booking.api.schemas import CallbackResultSchema, VerifyPaymentSchema
from studio_booking.application.exceptions import BookingEngineError, WebhookSignatureInvalid
from studio_booking.application.use_cases.payment_reconciler import PaymentReconciler
from studio_booking.domain.entities.payment_intent import CallbackOutcome
from studio_booking.wiring.dependencies import get_reconciler


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/payments/verify", response_model=CallbackResultSchema)
def verify_payment(req: VerifyPaymentSchema, reconciler: PaymentReconciler = Depends(get_reconciler)):
    try:
        result = reconciler.handle_callback(
            gateway_order_id=req.razorpay_order_id,
            gateway_payment_id=req.razorpay_payment_id,
            signature=req.razorpay_signature,
        )
    except BookingEngineError as e:
        raise http_error(e)

    if result.outcome == CallbackOutcome.verification_failed:
        raise HTTPException(status_code=400, detail="Payment signature verification failed")
    return CallbackResultSchema.from_result(result)


@router.post("/webhooks/razorpay")
async def razorpay_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> Response:
    body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature")

    try:
        result = await run_in_threadpool(reconciler.handle_webhook, body, signature)
    except WebhookSignatureInvalid:
        logger.warning("Rejected Razorpay webhook with bad signature")
        return Response(status_code=403)
    except Exception as e:
        # Non-2xx makes the gateway redeliver; replays are idempotent.
        logger.exception("Error processing Razorpay webhook", extra={"error": str(e)})
        return Response(status_code=500)

    logger.info(
        "Razorpay webhook processed",
        extra={
            "booking_id": result.booking_id,
            "gateway_payment_id": result.gateway_payment_id,
            "status": result.outcome.value,
        },
    )
    return Response(status_code=200)
