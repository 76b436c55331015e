from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException

from studio_booking.application.ports.booking_store import BookingStorePort
from studio_booking.application.ports.notifications import NotificationPort
from studio_booking.application.ports.payment_gateway import PaymentGatewayPort, SignatureVerifierPort
from studio_booking.application.ports.reservation_store import ReservationStorePort
from studio_booking.application.ports.service_catalog import ServiceCatalogPort
from studio_booking.application.use_cases.availability import AvailabilityIndex
from studio_booking.application.use_cases.booking_ledger import BookingLedger
from studio_booking.application.use_cases.booking_reports import BookingReports
from studio_booking.application.use_cases.expiry_sweeper import ExpirySweeper
from studio_booking.application.use_cases.payment_reconciler import PaymentReconciler
from studio_booking.application.utils.clock import Clock, utc_now
from studio_booking.core.config import settings
from studio_booking.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from studio_booking.infrastructure.gateway.mock_gateway import MockPaymentGateway
from studio_booking.infrastructure.gateway.razorpay_client import RazorpayGateway
from studio_booking.infrastructure.gateway.signature import HmacSignatureVerifier
from studio_booking.infrastructure.notifications.logging_notifier import LoggingNotifier
from studio_booking.infrastructure.notifications.webhook_notifier import WebhookNotifier
from studio_booking.infrastructure.store.json_store import JsonBookingStore, JsonReservationStore
from studio_booking.infrastructure.store.memory_store import MemoryBookingStore, MemoryReservationStore


logger = logging.getLogger(__name__)


@dataclass
class BookingEngine:
    catalog: ServiceCatalogPort
    availability: AvailabilityIndex
    ledger: BookingLedger
    reconciler: PaymentReconciler
    reports: BookingReports
    sweeper: ExpirySweeper
    gateway: PaymentGatewayPort


def _is_dev() -> bool:
    return settings.ENV.lower() in {"dev", "local", "test"}


def _require_single_worker() -> None:
    if settings.WEB_CONCURRENCY > 1:
        raise ValueError(
            f"STORE_PROVIDER={settings.STORE_PROVIDER} is single-process; "
            f"run one worker (WEB_CONCURRENCY={settings.WEB_CONCURRENCY})"
        )


def get_booking_store() -> BookingStorePort:
    _require_single_worker()
    if settings.STORE_PROVIDER.lower() == "json":
        return JsonBookingStore(data_dir=str(Path(settings.DATA_DIR) / "bookings"))
    return MemoryBookingStore()


def get_reservation_store() -> ReservationStorePort:
    _require_single_worker()
    if settings.STORE_PROVIDER.lower() == "json":
        return JsonReservationStore(file_path=str(Path(settings.DATA_DIR) / "reservations.json"))
    return MemoryReservationStore()


def get_payment_gateway() -> tuple[PaymentGatewayPort, SignatureVerifierPort, SignatureVerifierPort]:
    """Gateway plus checkout-signature and webhook-signature verifiers."""
    if not settings.RAZORPAY_KEY_ID or _is_dev():
        logger.info("Using MockPaymentGateway (no Razorpay key or ENV=%s)", settings.ENV)
        verifier = HmacSignatureVerifier(settings.MOCK_GATEWAY_SECRET)
        webhook_verifier = HmacSignatureVerifier(settings.RAZORPAY_WEBHOOK_SECRET or settings.MOCK_GATEWAY_SECRET)
        return MockPaymentGateway(key_secret=settings.MOCK_GATEWAY_SECRET), verifier, webhook_verifier

    logger.info("Using RazorpayGateway")
    return (
        RazorpayGateway(),
        HmacSignatureVerifier(settings.RAZORPAY_KEY_SECRET),
        HmacSignatureVerifier(settings.RAZORPAY_WEBHOOK_SECRET),
    )


def get_notifier() -> NotificationPort:
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL)
    return LoggingNotifier()


def build_engine(
    catalog: ServiceCatalogPort | None = None,
    booking_store: BookingStorePort | None = None,
    reservation_store: ReservationStorePort | None = None,
    gateway: PaymentGatewayPort | None = None,
    verifier: SignatureVerifierPort | None = None,
    webhook_verifier: SignatureVerifierPort | None = None,
    notifier: NotificationPort | None = None,
    clock: Clock = utc_now,
    hold_ttl: timedelta | None = None,
) -> BookingEngine:
    tz = ZoneInfo(settings.BUSINESS_TIMEZONE)
    catalog = catalog or ServiceCatalogStore()
    booking_store = booking_store or get_booking_store()
    if gateway is None:
        gateway, default_verifier, default_webhook_verifier = get_payment_gateway()
        verifier = verifier or default_verifier
        webhook_verifier = webhook_verifier or default_webhook_verifier
    if verifier is None:
        raise ValueError("A signature verifier is required when a gateway is supplied")

    availability = AvailabilityIndex(
        store=reservation_store or get_reservation_store(),
        timezone=tz,
        hold_ttl=hold_ttl or timedelta(minutes=settings.HOLD_TTL_MINUTES),
        open_hour=settings.BUSINESS_OPEN_HOUR,
        close_hour=settings.BUSINESS_CLOSE_HOUR,
        clock=clock,
    )
    ledger = BookingLedger(
        store=booking_store,
        catalog=catalog,
        availability=availability,
        timezone=tz,
        notifier=notifier or get_notifier(),
        currency=settings.CURRENCY,
        clock=clock,
    )
    availability.set_expiry_listener(ledger.expire)
    reconciler = PaymentReconciler(
        ledger=ledger,
        gateway=gateway,
        verifier=verifier,
        store=booking_store,
        webhook_verifier=webhook_verifier,
        clock=clock,
    )
    return BookingEngine(
        catalog=catalog,
        availability=availability,
        ledger=ledger,
        reconciler=reconciler,
        reports=BookingReports(ledger),
        sweeper=ExpirySweeper(availability, ledger, interval_seconds=settings.SWEEP_INTERVAL_SECONDS),
        gateway=gateway,
    )


@lru_cache
def get_engine() -> BookingEngine:
    return build_engine()


def get_catalog(engine: BookingEngine = Depends(get_engine)) -> ServiceCatalogPort:
    return engine.catalog


def get_availability(engine: BookingEngine = Depends(get_engine)) -> AvailabilityIndex:
    return engine.availability


def get_ledger(engine: BookingEngine = Depends(get_engine)) -> BookingLedger:
    return engine.ledger


def get_reconciler(engine: BookingEngine = Depends(get_engine)) -> PaymentReconciler:
    return engine.reconciler


def get_reports(engine: BookingEngine = Depends(get_engine)) -> BookingReports:
    return engine.reports


def get_sweeper(engine: BookingEngine = Depends(get_engine)) -> ExpirySweeper:
    return engine.sweeper


def require_admin(x_admin_token: str | None = Header(None)) -> None:
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        if _is_dev():
            return
        raise HTTPException(status_code=503, detail="Admin API is not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Invalid admin token")
