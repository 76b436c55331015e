import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from studio_booking.api.admin import router as admin_router
from studio_booking.api.bookings import router as bookings_router
from studio_booking.api.payments import router as payments_router
from studio_booking.api.services import router as services_router
from studio_booking.core.config import settings
from studio_booking.wiring.dependencies import get_engine


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "booking_id",
            "gateway_order_id",
            "gateway_payment_id",
            "status",
            "payment_status",
            "service",
            "reason",
            "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = get_engine().sweeper
    if settings.SWEEP_ENABLED:
        sweeper.start()
    try:
        yield
    finally:
        sweeper.stop()


app = FastAPI(title=f"{settings.BUSINESS_NAME} Booking", version="1.0.0", lifespan=lifespan)

app.include_router(services_router, tags=["services"])
app.include_router(bookings_router, tags=["bookings"])
app.include_router(payments_router, tags=["payments"])
app.include_router(admin_router, tags=["admin"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
