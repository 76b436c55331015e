from __future__ import annotations

from fastapi import HTTPException

from studio_booking.application.exceptions import (
    BookingEngineError,
    BookingNotFound,
    ConcurrentModification,
    GatewayError,
    GatewayTimeout,
    InvalidBookingRequest,
    InvalidState,
    ServiceNotFound,
    SlotConflict,
)


def http_error(e: BookingEngineError) -> HTTPException:
    """Translate a typed engine error into the HTTPException a router raises."""
    if isinstance(e, (ServiceNotFound, BookingNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SlotConflict):
        return HTTPException(
            status_code=409,
            detail={"message": str(e), "alternatives": [a.isoformat() for a in e.alternatives]},
        )
    if isinstance(e, (InvalidState, ConcurrentModification)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidBookingRequest):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, GatewayTimeout):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
