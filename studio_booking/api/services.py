from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from studio_booking.api.errors import http_error
from studio_booking.api.schemas import AvailabilitySchema, ServiceSchema
from studio_booking.application.exceptions import ServiceNotFound
from studio_booking.application.ports.service_catalog import ServiceCatalogPort
from studio_booking.application.use_cases.availability import AvailabilityIndex
from studio_booking.wiring.dependencies import get_availability, get_catalog

router = APIRouter()


@router.get("/services", response_model=list[ServiceSchema])
def list_services(catalog: ServiceCatalogPort = Depends(get_catalog)):
    return [ServiceSchema.from_entity(s) for s in catalog.list(active_only=True)]


@router.get("/services/{service_id}", response_model=ServiceSchema)
def get_service(service_id: int, catalog: ServiceCatalogPort = Depends(get_catalog)):
    try:
        offering = catalog.get(service_id)
    except ServiceNotFound as e:
        raise http_error(e)
    if not offering.is_active:
        raise HTTPException(status_code=404, detail=f"Service offering {service_id} not found")
    return ServiceSchema.from_entity(offering)


@router.get("/availability", response_model=AvailabilitySchema)
def get_availability_for_day(
    day: date = Query(..., alias="date"),
    service_id: int = Query(...),
    catalog: ServiceCatalogPort = Depends(get_catalog),
    availability: AvailabilityIndex = Depends(get_availability),
):
    try:
        offering = catalog.get(service_id)
    except ServiceNotFound as e:
        raise http_error(e)

    slots = availability.find_available_slots(day, offering.duration_minutes)
    return AvailabilitySchema(
        event_date=day,
        service_id=offering.id,
        duration_minutes=offering.duration_minutes,
        slots=slots,
    )
