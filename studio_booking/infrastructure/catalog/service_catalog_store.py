from __future__ import annotations

from studio_booking.application.exceptions import ServiceNotFound
from studio_booking.application.ports.service_catalog import ServiceCatalogPort
from studio_booking.domain.entities.service_offering import ServiceOffering
from studio_booking.infrastructure.catalog.service_catalog_data import SERVICE_CATALOG


class ServiceCatalogStore(ServiceCatalogPort):
    def __init__(self, catalog: dict[int, ServiceOffering] | None = None) -> None:
        self._catalog = dict(SERVICE_CATALOG if catalog is None else catalog)

    def get(self, service_offering_id: int) -> ServiceOffering:
        entry = self._catalog.get(service_offering_id)
        if entry is None:
            raise ServiceNotFound(service_offering_id)
        return entry

    def list(self, active_only: bool = True) -> list[ServiceOffering]:
        entries = sorted(self._catalog.values(), key=lambda entry: entry.id)
        if active_only:
            return [entry for entry in entries if entry.is_active]
        return entries
