from __future__ import annotations

from abc import ABC, abstractmethod

from studio_booking.domain.entities.service_offering import ServiceOffering


class ServiceCatalogPort(ABC):
    @abstractmethod
    def get(self, service_offering_id: int) -> ServiceOffering:
        """Get offering by id. Raises ServiceNotFound."""
        raise NotImplementedError

    @abstractmethod
    def list(self, active_only: bool = True) -> list[ServiceOffering]:
        raise NotImplementedError
