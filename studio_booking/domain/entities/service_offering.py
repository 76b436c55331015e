from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ServiceOffering:
    id: int
    name: str
    category: str  # "photography", "videography", "editing", "other"
    price: int  # minor currency units (paise)
    duration_minutes: int
    description: str = ""
    features: tuple[str, ...] = field(default_factory=tuple)
    is_popular: bool = False
    is_active: bool = True
