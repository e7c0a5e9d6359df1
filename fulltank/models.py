"""Data models for FullTank."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional


def finite_float(value: Any) -> Optional[float]:
    """Return value as a finite float, or None."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass
class Station:
    """Canonical, provider-agnostic station record."""

    id: str
    state: str
    brand: str = ""
    name: str = ""
    suburb: str = ""
    street: str = ""
    postcode: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    prices: dict[str, float] = field(default_factory=dict)
    updated_at: str = ""
    source: str = ""

    @property
    def has_coordinates(self) -> bool:
        return finite_float(self.lat) is not None and finite_float(self.lng) is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the wire/store shape."""
        return {
            "id": self.id,
            "state": self.state,
            "brand": self.brand,
            "name": self.name,
            "suburb": self.suburb,
            "street": self.street,
            "postcode": self.postcode,
            "lat": self.lat,
            "lng": self.lng,
            "prices": dict(self.prices),
            "updatedAt": self.updated_at,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Station":
        """Build a station from the wire/store shape."""
        prices = {}
        for fuel, price in (data.get("prices") or {}).items():
            number = finite_float(price)
            if number is not None and number > 0:
                prices[fuel] = number
        return cls(
            id=str(data.get("id", "")),
            state=str(data.get("state") or ""),
            brand=str(data.get("brand") or ""),
            name=str(data.get("name") or ""),
            suburb=str(data.get("suburb") or ""),
            street=str(data.get("street") or ""),
            postcode=str(data.get("postcode") or ""),
            lat=finite_float(data.get("lat")),
            lng=finite_float(data.get("lng")),
            prices=prices,
            updated_at=str(data.get("updatedAt") or data.get("updated_at") or ""),
            source=str(data.get("source") or ""),
        )


@dataclass
class PriceUpdate:
    """Audit entry created for every price submission. Never mutated."""

    id: str
    station_id: str
    prices: dict[str, float]
    created_at: str
    photo_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stationId": self.station_id,
            "prices": dict(self.prices),
            "photoUrl": self.photo_url,
            "createdAt": self.created_at,
        }


@dataclass
class Alert:
    """A price alert evaluated on demand against fresh station lists."""

    id: str
    fuel_type: str
    threshold: float
    radius_km: float = 5.0
    center: Optional[dict[str, float]] = None
    suburb: str = ""
    enabled: bool = True
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fuelType": self.fuel_type,
            "threshold": self.threshold,
            "radiusKm": self.radius_km,
            "center": self.center,
            "suburb": self.suburb,
            "enabled": self.enabled,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        center = data.get("center")
        if isinstance(center, dict):
            lat, lng = finite_float(center.get("lat")), finite_float(center.get("lng"))
            center = {"lat": lat, "lng": lng} if lat is not None and lng is not None else None
        else:
            center = None
        return cls(
            id=str(data.get("id", "")),
            fuel_type=str(data.get("fuelType") or "U91"),
            threshold=finite_float(data.get("threshold")) or 0.0,
            radius_km=finite_float(data.get("radiusKm")) or 5.0,
            center=center,
            suburb=str(data.get("suburb") or ""),
            enabled=bool(data.get("enabled", True)),
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass
class StationQuery:
    """Parameters of one aggregated station lookup."""

    q: str = ""
    fuel: Optional[str] = None
    state: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: Optional[float] = None
    sort: str = ""

    def __post_init__(self):
        self.q = (self.q or "").strip()
        self.state = (self.state or "").strip().upper()
        self.sort = (self.sort or "").strip().lower()
        self.lat = finite_float(self.lat)
        self.lng = finite_float(self.lng)
        self.radius_km = finite_float(self.radius_km)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None
