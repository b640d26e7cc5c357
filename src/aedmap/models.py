"""Canonical site record and small value types shared across the viewer."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Hashable, Mapping, Optional, Tuple

SITE_COLUMNS = [
    "id",
    "name",
    "location",
    "prefecture",
    "region",
    "address",
    "phone",
    "available_days",
    "available_hours",
    "pad_type",
    "lat",
    "lon",
    "synthetic_id",
]


@dataclass(frozen=True)
class Site:
    id: Hashable
    name: str
    location: str
    prefecture: str
    region: str
    address: str
    phone: str
    available_days: str
    available_hours: str
    pad_type: str
    lat: float
    lon: float
    synthetic_id: bool = False
    distance_km: Optional[float] = None

    def to_record(self) -> Dict[str, Any]:
        """Row for a sites frame; the transient distance is never part of it."""
        record = asdict(self)
        record.pop("distance_km")
        return record

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Site":
        dist = row.get("distance_km")
        return cls(
            **{col: row[col] for col in SITE_COLUMNS},
            distance_km=float(dist) if dist is not None and dist == dist else None,
        )

    def continuity_key(self) -> Tuple[str, float, float]:
        return (self.name, self.lat, self.lon)


@dataclass(frozen=True)
class ReferenceLocation:
    lat: float
    lon: float


@dataclass(frozen=True)
class FitBounds:
    """Padded bounding box the map should fit; padding is a fraction of the span."""

    south: float
    west: float
    north: float
    east: float
    padding: float
    max_zoom: int = 13

    def as_folium(self) -> list[list[float]]:
        return [[self.south, self.west], [self.north, self.east]]
