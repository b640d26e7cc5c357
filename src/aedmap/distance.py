"""Distance helpers and proximity ranking."""

from __future__ import annotations

import math
from typing import Optional

import pandas as pd

from .models import ReferenceLocation

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate great-circle distance in kilometers."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(math.sqrt(a), 1.0))


def rank_by_distance(view: pd.DataFrame, reference: Optional[ReferenceLocation]) -> pd.DataFrame:
    """Annotate with distance_km and sort nearest first; without a reference, strip the annotation."""
    if reference is None:
        return view.drop(columns=["distance_km"], errors="ignore")
    out = view.copy()
    if out.empty:
        out["distance_km"] = pd.Series(dtype=float)
        return out

    dists = [
        haversine_km(reference.lat, reference.lon, float(lat), float(lon))
        for lat, lon in zip(out["lat"], out["lon"])
    ]
    out["distance_km"] = [d if math.isfinite(d) else float("nan") for d in dists]
    # mergesort keeps ingestion order among equal distances; NaN goes last.
    return out.sort_values("distance_km", kind="mergesort", na_position="last")
