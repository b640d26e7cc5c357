"""Turn-by-turn routing links."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from .models import ReferenceLocation, Site

DIRECTIONS_BASE = "https://www.google.com/maps/dir/"
DEFAULT_TRAVEL_MODE = "walking"


def directions_url(
    site: Site,
    reference: Optional[ReferenceLocation] = None,
    *,
    travel_mode: str = DEFAULT_TRAVEL_MODE,
) -> str:
    """Routing URL to a site; origin and travel mode only when a reference location is known."""
    params = {"api": "1", "destination": f"{site.lat},{site.lon}"}
    if reference is not None:
        params["origin"] = f"{reference.lat},{reference.lon}"
        params["travelmode"] = travel_mode
    return f"{DIRECTIONS_BASE}?{urlencode(params)}"
