"""Reference-location acquisition with a bounded wait and a cached fix.

Any failure (no query configured, geocoder error, no match, timeout) means
"no reference location" and is never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Tuple

from geopy import Nominatim

from .models import ReferenceLocation

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_AGE = 300.0


def _build_geocoder(user_agent: str, timeout: float) -> Callable[[str], Optional[object]]:
    nominatim = Nominatim(user_agent=user_agent, timeout=timeout)
    return nominatim.geocode


class GeolocationProvider:
    def __init__(
        self,
        query: str | None = None,
        *,
        fixed: Optional[ReferenceLocation] = None,
        geocoder: Optional[Callable[[str], Optional[object]]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_age: float = DEFAULT_MAX_AGE,
        user_agent: str = "aedmap-viewer",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.query = (query or "").strip()
        self.fixed = fixed
        self.timeout = timeout
        self.max_age = max_age
        self._geocoder = geocoder
        self._user_agent = user_agent
        self._clock = clock
        self._cached: Optional[Tuple[float, ReferenceLocation]] = None

    def cached_fix(self) -> Optional[ReferenceLocation]:
        if self._cached is None:
            return None
        ts, loc = self._cached
        if self._clock() - ts > self.max_age:
            return None
        return loc

    def _resolve(self) -> Optional[ReferenceLocation]:
        if self.fixed is not None:
            return self.fixed
        if not self.query:
            return None
        geocode = self._geocoder or _build_geocoder(self._user_agent, self.timeout)
        loc = geocode(self.query)
        if loc is None:
            return None
        return ReferenceLocation(lat=float(loc.latitude), lon=float(loc.longitude))

    async def locate(self) -> Optional[ReferenceLocation]:
        cached = self.cached_fix()
        if cached is not None:
            return cached
        try:
            loc = await asyncio.wait_for(asyncio.to_thread(self._resolve), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info("Geolocation timed out after %ss", self.timeout)
            return None
        except Exception as exc:
            logger.info("Geolocation unavailable: %s", exc)
            return None
        if loc is not None:
            self._cached = (self._clock(), loc)
        return loc
