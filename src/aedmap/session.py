"""Wiring of coordinator, refresh controller and geolocation for one viewer session."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .geolocation import GeolocationProvider
from .models import ReferenceLocation
from .refresh import RefreshController, RefreshOutcome
from .settings import Settings
from .view_state import ViewStateCoordinator

logger = logging.getLogger(__name__)


class ViewerSession:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        coordinator: ViewStateCoordinator | None = None,
        refresher: RefreshController | None = None,
        locator: GeolocationProvider | None = None,
    ):
        self.settings = settings or Settings()
        self.coordinator = coordinator or ViewStateCoordinator(self.settings)
        self.refresher = refresher or RefreshController(self.coordinator, self.settings)
        self.locator = locator

    async def _apply_location(self) -> Optional[ReferenceLocation]:
        if self.locator is None:
            return None
        loc = await self.locator.locate()
        if loc is not None:
            # Recompute in place; never refetches the dataset.
            self.coordinator.set_reference_location(loc)
        return loc

    async def start(self) -> RefreshOutcome:
        """Initial load and geolocation run concurrently; both write disjoint state."""
        outcome, _ = await asyncio.gather(self.refresher.refresh(), self._apply_location())
        if not outcome.ok:
            logger.error("Initial load failed: %s", outcome.message)
        return outcome

    async def refresh(self) -> RefreshOutcome:
        return await self.refresher.refresh()

    async def relocate(self) -> Optional[ReferenceLocation]:
        return await self._apply_location()
