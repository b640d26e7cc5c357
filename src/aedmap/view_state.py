"""Single owner of the viewer state.

Every input change (ingestion, region, keyword, reference location) goes
through one recomputation path:

    filter -> proximity rank -> selection check -> emit

The emitted ``ViewUpdate`` always carries the complete current view, so map,
list and chart collaborators re-render from it without diffing.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, Hashable, Iterable, List, Optional, Tuple, Union

import pandas as pd

from .distance import rank_by_distance
from .filters_view import FilterOptions, filter_sites
from .models import FitBounds, ReferenceLocation, Site
from .normalize import IngestResult, empty_sites
from .regions import build_region_index
from .settings import ALL_REGIONS, Settings

logger = logging.getLogger(__name__)

FULL_VIEW_PADDING = 0.05
SUBSET_VIEW_PADDING = 0.12
FIT_MAX_ZOOM = 13


@dataclass
class ViewState:
    all_sites: pd.DataFrame = field(default_factory=empty_sites)
    region_index: Dict[str, int] = field(default_factory=dict)
    active_region: str = ALL_REGIONS
    keyword: str = ""
    reference_location: Optional[ReferenceLocation] = None
    filtered_view: pd.DataFrame = field(default_factory=empty_sites)
    active_selection_id: Optional[Hashable] = None
    loaded: bool = False
    dropped: int = 0
    # Written only by the refresh controller.
    source_last_edited: Optional[datetime] = None
    last_ingested_at: Optional[datetime] = None


@dataclass
class ViewUpdate:
    sites: pd.DataFrame
    total_count: int
    region_count: int
    filtered_count: int
    region_index: Dict[str, int]
    active_region: str
    keyword: str
    selection_id: Optional[Hashable]
    reference_location: Optional[ReferenceLocation]
    fit_bounds: Optional[FitBounds] = None

    @property
    def is_subset(self) -> bool:
        return self.filtered_count < self.total_count


# Inbound commands, consumed one at a time by the coordinator.


@dataclass(frozen=True)
class SelectRegion:
    region: str


@dataclass(frozen=True)
class SearchKeyword:
    keyword: str


@dataclass(frozen=True)
class UpdateReference:
    location: Optional[ReferenceLocation]


@dataclass(frozen=True)
class FocusSite:
    site_id: Hashable


@dataclass(frozen=True)
class ClearFocus:
    pass


Command = Union[SelectRegion, SearchKeyword, UpdateReference, FocusSite, ClearFocus]
Subscriber = Callable[[ViewUpdate], None]


def compute_fit_bounds(view: pd.DataFrame, total_count: int) -> Optional[FitBounds]:
    if view.empty:
        return None
    padding = FULL_VIEW_PADDING if len(view) == total_count else SUBSET_VIEW_PADDING
    south, north = float(view["lat"].min()), float(view["lat"].max())
    west, east = float(view["lon"].min()), float(view["lon"].max())
    lat_pad = (north - south) * padding
    lon_pad = (east - west) * padding
    return FitBounds(
        south=south - lat_pad,
        west=west - lon_pad,
        north=north + lat_pad,
        east=east + lon_pad,
        padding=padding,
        max_zoom=FIT_MAX_ZOOM,
    )


def _contains_id(view: pd.DataFrame, site_id: Hashable) -> bool:
    if site_id is None or view.empty:
        return False
    return bool((view["id"] == site_id).any())


def _rekey_selection(old_sites: pd.DataFrame, new_sites: pd.DataFrame, site_id: Hashable) -> Optional[Hashable]:
    """Carry a selection onto a refreshed dataset.

    Source ids are kept as-is. Ordinal ids are not stable across refreshes, so
    those selections follow the site's (name, lat, lon) instead.
    """
    if site_id is None or old_sites.empty:
        return None
    old = old_sites[old_sites["id"] == site_id]
    if old.empty:
        return None
    row = old.iloc[0]
    if not bool(row["synthetic_id"]):
        return site_id
    if new_sites.empty:
        return None
    match = new_sites[
        (new_sites["name"] == row["name"]) & (new_sites["lat"] == row["lat"]) & (new_sites["lon"] == row["lon"])
    ]
    if match.empty:
        return None
    return match.iloc[0]["id"]


class ViewStateCoordinator:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._state = ViewState()
        self._subscribers: List[Subscriber] = []
        self._pending: Deque[Command] = deque()
        self.last_update: Optional[ViewUpdate] = None

    @property
    def state(self) -> ViewState:
        return self._state

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        if self.last_update is not None:
            subscriber(self.last_update)
        return subscriber

    # Setters -----------------------------------------------------------

    def ingest(self, result: IngestResult, *, reconcile: bool = False) -> ViewUpdate:
        """Replace the dataset wholesale.

        On first load the region filter resets to "all". When reconciling a
        refresh, the active region survives if it still exists in the new index.
        """
        state = self._state
        new_sites = result.sites
        new_index = build_region_index(new_sites, self.settings.unknown_region)

        if reconcile and state.active_region in new_index:
            region = state.active_region
        else:
            if reconcile and state.active_region != ALL_REGIONS:
                logger.info("Region %s no longer present after refresh; showing all", state.active_region)
            region = ALL_REGIONS

        selection = (
            _rekey_selection(state.all_sites, new_sites, state.active_selection_id) if reconcile else None
        )
        view, selection = self._compute(new_sites, region, state.keyword, state.reference_location, selection)

        state.all_sites = new_sites
        state.region_index = new_index
        state.active_region = region
        state.filtered_view = view
        state.active_selection_id = selection
        state.dropped = result.dropped
        state.loaded = True
        return self._emit(fit=True)

    def set_region(self, region: str) -> ViewUpdate:
        region = (region or "").strip() or ALL_REGIONS
        self._state.active_region = region
        return self._recompute(fit=True)

    def set_keyword(self, keyword: str) -> ViewUpdate:
        self._state.keyword = keyword or ""
        return self._recompute(fit=False)

    def set_reference_location(self, location: Optional[ReferenceLocation]) -> ViewUpdate:
        self._state.reference_location = location
        return self._recompute(fit=False)

    def focus(self, site_id: Hashable) -> bool:
        """Focus a site from the current view; ids outside the view are rejected."""
        if not _contains_id(self._state.filtered_view, site_id):
            logger.debug("Ignoring focus on %r: not in current view", site_id)
            return False
        self._state.active_selection_id = site_id
        self._emit(fit=False)
        return True

    def clear_focus(self) -> None:
        self._state.active_selection_id = None
        self._emit(fit=False)

    # Command queue -----------------------------------------------------

    def dispatch(self, command: Command):
        if isinstance(command, SelectRegion):
            return self.set_region(command.region)
        if isinstance(command, SearchKeyword):
            return self.set_keyword(command.keyword)
        if isinstance(command, UpdateReference):
            return self.set_reference_location(command.location)
        if isinstance(command, FocusSite):
            return self.focus(command.site_id)
        if isinstance(command, ClearFocus):
            return self.clear_focus()
        raise TypeError(f"Unknown command: {command!r}")

    def enqueue(self, command: Command) -> None:
        self._pending.append(command)

    def drain(self, commands: Iterable[Command] | None = None) -> int:
        """Apply queued commands in arrival order; returns how many were applied."""
        if commands is not None:
            self._pending.extend(commands)
        applied = 0
        while self._pending:
            self.dispatch(self._pending.popleft())
            applied += 1
        return applied

    # Queries -----------------------------------------------------------

    def selected_site(self) -> Optional[Site]:
        view = self._state.filtered_view
        site_id = self._state.active_selection_id
        if not _contains_id(view, site_id):
            return None
        return Site.from_row(view[view["id"] == site_id].iloc[0])

    def current_update(self) -> ViewUpdate:
        return self._build_update(fit=False)

    # Internals ---------------------------------------------------------

    def _compute(
        self,
        all_sites: pd.DataFrame,
        region: str,
        keyword: str,
        reference: Optional[ReferenceLocation],
        selection: Optional[Hashable],
    ) -> Tuple[pd.DataFrame, Optional[Hashable]]:
        view = filter_sites(all_sites, FilterOptions(region=region, search=keyword))
        view = rank_by_distance(view, reference)
        if selection is not None and not _contains_id(view, selection):
            selection = None
        return view, selection

    def _recompute(self, *, fit: bool) -> ViewUpdate:
        state = self._state
        view, selection = self._compute(
            state.all_sites, state.active_region, state.keyword, state.reference_location, state.active_selection_id
        )
        state.filtered_view = view
        state.active_selection_id = selection
        return self._emit(fit=fit)

    def _build_update(self, *, fit: bool) -> ViewUpdate:
        state = self._state
        fit_bounds = None
        if fit and state.reference_location is None:
            fit_bounds = compute_fit_bounds(state.filtered_view, len(state.all_sites))
        return ViewUpdate(
            sites=state.filtered_view.copy(),
            total_count=len(state.all_sites),
            region_count=len(state.region_index),
            filtered_count=len(state.filtered_view),
            region_index=dict(state.region_index),
            active_region=state.active_region,
            keyword=state.keyword,
            selection_id=state.active_selection_id,
            reference_location=state.reference_location,
            fit_bounds=fit_bounds,
        )

    def _emit(self, *, fit: bool) -> ViewUpdate:
        update = self._build_update(fit=fit)
        self.last_update = update
        for subscriber in list(self._subscribers):
            subscriber(update)
        return update
