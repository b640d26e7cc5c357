"""Ranked list presentation: capped entries, summary line, focus-by-id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, List, Optional

from .directions import directions_url
from .models import Site
from .view_state import ViewStateCoordinator, ViewUpdate

MAX_LIST_ITEMS = 30
EMPTY_SUMMARY = "No sites match the current filters."


@dataclass
class ListEntry:
    site: Site
    title: str
    lines: List[str]
    directions: str
    selected: bool = False


def format_distance(km: Optional[float]) -> str:
    if km is None:
        return ""
    if km < 1:
        return f"{km * 1000:.0f} m"
    return f"{km:.1f} km"


def summarize(total: int, shown: int) -> str:
    if not total:
        return EMPTY_SUMMARY
    return f"Showing {shown:,} of {total:,} sites"


class SiteList:
    def __init__(self, coordinator: ViewStateCoordinator, cap: int = MAX_LIST_ITEMS):
        self.coordinator = coordinator
        self.cap = cap
        self.entries: List[ListEntry] = []
        self.summary = ""
        coordinator.subscribe(self.render)

    def render(self, update: ViewUpdate) -> None:
        head = update.sites.head(self.cap)
        entries = []
        for _, row in head.iterrows():
            site = Site.from_row(row)
            lines = [
                f"{site.region} / {site.address}",
                f"Location: {site.location}",
                f"Available: {site.available_days} {site.available_hours}",
            ]
            dist = format_distance(site.distance_km)
            if dist:
                lines.append(f"Distance: {dist}")
            entries.append(
                ListEntry(
                    site=site,
                    title=site.name,
                    lines=lines,
                    directions=directions_url(site, update.reference_location),
                    selected=update.selection_id is not None and site.id == update.selection_id,
                )
            )
        self.entries = entries
        self.summary = summarize(update.filtered_count, len(entries))

    def focus(self, site_id: Hashable) -> bool:
        return self.coordinator.focus(site_id)
