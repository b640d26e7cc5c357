"""Render the current view as a folium map with clustered markers."""

from __future__ import annotations

from html import escape
from pathlib import Path
from typing import Optional

import folium
from folium.plugins import MarkerCluster

from ..directions import directions_url
from ..models import ReferenceLocation, Site
from ..view_state import ViewStateCoordinator, ViewUpdate

DEFAULT_CENTER = (35.99, 139.66)
DEFAULT_ZOOM = 8
MIN_ZOOM = 7
MAX_ZOOM = 17
DISABLE_CLUSTERING_AT_ZOOM = 15
TILES_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
TILES_ATTRIBUTION = "&copy; OpenStreetMap contributors"


def popup_html(site: Site, reference: Optional[ReferenceLocation] = None) -> str:
    lines = [
        f"<strong>{escape(site.name)}</strong>",
        f"{escape(site.region)} / {escape(site.address)}",
        f"Location: {escape(site.location)}",
        f"Available: {escape(site.available_days)} {escape(site.available_hours)}",
        f"Pads: {escape(site.pad_type)}",
        f"Phone: {escape(site.phone or '―')}",
    ]
    url = escape(directions_url(site, reference), quote=True)
    lines.append(f"<a href='{url}' target='_blank'>Directions</a>")
    return "<br>".join(lines)


def build_map(update: ViewUpdate) -> folium.Map:
    m = folium.Map(
        location=list(DEFAULT_CENTER),
        zoom_start=DEFAULT_ZOOM,
        min_zoom=MIN_ZOOM,
        max_zoom=MAX_ZOOM,
        tiles=TILES_URL,
        attr=TILES_ATTRIBUTION,
    )
    cluster = MarkerCluster(
        options={
            "chunkedLoading": True,
            "disableClusteringAtZoom": DISABLE_CLUSTERING_AT_ZOOM,
            "showCoverageOnHover": False,
            "spiderfyOnMaxZoom": False,
        }
    )
    for _, row in update.sites.iterrows():
        site = Site.from_row(row)
        folium.Marker(
            [site.lat, site.lon],
            popup=folium.Popup(popup_html(site, update.reference_location), max_width=320),
            tooltip=site.name,
        ).add_to(cluster)
    cluster.add_to(m)

    if update.reference_location is not None:
        ref = update.reference_location
        folium.CircleMarker(
            location=[ref.lat, ref.lon], radius=8, color="#1f77b4", fill=True, fill_opacity=0.9, tooltip="You"
        ).add_to(m)
        m.location = [ref.lat, ref.lon]
    elif update.fit_bounds is not None:
        m.fit_bounds(update.fit_bounds.as_folium(), max_zoom=update.fit_bounds.max_zoom)
    return m


class SiteMap:
    """Map collaborator; keeps the latest rendered folium map."""

    def __init__(self, coordinator: ViewStateCoordinator):
        self.map: Optional[folium.Map] = None
        self.last_fit = None
        self.marker_count = 0
        coordinator.subscribe(self.render)

    def render(self, update: ViewUpdate) -> None:
        self.map = build_map(update)
        self.marker_count = len(update.sites)
        if update.fit_bounds is not None:
            self.last_fit = update.fit_bounds

    def save(self, out_path: str | Path) -> Path:
        if self.map is None:
            raise ValueError("Nothing rendered yet; cannot save map.")
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        self.map.save(out_path)
        return out_path
