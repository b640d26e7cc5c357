"""Exports of the current view (GeoJSON, HTML map)."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd

from .map.site_map import build_map
from .models import SITE_COLUMNS
from .view_state import ViewUpdate


def view_to_geojson(df: pd.DataFrame) -> dict:
    features = []
    for _, r in df.iterrows():
        # distance_km is transient and never serialized.
        props = {col: r[col] for col in SITE_COLUMNS if col not in ("lat", "lon")}
        props["id"] = props["id"].item() if hasattr(props["id"], "item") else props["id"]
        props["synthetic_id"] = bool(props["synthetic_id"])
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [float(r["lon"]), float(r["lat"])]},
                "properties": props,
            }
        )
    return {"type": "FeatureCollection", "features": features}


def write_geojson(df: pd.DataFrame, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(view_to_geojson(df), f, ensure_ascii=False)


def export_view(update: ViewUpdate, out_dir: str | Path) -> dict:
    """Write sites.geojson and sites_map.html for the given view."""
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    geojson = out_path / "sites.geojson"
    html = out_path / "sites_map.html"
    write_geojson(update.sites, geojson)
    build_map(update).save(str(html))
    return {"geojson": geojson, "html": html}
