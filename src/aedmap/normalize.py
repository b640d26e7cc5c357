"""Normalization of raw GeoJSON features into canonical sites."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Iterable, List, Mapping, Optional

import pandas as pd

from .errors import DecodeError
from .models import SITE_COLUMNS, Site
from .settings import Settings

logger = logging.getLogger(__name__)

_TEXT_FIELDS = [c for c in SITE_COLUMNS if c not in {"id", "lat", "lon", "synthetic_id"}]

# Ordinal ids are strings so they never collide with numeric source ids.
SYNTHETIC_ID_PREFIX = "row-"


@dataclass
class IngestResult:
    sites: pd.DataFrame
    dropped: int = 0


def pick_first(row: Mapping[str, Any], candidates: List[str]) -> str:
    for key in candidates:
        if key in row and row[key] is not None and str(row[key]).strip():
            return str(row[key]).strip()
    return ""


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    try:
        value = float(value)
    except (OverflowError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _pick_id(props: Mapping[str, Any], candidates: List[str]):
    for key in candidates:
        val = props.get(key)
        if val is None or (isinstance(val, str) and not val.strip()):
            continue
        return val
    return None


def normalize_feature(feature: Mapping[str, Any], index: int, settings: Settings) -> Optional[Site]:
    """Return a Site for one raw feature, or None when its coordinates are unusable."""
    if not isinstance(feature, Mapping):
        return None
    props = feature.get("properties") or {}
    if not isinstance(props, Mapping):
        props = {}
    geometry = feature.get("geometry") or {}
    coords = geometry.get("coordinates") if isinstance(geometry, Mapping) else None
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None

    # Source order is (lon, lat).
    lon = _finite(coords[0])
    lat = _finite(coords[1])
    if lat is None or lon is None:
        return None

    values = {}
    for name, candidates in settings.field_candidates.items():
        values[name] = pick_first(props, candidates) or settings.field_default(name)

    source_id = _pick_id(props, settings.id_candidates)
    return Site(
        id=f"{SYNTHETIC_ID_PREFIX}{index}" if source_id is None else source_id,
        lat=lat,
        lon=lon,
        synthetic_id=source_id is None,
        **{name: values.get(name, settings.field_default(name)) for name in _TEXT_FIELDS},
    )


def empty_sites() -> pd.DataFrame:
    return pd.DataFrame(columns=SITE_COLUMNS)


def normalize_features(features: Iterable[Mapping[str, Any]], settings: Settings) -> IngestResult:
    rows = []
    dropped = 0
    for idx, feature in enumerate(features):
        site = normalize_feature(feature, idx, settings)
        if site is None:
            dropped += 1
            continue
        rows.append(site.to_record())
    if dropped:
        logger.info("Dropped %s records without finite coordinates", dropped)
    if not rows:
        return IngestResult(sites=empty_sites(), dropped=dropped)
    df = pd.DataFrame(rows, columns=SITE_COLUMNS)
    df["lat"] = df["lat"].astype(float)
    df["lon"] = df["lon"].astype(float)
    return IngestResult(sites=df, dropped=dropped)


def parse_feature_collection(payload: Any) -> List[Mapping[str, Any]]:
    """Extract the feature list from a decoded FeatureCollection (or bare list)."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        features = payload.get("features")
        if features is None:
            return []
        if isinstance(features, list):
            return features
    raise DecodeError("Dataset is not a GeoJSON FeatureCollection.")
