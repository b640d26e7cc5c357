"""Region aggregation index (region -> site count)."""

from __future__ import annotations

from typing import Dict, List, Tuple

import pandas as pd
from unidecode import unidecode

from .settings import UNKNOWN_REGION


def normalize_region(value, unknown: str = UNKNOWN_REGION) -> str:
    text = "" if value is None or (isinstance(value, float) and value != value) else str(value).strip()
    return text or unknown


def build_region_index(sites: pd.DataFrame, unknown: str = UNKNOWN_REGION) -> Dict[str, int]:
    """Count sites per normalized region; rebuilt from scratch on every ingestion."""
    index: Dict[str, int] = {}
    if sites is None or sites.empty:
        return index
    for value in sites["region"]:
        key = normalize_region(value, unknown)
        index[key] = index.get(key, 0) + 1
    return index


def top_regions(index: Dict[str, int], n: int = 20) -> List[Tuple[str, int]]:
    # sorted() is stable, so equal counts keep first-seen order.
    ranked = sorted(index.items(), key=lambda item: item[1], reverse=True)
    return ranked[:n] if n else ranked


def _collation_key(name: str) -> Tuple[str, str]:
    return unidecode(name).casefold(), name


def region_options(index: Dict[str, int]) -> List[Tuple[str, int]]:
    """Regions ordered for a selector control."""
    return sorted(index.items(), key=lambda item: _collation_key(item[0]))
