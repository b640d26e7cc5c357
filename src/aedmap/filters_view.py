"""Region + keyword filtering of the site frame."""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from .settings import ALL_REGIONS

SEARCH_FIELDS = ("name", "address", "location")


@dataclass(frozen=True)
class FilterOptions:
    region: str = ALL_REGIONS
    search: str = ""

    @property
    def needle(self) -> str:
        return (self.search or "").strip().lower()


def _matches(row: pd.Series, needle: str) -> bool:
    for key in SEARCH_FIELDS:
        val = row.get(key)
        if val is not None and needle in str(val).lower():
            return True
    return False


def filter_sites(all_sites: pd.DataFrame, opts: FilterOptions) -> pd.DataFrame:
    """Return the rows passing both predicates, in input order. The input is not modified."""
    out = all_sites.copy()
    if out.empty:
        return out

    if opts.region and opts.region != ALL_REGIONS:
        out = out[out["region"] == opts.region]

    needle = opts.needle
    if needle and not out.empty:
        out = out[out.apply(_matches, axis=1, needle=needle)]

    return out
