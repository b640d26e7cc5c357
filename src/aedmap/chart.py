"""Bar-chart model for the busiest regions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Tuple

from .regions import top_regions
from .settings import ALL_REGIONS
from .view_state import ViewStateCoordinator, ViewUpdate

DEFAULT_BAR_COLOR = "#4e79a7"
HIGHLIGHT_BAR_COLOR = "#f45b69"
TOP_N = 20


def nice_scale(values: List[float]) -> Tuple[float, int]:
    """Return (suggested_max, step) rounding the max up to 1/2/5 x 10^k."""
    max_value = max([*values, 0])
    if not math.isfinite(max_value) or max_value <= 0:
        return 5, 1
    magnitude = 10 ** math.floor(math.log10(max_value))
    normalized = max_value / magnitude
    if normalized <= 1:
        nice = 1
    elif normalized <= 2:
        nice = 2
    elif normalized <= 5:
        nice = 5
    else:
        nice = 10
    suggested_max = nice * magnitude
    return suggested_max, max(1, round(suggested_max / 5))


@dataclass
class ChartData:
    labels: List[str] = field(default_factory=list)
    counts: List[int] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    suggested_max: float = 5
    step: int = 1


class RegionChart:
    def __init__(self, coordinator: ViewStateCoordinator, top_n: int = TOP_N):
        self.coordinator = coordinator
        self.top_n = top_n
        self.data = ChartData()
        coordinator.subscribe(self.render)

    def render(self, update: ViewUpdate) -> None:
        top = top_regions(update.region_index, self.top_n)
        labels = [name for name, _ in top]
        counts = [count for _, count in top]
        suggested_max, step = nice_scale(counts)
        self.data = ChartData(
            labels=labels,
            counts=counts,
            colors=[
                HIGHLIGHT_BAR_COLOR if update.active_region != ALL_REGIONS and label == update.active_region else DEFAULT_BAR_COLOR
                for label in labels
            ],
            suggested_max=suggested_max,
            step=step,
        )

    def click(self, index: int) -> bool:
        """Select the region of the clicked bar."""
        if not 0 <= index < len(self.data.labels):
            return False
        self.coordinator.set_region(self.data.labels[index])
        return True
