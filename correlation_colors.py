"""Cold-to-hot colour scale for the cell correlation heatmap."""

import colorsys
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from config import HEATMAP_MAX_CELLS
from schema_normalizer import CellId, CorrelationMatrix

DIAGONAL_COLOR = "#3a3f4b"
LEGEND_VALUES = (0.0, 0.2, 0.4, 0.6, 0.8, 1.0)


@dataclass(frozen=True)
class HslColor:
    hue: float
    saturation: float
    lightness: float

    @property
    def css(self) -> str:
        return f"hsl({self.hue:.0f}, {self.saturation:.0f}%, {self.lightness:.0f}%)"

    def to_hex(self) -> str:
        r, g, b = colorsys.hls_to_rgb(self.hue / 360.0, self.lightness / 100.0, self.saturation / 100.0)
        return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))

    @property
    def heat(self) -> Tuple[float, float]:
        # lower hue is hotter; within the blue band darker is hotter
        return -self.hue, -self.lightness


def color_for(value: float) -> HslColor:
    """
    Blue (0) -> cyan -> yellow -> orange -> red (1).

    Values are clamped to [0, 1]; NaN maps to 0.
    """
    v = 0.0 if math.isnan(value) else max(0.0, min(1.0, value))

    if v < 0.2:
        return HslColor(210, 70, 75 - v * 100)
    if v < 0.5:
        return HslColor(210 - (v - 0.2) * 100, 60, 55)
    if v < 0.7:
        return HslColor(170 - (v - 0.5) * 340, 70, 50)
    if v < 0.9:
        return HslColor(50 - (v - 0.7) * 100, 80, 50)
    return HslColor(30 - (v - 0.9) * 300, 85, 50)


def colorscale(steps: int = 21) -> List[list]:
    """Plotly colorscale sampled from `color_for`."""
    return [[i / (steps - 1), color_for(i / (steps - 1)).to_hex()] for i in range(steps)]


def legend_stops() -> List[Tuple[float, str]]:
    return [(v, color_for(v).to_hex()) for v in LEGEND_VALUES]


@dataclass(frozen=True)
class HeatmapGrid:
    cells: Tuple[CellId, ...]
    values: Tuple[Tuple[float, ...], ...]
    colors: Tuple[Tuple[str, ...], ...]

    @property
    def size(self) -> int:
        return len(self.cells)


def heatmap_grid(correlation: Optional[CorrelationMatrix], max_cells: int = HEATMAP_MAX_CELLS) -> Optional[HeatmapGrid]:
    """Truncate to `max_cells` and colour every entry; the diagonal is neutral."""
    if correlation is None or not correlation.cells:
        return None
    n = min(len(correlation.cells), max_cells)
    values = tuple(row[:n] for row in correlation.matrix[:n])
    colors = tuple(
        tuple(DIAGONAL_COLOR if i == j else color_for(v).to_hex() for j, v in enumerate(row))
        for i, row in enumerate(values)
    )
    return HeatmapGrid(correlation.cells[:n], values, colors)
