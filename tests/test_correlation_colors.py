import pytest

from correlation_colors import (
    DIAGONAL_COLOR,
    LEGEND_VALUES,
    HslColor,
    color_for,
    colorscale,
    heatmap_grid,
    legend_stops,
)
from schema_normalizer import CorrelationMatrix


class TestColorFor:
    def test_band_anchors(self):
        assert color_for(0.0) == HslColor(210, 70, 75)
        assert color_for(0.2) == HslColor(210, 60, 55)
        assert color_for(0.5) == HslColor(170, 70, 50)
        assert color_for(0.7).hue == pytest.approx(50)
        assert color_for(0.9).hue == pytest.approx(30)
        assert color_for(1.0).hue == pytest.approx(0)

    def test_ends_distinct_and_stable(self):
        assert color_for(0.0).to_hex() != color_for(1.0).to_hex()
        assert color_for(0.37) == color_for(0.37)
        assert color_for(0.0).css == "hsl(210, 70%, 75%)"

    def test_clamped(self):
        assert color_for(-3.0) == color_for(0.0)
        assert color_for(7.0) == color_for(1.0)
        assert color_for(float("nan")) == color_for(0.0)

    def test_heat_is_monotonic(self):
        values = [i / 200 for i in range(201)]
        heats = [color_for(v).heat for v in values]

        assert heats == sorted(heats)

    def test_hex_of_pure_red(self):
        assert HslColor(0, 100, 50).to_hex() == "#ff0000"


class TestScale:
    def test_colorscale_spans_unit_interval(self):
        scale = colorscale()

        assert scale[0][0] == 0.0
        assert scale[-1][0] == 1.0
        assert scale[-1][1] == color_for(1.0).to_hex()

    def test_legend(self):
        stops = legend_stops()

        assert [v for v, _ in stops] == list(LEGEND_VALUES)
        assert len({c for _, c in stops}) == len(stops)


class TestHeatmapGrid:
    def _matrix(self, n):
        cells = tuple(range(1, n + 1))
        rows = tuple(tuple(1.0 if i == j else 0.5 for j in range(n)) for i in range(n))
        return CorrelationMatrix(cells, rows)

    def test_truncated_to_max_cells(self):
        grid = heatmap_grid(self._matrix(30), max_cells=24)

        assert grid.size == 24
        assert len(grid.values) == 24
        assert all(len(row) == 24 for row in grid.colors)

    def test_diagonal_is_neutral(self):
        grid = heatmap_grid(self._matrix(4))

        assert all(grid.colors[i][i] == DIAGONAL_COLOR for i in range(4))
        assert grid.colors[0][1] == color_for(0.5).to_hex()

    def test_missing_matrix(self):
        assert heatmap_grid(None) is None
        assert heatmap_grid(CorrelationMatrix((), ())) is None
