"""Tests for the distance statistics and single-number summaries."""

import numpy as np
import pytest

from pointpattern import (
    PointPattern,
    clark_evans,
    g_function,
    g_theoretical,
    k_function,
    l_function,
    make_radii,
    quadrat_counts,
)
from pointpattern.statistics import function_table


class TestRadii:
    """Tests for radius sequences."""

    def test_default_stop_is_quarter_of_shortest_side(self, csr_pattern):
        r = make_radii(csr_pattern, num=11)
        assert r[0] == 0.0
        assert r[-1] == pytest.approx(250.0)
        assert len(r) == 11

    def test_invalid_range_raises(self, csr_pattern):
        with pytest.raises(ValueError):
            make_radii(csr_pattern, start=100.0, stop=50.0)

    def test_decreasing_radii_rejected(self, csr_pattern):
        with pytest.raises(ValueError, match="increasing"):
            g_function(csr_pattern, [10.0, 5.0])


class TestGFunction:
    """Tests for the nearest-neighbour distance distribution."""

    def test_grid_jumps_at_spacing(self, grid_pattern):
        g = g_function(grid_pattern, [0.0, 50.0, 99.0, 150.0])
        assert g[0] == 0.0
        assert g[-1] == pytest.approx(1.0)
        assert np.all(np.diff(g) >= 0)

    def test_is_monotone_between_zero_and_one(self, csr_pattern):
        r = np.linspace(0.0, 80.0, 30)
        g = g_function(csr_pattern, r)
        assert len(g) == len(r)
        assert np.all(np.diff(g) >= -1e-12)
        assert np.all((g >= 0) & (g <= 1 + 1e-12))

    def test_csr_pattern_follows_theory(self, csr_pattern):
        r = np.linspace(0.0, 60.0, 25)
        g = g_function(csr_pattern, r)
        theo = g_theoretical(r, csr_pattern.intensity)
        assert np.nanmax(np.abs(g - theo)) < 0.2

    def test_clustered_pattern_exceeds_theory(self, clustered_pattern):
        r = np.array([10.0, 20.0])
        g = g_function(clustered_pattern, r)
        theo = g_theoretical(r, clustered_pattern.intensity)
        assert np.all(g > theo + 0.3)

    def test_single_point_is_nan(self, square_window):
        pattern = PointPattern.from_coordinates(np.array([[1.0, 1.0]]), square_window)
        assert np.isnan(g_function(pattern, [0.0, 10.0])).all()

    def test_single_radius_rejected(self, csr_pattern):
        with pytest.raises(ValueError, match="two radii"):
            g_function(csr_pattern, [10.0])


class TestKLFunctions:
    """Tests for Ripley's K and the L-function."""

    def test_k_is_non_decreasing(self, csr_pattern):
        r = np.linspace(0.0, 100.0, 11)
        k = k_function(csr_pattern, r)
        assert k[0] == 0.0
        assert np.all(np.diff(k) >= -1e-9)

    def test_csr_l_is_close_to_r(self, csr_pattern):
        r = np.array([100.0, 150.0])
        lvals = l_function(csr_pattern, r)
        assert np.all(np.abs(lvals - r) < 0.2 * r)

    def test_clustered_l_exceeds_r(self, clustered_pattern):
        r = np.array([20.0, 40.0])
        lvals = l_function(clustered_pattern, r)
        assert np.all(lvals > 2 * r)

    def test_l_is_root_of_k(self, csr_pattern):
        r = np.linspace(10.0, 100.0, 5)
        assert np.allclose(l_function(csr_pattern, r), np.sqrt(k_function(csr_pattern, r) / np.pi))

    def test_function_table(self, csr_pattern):
        table = function_table(csr_pattern, "l", np.linspace(0.0, 100.0, 5))
        assert list(table.columns) == ["r", "obs", "theo"]
        assert np.allclose(table["theo"], table["r"])

    def test_function_table_unknown_name(self, csr_pattern):
        with pytest.raises(ValueError):
            function_table(csr_pattern, "J", [1.0])


class TestClarkEvans:
    """Tests for the Clark-Evans index."""

    def test_grid_is_dispersed(self, grid_pattern):
        result = clark_evans(grid_pattern)
        assert result["clark_evans_r"] == pytest.approx(2.0)
        assert result["pattern"] == "dispersed"
        assert result["p_value"] < 0.001

    def test_clusters_are_clustered(self, clustered_pattern):
        result = clark_evans(clustered_pattern)
        assert result["clark_evans_r"] < 0.8
        assert result["pattern"] == "clustered"

    def test_single_point(self, square_window):
        pattern = PointPattern.from_coordinates(np.array([[1.0, 1.0]]), square_window)
        assert clark_evans(pattern)["pattern"] == "insufficient_data"


class TestQuadratCounts:
    """Tests for the quadrat dispersion test."""

    def test_grid_is_uniform(self, grid_pattern):
        result = quadrat_counts(grid_pattern, nx=5)
        assert sum(result["counts"]) == 100
        assert all(c == 4 for c in result["counts"])
        assert result["vmr"] == 0.0
        assert result["pattern"] == "uniform"

    def test_clusters_are_overdispersed(self, clustered_pattern):
        result = quadrat_counts(clustered_pattern, nx=4)
        assert result["vmr"] > 1.2
        assert result["p_value"] < 0.01

    def test_expected_follows_clipped_area(self):
        from shapely.geometry import Polygon
        window = Polygon([(0, 0), (1000, 0), (1000, 500), (500, 500), (500, 1000), (0, 1000)])
        rng = np.random.default_rng(2)
        pattern = PointPattern.from_coordinates(rng.uniform(0, 1000, size=(400, 2)), window)
        result = quadrat_counts(pattern, nx=2)
        # north-east quadrat lies outside the L-shaped window
        assert result["expected"][3] == 0.0
        assert result["counts"][3] == 0
        assert result["df"] == 2
