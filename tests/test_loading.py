"""Tests for reading, projecting and filtering the input layers."""

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point, box

from pointpattern import PointPattern
from pointpattern.loading import (
    check_same_crs,
    county_counts,
    filter_county,
    load_boundary,
    load_points,
    to_projected,
)


class TestLoadLayers:
    """Tests for load_points and load_boundary."""

    def test_load_points(self, geo_files):
        points_path, _ = geo_files
        points = load_points(points_path, county_field="county")
        assert len(points) == 122
        assert set(points.geom_type) == {"Point"}
        assert points.crs.to_epsg() == 4326

    def test_missing_county_field_raises(self, geo_files):
        points_path, _ = geo_files
        with pytest.raises(ValueError, match="County field"):
            load_points(points_path, county_field="parish")

    def test_non_point_layer_raises(self, tmp_path):
        path = tmp_path / "lines.gpkg"
        gpd.GeoDataFrame(
            geometry=[LineString([(0, 0), (1, 1)])], crs="EPSG:4326"
        ).to_file(path, driver="GPKG")
        with pytest.raises(ValueError, match="point geometries"):
            load_points(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_points(tmp_path / "nothing.gpkg")

    def test_boundary_is_dissolved(self, tmp_path):
        path = tmp_path / "tiles.gpkg"
        gpd.GeoDataFrame(
            geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)], crs="EPSG:32617"
        ).to_file(path, driver="GPKG")
        boundary = load_boundary(path)
        assert len(boundary) == 1
        assert boundary.geometry.iloc[0].area == pytest.approx(2.0)


class TestProjection:
    """Tests for reprojection and CRS checks."""

    def test_to_projected(self, geo_layers):
        points, _ = geo_layers
        projected = to_projected(points, "EPSG:32617")
        assert projected.crs.to_epsg() == 32617
        # UTM eastings for Florida are in the hundreds of kilometres
        assert projected.geometry.x.between(1e5, 9e5).all()

    def test_geographic_target_raises(self, geo_layers):
        points, _ = geo_layers
        with pytest.raises(ValueError, match="not projected"):
            to_projected(points, "EPSG:4326")

    def test_missing_crs_raises(self):
        gdf = gpd.GeoDataFrame(geometry=[Point(0, 0)])
        with pytest.raises(ValueError, match="no CRS"):
            to_projected(gdf, "EPSG:32617")

    def test_crs_mismatch_raises(self, geo_layers):
        points, boundary = geo_layers
        with pytest.raises(ValueError, match="CRS mismatch"):
            check_same_crs(to_projected(points, "EPSG:32617"), boundary)

    def test_pattern_requires_matching_crs(self, geo_layers):
        points, boundary = geo_layers
        with pytest.raises(ValueError, match="CRS mismatch"):
            PointPattern.from_geodataframes(to_projected(points, "EPSG:3857"), boundary)


class TestCounty:
    """Tests for county filtering and tabulation."""

    def test_filter_is_case_insensitive(self, geo_layers):
        points, _ = geo_layers
        selected = filter_county(points, "county", "  alachua ")
        assert len(selected) > 0
        assert (selected["county"] == "Alachua").all()

    def test_empty_filter_raises(self, geo_layers):
        points, _ = geo_layers
        with pytest.raises(ValueError, match="No observations"):
            filter_county(points, "county", "Dade")

    def test_county_counts(self, geo_layers):
        points, _ = geo_layers
        table = county_counts(points, "county")
        assert list(table.columns) == ["county", "count", "share"]
        assert table["count"].sum() == len(points)
        assert table["share"].sum() == pytest.approx(1.0)
        assert table["count"].is_monotonic_decreasing
