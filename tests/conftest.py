"""
Shared fixtures: synthetic point patterns in a 1 km square window and small
geographic layers written to disk.
"""

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Point, box

from pointpattern import PointPattern, Window


SIDE = 1000.0


@pytest.fixture
def square_window():
    return Window(box(0.0, 0.0, SIDE, SIDE))


@pytest.fixture
def csr_pattern(square_window):
    rng = np.random.default_rng(7)
    xy = rng.uniform(0.0, SIDE, size=(200, 2))
    return PointPattern.from_coordinates(xy, square_window)


@pytest.fixture
def clustered_pattern(square_window):
    rng = np.random.default_rng(11)
    parents = rng.uniform(100.0, SIDE - 100.0, size=(20, 2))
    offspring = np.vstack([p + rng.normal(0.0, 8.0, size=(10, 2)) for p in parents])
    return PointPattern.from_coordinates(offspring, square_window)


@pytest.fixture
def grid_pattern(square_window):
    coords = np.arange(50.0, SIDE, 100.0)
    xx, yy = np.meshgrid(coords, coords)
    xy = np.column_stack([xx.ravel(), yy.ravel()])
    return PointPattern.from_coordinates(xy, square_window)


@pytest.fixture
def geo_layers():
    """Points with a county attribute and a boundary, both in WGS84."""
    rng = np.random.default_rng(3)
    xmin, ymin, xmax, ymax = -82.50, 29.60, -82.30, 29.80

    lon = rng.uniform(xmin, xmax, size=120)
    lat = rng.uniform(ymin, ymax, size=120)
    county = np.where(lon < (xmin + xmax) / 2, "Alachua", "Marion")

    # Two observations outside the study area
    lon = np.append(lon, [-82.60, -82.10])
    lat = np.append(lat, [29.70, 29.90])
    county = np.append(county, ["Levy", "Putnam"])

    points = gpd.GeoDataFrame(
        {"county": county},
        geometry=[Point(x, y) for x, y in zip(lon, lat)],
        crs="EPSG:4326",
    )
    boundary = gpd.GeoDataFrame(
        {"name": ["study area"]},
        geometry=[box(xmin, ymin, xmax, ymax)],
        crs="EPSG:4326",
    )
    return points, boundary


@pytest.fixture
def geo_files(tmp_path, geo_layers):
    points, boundary = geo_layers
    points_path = tmp_path / "points.gpkg"
    boundary_path = tmp_path / "boundary.gpkg"
    points.to_file(points_path, driver="GPKG")
    boundary.to_file(boundary_path, driver="GPKG")
    return points_path, boundary_path
