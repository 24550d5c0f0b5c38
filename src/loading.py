"""
Loading and projecting the observation and boundary layers.

Both layers are read with geopandas, so any vector format GDAL/pyogrio can
open (GeoJSON, Shapefile, GeoPackage, ...) is accepted. Distance statistics
need planar units, so everything is reprojected to a projected CRS before a
point pattern is built.
"""

from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
import pandas as pd
from pyproj import CRS


def load_points(
    path: Union[str, Path],
    county_field: Optional[str] = None
) -> gpd.GeoDataFrame:
    """
    Read point observations from a vector file.

    MultiPoint rows are exploded so every row is a single point. Rows with
    empty or missing geometry are dropped with a warning.

    Args:
        path: Path to the vector dataset.
        county_field: Attribute that must be present on the layer (optional).

    Returns:
        gpd.GeoDataFrame: One row per observation.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the layer holds non-point geometries or lacks the
            requested county field.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"points file not found: {path}")

    print(f"[INFO] Loading points from {path.name}...")
    gdf = gpd.read_file(path)

    missing = gdf.geometry.isna() | gdf.geometry.is_empty
    if missing.any():
        print(f"[WARNING] Dropping {int(missing.sum())} rows with empty geometry")
        gdf = gdf.loc[~missing]

    geom_types = set(gdf.geom_type.unique())
    if 'MultiPoint' in geom_types:
        gdf = gdf.explode(index_parts=False)
        geom_types = set(gdf.geom_type.unique())
    if geom_types - {'Point'}:
        raise ValueError(
            f"Expected point geometries, found: {', '.join(sorted(geom_types))}"
        )

    if county_field is not None and county_field not in gdf.columns:
        raise ValueError(
            f"County field '{county_field}' not found. "
            f"Available fields: {', '.join(c for c in gdf.columns if c != 'geometry')}"
        )

    gdf = gdf.reset_index(drop=True)
    print(f"[INFO] Loaded {len(gdf)} points")
    return gdf


def load_boundary(path: Union[str, Path]) -> gpd.GeoDataFrame:
    """
    Read the study-area boundary and dissolve it into a single polygon row.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the layer is empty or holds non-polygon geometries.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"boundary file not found: {path}")

    print(f"[INFO] Loading boundary from {path.name}...")
    gdf = gpd.read_file(path)
    gdf = gdf.loc[~(gdf.geometry.isna() | gdf.geometry.is_empty)]

    if len(gdf) == 0:
        raise ValueError("Boundary layer contains no geometries")

    geom_types = set(gdf.geom_type.unique())
    if geom_types - {'Polygon', 'MultiPolygon'}:
        raise ValueError(
            f"Expected polygon geometries, found: {', '.join(sorted(geom_types))}"
        )

    dissolved = gpd.GeoDataFrame(
        geometry=[gdf.geometry.union_all()], crs=gdf.crs
    )
    print(f"[INFO] Boundary loaded: {len(gdf)} polygon(s) dissolved")
    return dissolved


def to_projected(gdf: gpd.GeoDataFrame, crs: Union[str, CRS]) -> gpd.GeoDataFrame:
    """
    Reproject a layer to a projected CRS.

    Args:
        gdf: Layer to reproject. Must carry a CRS.
        crs: Target CRS (anything pyproj understands).

    Raises:
        ValueError: If the layer has no CRS or the target CRS is geographic.
    """
    target = CRS.from_user_input(crs)
    if not target.is_projected:
        raise ValueError(
            f"Target CRS {target.to_string()} is not projected; "
            "distance statistics need planar units"
        )
    if gdf.crs is None:
        raise ValueError("Layer has no CRS; cannot reproject")

    if CRS.from_user_input(gdf.crs) == target:
        return gdf
    return gdf.to_crs(target)


def check_same_crs(a: gpd.GeoDataFrame, b: gpd.GeoDataFrame) -> None:
    """Raise ValueError unless both layers are in the same CRS."""
    if a.crs is None or b.crs is None:
        raise ValueError("Both layers need a CRS before they can be combined")
    if CRS.from_user_input(a.crs) != CRS.from_user_input(b.crs):
        raise ValueError(
            f"CRS mismatch: {CRS.from_user_input(a.crs).to_string()} vs "
            f"{CRS.from_user_input(b.crs).to_string()}"
        )


def _normalise(values: pd.Series) -> pd.Series:
    return values.astype(str).str.strip().str.casefold()


def filter_county(
    points: gpd.GeoDataFrame,
    field: str,
    value: str
) -> gpd.GeoDataFrame:
    """
    Keep the observations attributed to one county.

    Matching ignores case and surrounding whitespace.

    Raises:
        ValueError: If the field is missing or no observation matches.
    """
    if field not in points.columns:
        raise ValueError(f"County field '{field}' not found")

    mask = _normalise(points[field]) == str(value).strip().casefold()
    selected = points.loc[mask].reset_index(drop=True)

    if len(selected) == 0:
        available = sorted(points[field].dropna().astype(str).unique())
        raise ValueError(
            f"No observations for county '{value}'. "
            f"Available: {', '.join(available[:10])}"
        )

    print(f"[INFO] County filter '{value}': {len(selected)} of {len(points)} points kept")
    return selected


def county_counts(points: gpd.GeoDataFrame, field: str) -> pd.DataFrame:
    """
    Tabulate observations per county.

    Returns:
        pd.DataFrame: Columns 'county', 'count' and 'share', sorted by count.
    """
    if field not in points.columns:
        raise ValueError(f"County field '{field}' not found")

    counts = (
        points[field]
        .fillna('unknown')
        .astype(str)
        .value_counts()
        .rename_axis('county')
        .reset_index(name='count')
    )
    total = counts['count'].sum()
    counts['share'] = counts['count'] / total if total > 0 else 0.0
    return counts
