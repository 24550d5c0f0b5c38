"""
Point pattern objects: a set of planar points paired with the observation
window they were recorded in, plus CSR simulation inside that window.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import shapely
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

import geopandas as gpd
from rasterio import features
from rasterio.transform import Affine
from scipy.spatial import KDTree

from pointpats.random import poisson

from .loading import check_same_crs


class Window:
    """
    Observation window of a point pattern.

    Wraps a (Multi)Polygon and offers the geometric queries the analysis
    needs: area, frame, containment and rasterisation onto a pixel grid. The
    geometry itself is the hull pointpats simulates CSR patterns in.

    Raises:
        ValueError: If the geometry is not polygonal, is empty, or has no area.
    """

    def __init__(self, geometry: BaseGeometry):
        if geometry is None or geometry.is_empty:
            raise ValueError("Window geometry is empty")

        if not geometry.is_valid:
            geometry = make_valid(geometry)

        # make_valid may return a collection; keep only the areal parts
        if geometry.geom_type == 'GeometryCollection':
            polys = [g for g in geometry.geoms if isinstance(g, (Polygon, MultiPolygon))]
            geometry = shapely.union_all(polys) if polys else Polygon()

        if not isinstance(geometry, (Polygon, MultiPolygon)):
            raise ValueError(
                f"Window must be a Polygon or MultiPolygon, got {geometry.geom_type}"
            )
        if geometry.area <= 0:
            raise ValueError("Window has zero area")

        self.geometry = geometry
        shapely.prepare(self.geometry)

    def __repr__(self) -> str:
        return f"Window(type={self.geometry.geom_type}, area={self.area:.4g})"

    @property
    def area(self) -> float:
        return float(self.geometry.area)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return tuple(float(b) for b in self.geometry.bounds)

    @property
    def frame_sides(self) -> Tuple[float, float]:
        """Width and height of the bounding rectangle."""
        xmin, ymin, xmax, ymax = self.bounds
        return xmax - xmin, ymax - ymin

    def contains(self, xy: np.ndarray) -> np.ndarray:
        """Boolean mask of which (n, 2) coordinates fall inside the window."""
        xy = np.atleast_2d(np.asarray(xy, dtype=float))
        if xy.shape[0] == 0:
            return np.zeros(0, dtype=bool)
        return shapely.intersects_xy(self.geometry, xy[:, 0], xy[:, 1])

    def mask(self, transform: Affine, shape: Tuple[int, int]) -> np.ndarray:
        """
        Rasterise the window onto a pixel grid.

        Args:
            transform: Affine transform of the grid.
            shape: (rows, cols) of the grid.

        Returns:
            np.ndarray: Boolean array, True where the pixel centre is inside.
        """
        burned = features.rasterize(
            [(self.geometry, 1)],
            out_shape=shape,
            transform=transform,
            fill=0,
            dtype='uint8',
        )
        return burned.astype(bool)


@dataclass
class PointPattern:
    """
    A planar point pattern: points observed inside a window.

    Points that fell outside the window when the pattern was built are not
    discarded; they are kept in `rejected` so they can be reported.

    Attributes:
        points (np.ndarray): (n, 2) coordinates inside the window.
        window (Window): Observation window.
        marks (np.ndarray): Optional per-point labels (e.g. county).
        rejected (np.ndarray): (m, 2) coordinates outside the window.
        crs (Any): CRS the coordinates are expressed in.
    """

    points: np.ndarray
    window: Window
    marks: Optional[np.ndarray] = None
    rejected: np.ndarray = field(default_factory=lambda: np.empty((0, 2)))
    crs: Any = None

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 2)
        self.rejected = np.asarray(self.rejected, dtype=float).reshape(-1, 2)
        if self.marks is not None:
            self.marks = np.asarray(self.marks)
            if len(self.marks) != len(self.points):
                raise ValueError("marks must have one entry per point")

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return (
            f"PointPattern(n={self.n}, rejected={len(self.rejected)}, "
            f"area={self.area:.4g}, intensity={self.intensity:.4g})"
        )

    @classmethod
    def from_coordinates(
        cls,
        xy: np.ndarray,
        window: Union[Window, BaseGeometry],
        marks: Optional[np.ndarray] = None,
        crs: Any = None
    ) -> 'PointPattern':
        """
        Build a pattern from raw coordinates, splitting off points outside
        the window.
        """
        if not isinstance(window, Window):
            window = Window(window)

        xy = np.asarray(xy, dtype=float).reshape(-1, 2)
        inside = window.contains(xy)

        kept_marks = None
        if marks is not None:
            marks = np.asarray(marks)
            if len(marks) != len(xy):
                raise ValueError("marks must have one entry per point")
            kept_marks = marks[inside]

        n_out = int((~inside).sum())
        if n_out:
            print(f"[WARNING] {n_out} point(s) lie outside the window and were rejected")

        return cls(
            points=xy[inside],
            window=window,
            marks=kept_marks,
            rejected=xy[~inside],
            crs=crs,
        )

    @classmethod
    def from_geodataframes(
        cls,
        points: gpd.GeoDataFrame,
        boundary: gpd.GeoDataFrame,
        marks_field: Optional[str] = None
    ) -> 'PointPattern':
        """
        Combine a point layer and a boundary layer into a pattern.

        Raises:
            ValueError: If the layers are not in the same CRS or the marks
                field is missing.
        """
        check_same_crs(points, boundary)

        xy = np.column_stack([points.geometry.x.to_numpy(), points.geometry.y.to_numpy()])
        marks = None
        if marks_field is not None:
            if marks_field not in points.columns:
                raise ValueError(f"Marks field '{marks_field}' not found")
            marks = points[marks_field].to_numpy()

        window = Window(boundary.geometry.union_all())
        return cls.from_coordinates(xy, window, marks=marks, crs=points.crs)

    @property
    def n(self) -> int:
        return len(self.points)

    @property
    def area(self) -> float:
        return self.window.area

    @property
    def intensity(self) -> float:
        """Points per unit area, n / |W|."""
        return self.n / self.area

    def nearest_neighbour_distances(self) -> np.ndarray:
        """Distance from each point to its nearest other point."""
        if self.n < 2:
            return np.full(self.n, np.inf)
        tree = KDTree(self.points)
        distances, _ = tree.query(self.points, k=2)
        return distances[:, 1]

    def summary(self) -> Dict[str, Any]:
        return {
            'n_points': int(self.n),
            'n_rejected': int(len(self.rejected)),
            'window_area': float(self.area),
            'intensity': float(self.intensity),
            'bounds': list(self.window.bounds),
        }



def simulate_csr(
    window: Window,
    n: int,
    nsim: int = 1,
    seed: Optional[int] = None
) -> List[PointPattern]:
    """
    Simulate complete spatial randomness inside a window.

    Each pattern holds exactly n independent uniform points, drawn by
    `pointpats.random.poisson` with the window geometry as hull.

    Args:
        window: Window to simulate in.
        n: Number of points per pattern.
        nsim: Number of patterns.
        seed: Seed for numpy's global random state, which pointpats uses.

    Returns:
        List[PointPattern]: The simulated patterns.

    Raises:
        ValueError: If n < 0 or nsim < 1.
    """
    if nsim < 1:
        raise ValueError("nsim must be at least 1")
    if n < 0:
        raise ValueError("n must be non-negative")
    if seed is not None:
        np.random.seed(seed)

    if n == 0:
        return [PointPattern(points=np.empty((0, 2)), window=window) for _ in range(nsim)]

    draws = np.asarray(poisson(window.geometry, size=(int(n), int(nsim))), dtype=float)
    draws = draws.reshape(int(nsim), int(n), 2)
    return [PointPattern(points=xy, window=window) for xy in draws]
