"""
Static (matplotlib) and interactive (folium) views of a point pattern
analysis: the pattern in its window, the density surface, the simulation
envelopes and a web map of the observations.
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

import geopandas as gpd
import folium
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from .density import DensitySurface
from .pattern import PointPattern, Window


COUNTY_PALETTE = [
    "#4c78a8", "#e45756", "#72b7b2", "#f58518", "#9c8ade",
    "#54a24b", "#eeca3b", "#b279a2", "#ff9da6", "#9d755d",
]


def _get_axes(ax: Optional[Axes], figsize=(7, 7)) -> Axes:
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def _save(fig: Figure, path: Optional[Union[str, Path]]) -> None:
    if path is not None:
        fig.savefig(path, dpi=150, bbox_inches="tight")
        print(f"[INFO] Figure saved to: {path}")


def plot_window(window: Window, ax: Optional[Axes] = None, **kwargs) -> Axes:
    """Draw the outline of a window."""
    ax = _get_axes(ax)
    style = {"color": "black", "linewidth": 1.2}
    style.update(kwargs)
    gpd.GeoSeries([window.geometry]).boundary.plot(ax=ax, **style)
    return ax


def plot_pattern(
    pattern: PointPattern,
    ax: Optional[Axes] = None,
    title: Optional[str] = None,
    path: Optional[Union[str, Path]] = None
) -> Axes:
    """
    Plot the points inside their window. Rejected points (outside the
    window) are drawn as red crosses.
    """
    ax = _get_axes(ax)
    plot_window(pattern.window, ax=ax)

    if pattern.marks is not None:
        labels = pd.Series(pattern.marks).astype(str)
        for k, (label, idx) in enumerate(labels.groupby(labels).groups.items()):
            pts = pattern.points[np.asarray(idx)]
            ax.scatter(pts[:, 0], pts[:, 1], s=8,
                       color=COUNTY_PALETTE[k % len(COUNTY_PALETTE)], label=label)
        ax.legend(loc="best", fontsize=8, frameon=False)
    else:
        ax.scatter(pattern.points[:, 0], pattern.points[:, 1], s=8, color="black")

    if len(pattern.rejected):
        ax.scatter(pattern.rejected[:, 0], pattern.rejected[:, 1], s=20,
                   marker="x", color="red", label="rejected")

    ax.set_aspect("equal")
    ax.set_title(title or f"Point pattern (n={pattern.n})")
    _save(ax.figure, path)
    return ax


def plot_density(
    surface: DensitySurface,
    pattern: Optional[PointPattern] = None,
    ax: Optional[Axes] = None,
    show_points: bool = False,
    cmap: str = "viridis",
    title: Optional[str] = None,
    path: Optional[Union[str, Path]] = None
) -> Axes:
    """Plot a density surface with a colorbar and optional window/points."""
    ax = _get_axes(ax)
    im = ax.imshow(
        np.ma.masked_invalid(surface.values),
        extent=surface.extent,
        origin="upper",
        cmap=cmap,
    )
    ax.figure.colorbar(im, ax=ax, shrink=0.7, label="Intensity (points per unit area)")

    if pattern is not None:
        plot_window(pattern.window, ax=ax, color="white", linewidth=1.0)
        if show_points:
            ax.scatter(pattern.points[:, 0], pattern.points[:, 1],
                       s=3, color="white", alpha=0.6)

    ax.set_aspect("equal")
    ax.set_title(title or f"Kernel density (sigma={surface.sigma:.4g})")
    _save(ax.figure, path)
    return ax


def plot_envelope(
    table: pd.DataFrame,
    ax: Optional[Axes] = None,
    title: Optional[str] = None,
    path: Optional[Union[str, Path]] = None
) -> Axes:
    """
    Plot an envelope table: grey band between lo and hi, observed curve in
    solid black, CSR curve in dashed red.
    """
    ax = _get_axes(ax, figsize=(7, 5))
    fname = table.attrs.get("fname", "F")
    nsim = table.attrs.get("nsim")

    ax.fill_between(table["r"], table["lo"], table["hi"],
                    color="lightgrey", label=f"CSR envelope ({nsim} sims)")
    ax.plot(table["r"], table["obs"], color="black", linewidth=1.5,
            label=f"{fname}obs(r)")
    if table["theo"].notna().any():
        ax.plot(table["r"], table["theo"], color="red", linestyle="--",
                linewidth=1.2, label=f"{fname}theo(r)")

    ax.set_xlabel("r")
    ax.set_ylabel(f"{fname}(r)")
    ax.set_title(title or f"{fname}-function with CSR envelope")
    ax.legend(loc="best", frameon=False)
    _save(ax.figure, path)
    return ax


def interactive_map(
    points: gpd.GeoDataFrame,
    boundary: gpd.GeoDataFrame,
    county_field: Optional[str] = None,
    path: Optional[Union[str, Path]] = None,
    tiles: str = "CartoDB Positron"
) -> folium.Map:
    """
    Build a folium web map of the boundary and the observations.

    Observations are grouped into one toggleable layer per county when a
    county field is given.
    """
    boundary_wgs = boundary.to_crs(4326)
    points_wgs = points.to_crs(4326)

    center = boundary_wgs.geometry.union_all().centroid
    m = folium.Map(location=[center.y, center.x], tiles=tiles, zoom_start=9)

    folium.GeoJson(
        boundary_wgs[["geometry"]],
        name="study area",
        style_function=lambda feat: {"color": "#333333", "weight": 2, "fillOpacity": 0.05},
    ).add_to(m)

    if county_field is not None and county_field in points_wgs.columns:
        groups = points_wgs.groupby(points_wgs[county_field].fillna("unknown").astype(str))
    else:
        groups = [("observations", points_wgs)]

    for k, (label, dfc) in enumerate(groups):
        layer = folium.FeatureGroup(name=str(label), show=True)
        color = COUNTY_PALETTE[k % len(COUNTY_PALETTE)]
        for geom in dfc.geometry:
            folium.CircleMarker(
                location=[geom.y, geom.x], radius=3, color=color,
                fill=True, fill_opacity=0.8, tooltip=str(label),
            ).add_to(layer)
        layer.add_to(m)

    folium.LayerControl(collapsed=False).add_to(m)

    if path is not None:
        m.save(str(path))
        print(f"[INFO] Interactive map saved to: {path}")
    return m
