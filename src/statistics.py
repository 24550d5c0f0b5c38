"""
Distance-based summary statistics for planar point patterns.

    - G-function: distribution of nearest-neighbour distances
    - K-function: Ripley's reduced second moment function
    - L-function: variance-stabilised K, L(r) = sqrt(K(r) / pi)
    - Clark-Evans aggregation index
    - Quadrat counts with a chi-squared dispersion test

The G, K and L estimators are evaluated by pointpats
(`pointpats.distance_statistics`); this module adapts a PointPattern and a
radius sequence to its calls and supplies the CSR reference curves. Under
complete spatial randomness (CSR) with intensity lambda:

    G(r) = 1 - exp(-lambda * pi * r^2)
    K(r) = pi * r^2
    L(r) = r

Note:
    pointpats applies no edge correction. Its G is the histogram of
    nearest-neighbour distances over the radius bins, and its K takes the
    intensity from the bounding box of the points.
"""

from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd
from scipy.stats import chi2, norm
from shapely.geometry import box

from pointpats.distance_statistics import g_test, k_test, l_test

from .pattern import PointPattern


def make_radii(
    pattern: PointPattern,
    start: float = 0.0,
    stop: Optional[float] = None,
    num: int = 50
) -> np.ndarray:
    """
    Build an evenly spaced radius sequence.

    Args:
        pattern: Pattern whose window sets the default range.
        start: First radius.
        stop: Last radius. Defaults to a quarter of the shortest side of the
            window frame (Ripley's rule).
        num: Number of radii.

    Raises:
        ValueError: If the sequence would be empty or decreasing.
    """
    if stop is None:
        stop = 0.25 * min(pattern.window.frame_sides)
    if num < 2:
        raise ValueError("num must be at least 2")
    if start < 0 or stop <= start:
        raise ValueError(f"Invalid radius range [{start}, {stop}]")
    return np.linspace(start, stop, int(num))


def check_radii(r) -> np.ndarray:
    r = np.asarray(r, dtype=float).ravel()
    if r.size < 2:
        raise ValueError("At least two radii are required")
    if np.any(np.diff(r) <= 0):
        raise ValueError("Radii must be increasing")
    if np.any(r < 0):
        raise ValueError("Radii must be non-negative")
    return r


# Summary function name -> pointpats test
TESTS: Dict[str, Callable] = {
    'G': g_test,
    'K': k_test,
    'L': l_test,
}


def observed(pattern: PointPattern, fname: str, r) -> np.ndarray:
    """
    Evaluate a pointpats summary function on the observed pattern only.

    Args:
        pattern: Point pattern.
        fname: 'G', 'K' or 'L'.
        r: Increasing radii.

    Returns:
        np.ndarray: One value per radius, all NaN for fewer than 2 points.
    """
    r = check_radii(r)
    fname = fname.upper()
    if fname not in TESTS:
        raise ValueError(f"Unknown summary function '{fname}'. Use 'G', 'K' or 'L'.")
    if pattern.n < 2:
        return np.full(r.shape, np.nan)

    result = TESTS[fname](
        pattern.points,
        support=r,
        hull=pattern.window.geometry,
        n_simulations=0,
    )
    return np.asarray(result.statistic, dtype=float)


# =============================================================================
# G / K / L FUNCTIONS
# =============================================================================

def g_function(pattern: PointPattern, r) -> np.ndarray:
    """Nearest-neighbour distance distribution G(r)."""
    return observed(pattern, 'G', r)


def k_function(pattern: PointPattern, r) -> np.ndarray:
    """Ripley's K(r)."""
    return observed(pattern, 'K', r)


def l_function(pattern: PointPattern, r) -> np.ndarray:
    """L(r) = sqrt(K(r) / pi)."""
    return observed(pattern, 'L', r)


def g_theoretical(r, intensity: float) -> np.ndarray:
    """G(r) under CSR: 1 - exp(-lambda * pi * r^2)."""
    r = np.asarray(r, dtype=float)
    return 1.0 - np.exp(-intensity * np.pi * r ** 2)


def k_theoretical(r) -> np.ndarray:
    r = np.asarray(r, dtype=float)
    return np.pi * r ** 2


def l_theoretical(r) -> np.ndarray:
    return np.asarray(r, dtype=float).copy()


def theoretical(pattern: PointPattern, fname: str, r) -> np.ndarray:
    """CSR value of the named summary function at r."""
    fname = fname.upper()
    if fname == 'G':
        return g_theoretical(r, pattern.intensity)
    if fname == 'K':
        return k_theoretical(r)
    if fname == 'L':
        return l_theoretical(r)
    raise ValueError(f"Unknown summary function '{fname}'. Use 'G', 'K' or 'L'.")


def function_table(pattern: PointPattern, fname: str, r) -> pd.DataFrame:
    """
    Evaluate a summary function and its CSR value as a table.

    Returns:
        pd.DataFrame: Columns 'r', 'obs' and 'theo'.
    """
    r = check_radii(r)
    theo = theoretical(pattern, fname, r)
    return pd.DataFrame({'r': r, 'obs': observed(pattern, fname, r), 'theo': theo})


# =============================================================================
# SINGLE-NUMBER SUMMARIES
# =============================================================================

def clark_evans(pattern: PointPattern) -> Dict[str, Any]:
    """
    Clark-Evans aggregation index.

    Formula:
        R = mean_observed_nnd / (1 / (2 * sqrt(lambda)))

    R < 1 suggests clustering, R > 1 regularity, R close to 1 randomness.
    No edge correction is applied, so R is biased slightly upward for
    small patterns in small windows.

    Returns:
        Dict[str, Any]: 'clark_evans_r', 'pattern', 'mean_observed_distance',
        'mean_expected_distance', 'intensity', 'z_score' and 'p_value'.
    """
    n = pattern.n
    if n < 2:
        return {
            'clark_evans_r': 1.0,
            'pattern': 'insufficient_data',
            'mean_observed_distance': 0.0,
            'mean_expected_distance': 0.0,
            'intensity': float(pattern.intensity),
            'z_score': 0.0,
            'p_value': 1.0,
        }

    intensity = pattern.intensity
    mean_observed = float(np.mean(pattern.nearest_neighbour_distances()))
    mean_expected = 0.5 / np.sqrt(intensity)
    r_index = mean_observed / mean_expected

    se = 0.26136 / np.sqrt(n * intensity)
    z_score = (mean_observed - mean_expected) / se
    p_value = 2.0 * norm.sf(abs(z_score))

    if r_index < 0.8:
        label = 'clustered'
    elif r_index > 1.2:
        label = 'dispersed'
    else:
        label = 'random'

    return {
        'clark_evans_r': float(r_index),
        'pattern': label,
        'mean_observed_distance': mean_observed,
        'mean_expected_distance': float(mean_expected),
        'intensity': float(intensity),
        'z_score': float(z_score),
        'p_value': float(p_value),
    }


def quadrat_counts(pattern: PointPattern, nx: int = 4, ny: Optional[int] = None) -> Dict[str, Any]:
    """
    Count points in a grid of quadrats clipped to the window.

    Expected counts are proportional to the area of each clipped quadrat, so
    irregular windows are handled. The chi-squared statistic compares the
    observed and expected counts over quadrats that intersect the window.

    Returns:
        Dict[str, Any]: 'counts' (per quadrat, row-major from the south-west
        corner), 'expected', 'vmr', 'chi2', 'df', 'p_value', 'pattern' and
        'grid'.
    """
    if ny is None:
        ny = nx
    if nx < 1 or ny < 1:
        raise ValueError("Quadrat grid must be at least 1x1")

    xmin, ymin, xmax, ymax = pattern.window.bounds
    x_edges = np.linspace(xmin, xmax, nx + 1)
    y_edges = np.linspace(ymin, ymax, ny + 1)

    ix = np.clip(np.searchsorted(x_edges, pattern.points[:, 0], side='right') - 1, 0, nx - 1)
    iy = np.clip(np.searchsorted(y_edges, pattern.points[:, 1], side='right') - 1, 0, ny - 1)
    counts = np.bincount(iy * nx + ix, minlength=nx * ny)

    areas = np.array([
        box(x_edges[c], y_edges[row], x_edges[c + 1], y_edges[row + 1])
        .intersection(pattern.window.geometry).area
        for row in range(ny)
        for c in range(nx)
    ])
    valid = areas > 0
    expected = pattern.n * areas / pattern.area

    obs_valid = counts[valid]
    exp_valid = expected[valid]
    chi2_stat = float(np.sum((obs_valid - exp_valid) ** 2 / exp_valid)) if pattern.n else 0.0
    df = int(valid.sum()) - 1
    p_value = float(chi2.sf(chi2_stat, df)) if df > 0 else 1.0

    mean_count = float(np.mean(obs_valid))
    variance = float(np.var(obs_valid, ddof=1)) if len(obs_valid) > 1 else 0.0
    vmr = variance / mean_count if mean_count > 0 else 0.0

    if mean_count == 0:
        label = 'empty'
    elif vmr < 0.8:
        label = 'uniform'
    elif vmr > 1.2:
        label = 'clustered'
    else:
        label = 'random'

    return {
        'counts': counts.tolist(),
        'expected': expected.tolist(),
        'vmr': float(vmr),
        'chi2': chi2_stat,
        'df': df,
        'p_value': p_value,
        'pattern': label,
        'grid': [int(nx), int(ny)],
    }
