"""
pointpattern - Exploratory spatial point pattern analysis.

This package loads point observations and a study-area boundary, builds a
planar point pattern, estimates a kernel density surface and compares the
observed spacing of points with complete spatial randomness (CSR) through
G-function and L-function simulation envelopes.

Main Classes:
    PointPatternAnalyzer: Runs and caches every step of the analysis
    PointPattern: Points paired with their observation window
    AnalysisConfig: Parameters of an analysis run

Convenience Functions:
    analyze: Quick analysis with automatic report generation

Example:
    >>> from pointpattern import PointPatternAnalyzer, AnalysisConfig, analyze
    >>>
    >>> # Using the class
    >>> analyzer = PointPatternAnalyzer(
    ...     points_path="observations.geojson",
    ...     boundary_path="county.geojson",
    ...     config=AnalysisConfig(crs="EPSG:32617", sigma=2000)
    ... )
    >>> g_table = analyzer.calculate_g_envelope()
    >>> summary_df, report = analyzer.generate_report()
    >>>
    >>> # Using the convenience function
    >>> summary_df, report = analyze(
    ...     "observations.geojson",
    ...     "county.geojson",
    ...     output_path="results.json",
    ...     crs="EPSG:32617"
    ... )
"""

from .analyzer import PointPatternAnalyzer, analyze
from .config import AnalysisConfig
from .density import DensitySurface, kernel_density
from .envelope import envelope, envelope_summary, pointwise_envelope
from .pattern import PointPattern, Window, simulate_csr
from .statistics import (
    clark_evans,
    g_function,
    g_theoretical,
    k_function,
    l_function,
    l_theoretical,
    make_radii,
    quadrat_counts,
)

__version__ = "0.1.0"
__all__ = [
    "PointPatternAnalyzer",
    "analyze",
    "AnalysisConfig",
    "DensitySurface",
    "kernel_density",
    "envelope",
    "envelope_summary",
    "pointwise_envelope",
    "PointPattern",
    "Window",
    "simulate_csr",
    "clark_evans",
    "g_function",
    "g_theoretical",
    "k_function",
    "l_function",
    "l_theoretical",
    "make_radii",
    "quadrat_counts",
]
