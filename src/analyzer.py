"""
PointPatternAnalyzer: exploratory spatial point pattern analysis.

This module provides the PointPatternAnalyzer class, which runs the full
exploratory workflow for point observations within a study-area boundary:

    - Loading: read points and boundary, reproject to a planar CRS,
      optionally keep a single county
    - Point pattern: combine points with the boundary window, flagging
      points that fall outside
    - Density: Gaussian kernel intensity surface over the window
    - Distance statistics: G-function and L-function compared against
      simulation envelopes of complete spatial randomness (CSR)
    - Single-number summaries: Clark-Evans index, quadrat dispersion test
    - Visualisation: pattern, density and envelope plots plus a web map
"""

import json
import warnings
from tqdm import tqdm
from pathlib import Path
from typing import Dict, Optional, Tuple, Union, Any

import numpy as np
import pandas as pd

import geopandas as gpd

from .config import AnalysisConfig
from .density import DensitySurface, default_sigma, kernel_density
from .envelope import envelope, envelope_summary
from .loading import (
    county_counts,
    filter_county,
    load_boundary,
    load_points,
    to_projected,
)
from .pattern import PointPattern
from .statistics import clark_evans, make_radii, quadrat_counts

# Suppress warnings for cleaner output
warnings.filterwarnings('ignore', category=RuntimeWarning)


# =============================================================================
# CLASS DEFINITION
# =============================================================================


class PointPatternAnalyzer:
    """
    Exploratory analysis of a point pattern within a study-area boundary.

    The analyzer loads both layers lazily, projects them to the configured
    CRS and caches every intermediate result (the point pattern, the density
    surface, the envelopes), so each step runs only once per instance.

    Attributes:
        points_path (Path): Path to the point observations.
        boundary_path (Path): Path to the study-area boundary.
        config (AnalysisConfig): Analysis parameters.

    Example:
        >>> analyzer = PointPatternAnalyzer(
        ...     points_path="observations.geojson",
        ...     boundary_path="study_area.geojson",
        ...     config=AnalysisConfig(crs="EPSG:32617", county="Alachua")
        ... )
        >>> summary_df, report = analyzer.generate_report("results.json")
    """

    def __init__(
        self,
        points_path: Union[str, Path],
        boundary_path: Union[str, Path],
        config: Optional[AnalysisConfig] = None
    ):
        """
        Initialize the PointPatternAnalyzer.

        Args:
            points_path: Path to a point vector dataset (GeoJSON, Shapefile,
                GeoPackage, ...). Must carry a CRS.
            boundary_path: Path to a polygon vector dataset delimiting the
                study area. Must carry a CRS.
            config: Analysis parameters. Defaults to AnalysisConfig().

        Raises:
            FileNotFoundError: If either file does not exist.
        """
        self.points_path = Path(points_path)
        self.boundary_path = Path(boundary_path)
        self.config = config if config is not None else AnalysisConfig()

        for path, name in [
            (self.points_path, "points"),
            (self.boundary_path, "boundary"),
        ]:
            if not path.exists():
                raise FileNotFoundError(f"{name} file not found: {path}")

        # Cache for loaded data and results
        self._points: Optional[gpd.GeoDataFrame] = None
        self._boundary: Optional[gpd.GeoDataFrame] = None
        self._pattern: Optional[PointPattern] = None
        self._density: Optional[DensitySurface] = None
        self._envelopes: Dict[str, pd.DataFrame] = {}

        print("=" * 60)
        print("PointPatternAnalyzer Initialized")
        print("=" * 60)
        print(f"  Points:     {self.points_path}")
        print(f"  Boundary:   {self.boundary_path}")
        print(f"  CRS:        {self.config.crs}")
        print(f"  County:     {self.config.county or 'All'}")
        print(f"  Seed:       {self.config.seed}")
        print("=" * 60)

    # =========================================================================
    # LOADING
    # =========================================================================

    def load(self) -> Tuple[gpd.GeoDataFrame, gpd.GeoDataFrame]:
        """
        Load, project and filter both layers.

        Returns:
            Tuple[gpd.GeoDataFrame, gpd.GeoDataFrame]: (points, boundary),
            both in the configured CRS.

        Raises:
            ValueError: If a layer has no CRS, the target CRS is geographic,
                or the county filter matches nothing.
        """
        if self._points is not None and self._boundary is not None:
            return self._points, self._boundary

        cfg = self.config
        county_field = cfg.county_field if cfg.county is not None else None

        points = load_points(self.points_path, county_field=county_field)
        boundary = load_boundary(self.boundary_path)

        print(f"[INFO] Projecting layers to {cfg.crs}...")
        points = to_projected(points, cfg.crs)
        boundary = to_projected(boundary, cfg.crs)

        if cfg.county is not None:
            points = filter_county(points, cfg.county_field, cfg.county)

        self._points = points
        self._boundary = boundary
        return points, boundary

    def _marks_field(self) -> Optional[str]:
        points, _ = self.load()
        field = self.config.county_field
        return field if field is not None and field in points.columns else None

    def build_pattern(self) -> PointPattern:
        """
        Combine the projected points with the boundary window.

        Returns:
            PointPattern: Points inside the window; points outside are kept
            in `rejected`.
        """
        if self._pattern is not None:
            return self._pattern

        points, boundary = self.load()
        print("[INFO] Building point pattern...")
        self._pattern = PointPattern.from_geodataframes(
            points, boundary, marks_field=self._marks_field()
        )
        print(f"[INFO] {self._pattern}")
        return self._pattern

    # =========================================================================
    # SUMMARY & DENSITY
    # =========================================================================

    def calculate_summary(self) -> Dict[str, Any]:
        """
        Summarise the point pattern: counts, window area and intensity, plus
        a per-county table when a county field is available.

        Returns:
            Dict[str, Any]: Pattern summary with an optional 'county_counts'
            list of records.
        """
        print("\n[METRIC] Summarising point pattern...")
        pattern = self.build_pattern()
        results = pattern.summary()

        field = self._marks_field()
        if field is not None:
            points, _ = self.load()
            table = county_counts(points, field)
            results['county_counts'] = table.to_dict(orient='records')
            print(table.to_string(index=False))

        print(f"  → Points: {results['n_points']} (rejected: {results['n_rejected']})")
        print(f"  → Window area: {results['window_area']:.4g}")
        print(f"  → Intensity: {results['intensity']:.6g} points per unit area")

        return results

    def calculate_density(self, sigma: Optional[float] = None) -> DensitySurface:
        """
        Estimate the kernel density surface of the pattern.

        Args:
            sigma: Bandwidth in CRS units. Defaults to the configured sigma,
                or one eighth of the shortest window side.

        Returns:
            DensitySurface: Edge-corrected intensity image.
        """
        pattern = self.build_pattern()
        sigma = sigma if sigma is not None else self.config.sigma
        if sigma is None:
            sigma = default_sigma(pattern)
        if self._density is not None and sigma == self._density.sigma:
            return self._density

        print("\n[METRIC] Calculating kernel density surface...")
        self._density = kernel_density(pattern, sigma=sigma, dimyx=self.config.dimyx)

        stats = self._density.summary()
        print(f"  → Bandwidth (sigma): {stats['sigma']:.4g}")
        print(f"  → Intensity range: [{stats['min_intensity']:.4g}, {stats['max_intensity']:.4g}]")
        print(f"  → Integral over window: {stats['integral']:.1f} (n={pattern.n})")

        return self._density

    # =========================================================================
    # DISTANCE STATISTICS
    # =========================================================================

    def _radii(self, radii_range) -> np.ndarray:
        start, stop, num = radii_range
        return make_radii(self.build_pattern(), start=start, stop=stop, num=int(num))

    def _envelope(self, fname: str, radii, nsim: int) -> pd.DataFrame:
        pattern = self.build_pattern()

        table = envelope(
            pattern,
            fname,
            r=radii,
            nsim=nsim,
            nrank=self.config.nrank,
            seed=self.config.seed,
        )
        self._envelopes[fname] = table

        summary = envelope_summary(table)
        print(f"  → Evaluated {len(table)} radii from {table['r'].min():.4g} to {table['r'].max():.4g}")
        print(f"  → Pointwise significance: {table.attrs['alpha']:.4f}")
        print(f"  → Above envelope: {summary['frac_above'] * 100:.1f}% of radii")
        print(f"  → Below envelope: {summary['frac_below'] * 100:.1f}% of radii")
        return table

    def calculate_g_envelope(
        self,
        radii=None,
        nsim: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Compare the nearest-neighbour distance distribution G(r) with CSR.

        G(r) above the envelope means nearest neighbours are closer than
        under CSR (clustering); below means they are further apart
        (regularity).

        Args:
            radii: Radii to evaluate. Defaults to the configured sequence.
            nsim: Number of CSR simulations. Defaults to config.g_nsim.

        Returns:
            pd.DataFrame: Envelope table with columns r, obs, theo, lo, hi,
            mmean, pvalue.
        """
        nsim = nsim if nsim is not None else self.config.g_nsim
        print(f"\n[METRIC] Calculating G-function envelope ({nsim} simulations)...")
        if radii is None:
            radii = self._radii(self.config.g_radii)
        return self._envelope('G', radii, nsim)

    def calculate_l_envelope(
        self,
        radii=None,
        nsim: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Compare the L-function L(r) = sqrt(K(r)/pi) with CSR, where L(r) = r.

        L(r) above the envelope indicates clustering at scale r; below
        indicates dispersion.

        Args:
            radii: Radii to evaluate. Defaults to the configured sequence.
            nsim: Number of CSR simulations. Defaults to config.l_nsim.

        Returns:
            pd.DataFrame: Envelope table with columns r, obs, theo, lo, hi,
            mmean, pvalue.
        """
        nsim = nsim if nsim is not None else self.config.l_nsim
        print(f"\n[METRIC] Calculating L-function envelope ({nsim} simulations)...")
        if radii is None:
            radii = self._radii(self.config.l_radii)
        return self._envelope('L', radii, nsim)

    def calculate_clark_evans(self) -> Dict[str, Any]:
        """
        Calculate the Clark-Evans aggregation index of the pattern.

        Returns:
            Dict[str, Any]: See statistics.clark_evans.
        """
        print("\n[METRIC] Calculating Clark-Evans Aggregation Index...")
        pattern = self.build_pattern()
        if pattern.n < 2:
            print("[WARNING] Need at least 2 points for Clark-Evans")
        results = clark_evans(pattern)

        print(f"  → Clark-Evans R: {results['clark_evans_r']:.4f}")
        print(f"  → Pattern: {results['pattern'].upper()}")
        print(f"  → Z-score: {results['z_score']:.2f} (p={results['p_value']:.4f})")
        return results

    def calculate_quadrat_counts(self, grid_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Run a quadrat count dispersion test on a grid_size x grid_size grid.

        Returns:
            Dict[str, Any]: See statistics.quadrat_counts.
        """
        grid_size = grid_size if grid_size is not None else self.config.quadrat_grid
        print(f"\n[METRIC] Calculating quadrat counts ({grid_size}x{grid_size})...")
        pattern = self.build_pattern()
        results = quadrat_counts(pattern, nx=grid_size)

        print(f"  → VMR: {results['vmr']:.3f}")
        print(f"  → Chi-squared: {results['chi2']:.2f} on {results['df']} df (p={results['p_value']:.4f})")
        print(f"  → Pattern interpretation: {results['pattern'].upper()}")
        return results

    # =========================================================================
    # VISUALISATION
    # =========================================================================

    def make_plots(self, output_dir: Union[str, Path]) -> Dict[str, str]:
        """
        Render the pattern, density and envelope figures and the web map
        into output_dir.

        Returns:
            Dict[str, str]: Mapping of figure name to written file path.
        """
        import matplotlib.pyplot as plt

        from .plotting import interactive_map, plot_density, plot_envelope, plot_pattern

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        pattern = self.build_pattern()
        points, boundary = self.load()
        written: Dict[str, str] = {}

        jobs = [('pattern', lambda ax, p: plot_pattern(pattern, ax=ax, path=p))]
        if self._density is not None:
            jobs.append((
                'density',
                lambda ax, p: plot_density(self._density, pattern, ax=ax, show_points=True, path=p),
            ))
        for fname, table in self._envelopes.items():
            jobs.append((
                f'{fname.lower()}_envelope',
                lambda ax, p, table=table: plot_envelope(table, ax=ax, path=p),
            ))

        for name, draw in tqdm(jobs, desc="Rendering figures", unit="figure"):
            fig, ax = plt.subplots(figsize=(7, 7))
            path = output_dir / f"{name}.png"
            draw(ax, path)
            plt.close(fig)
            written[name] = str(path)

        map_path = output_dir / "map.html"
        interactive_map(points, boundary, county_field=self._marks_field(), path=map_path)
        written['map'] = str(map_path)
        return written

    # =========================================================================
    # REPORT GENERATION
    # =========================================================================

    def generate_report(
        self,
        output_path: Optional[Union[str, Path]] = None,
        make_plots: bool = True
    ) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        """
        Run the full analysis and collect the results.

        Steps that fail are reported and skipped; the remaining steps still
        run.

        Args:
            output_path: Optional path for the JSON report. A summary CSV is
                written next to it.
            make_plots: Render figures and the web map when the config has an
                output_dir.

        Returns:
            Tuple[pd.DataFrame, Dict[str, Any]]:
                - DataFrame with one key measure per analysis step
                - Dictionary with full results (suitable for JSON export)

        Example:
            >>> analyzer = PointPatternAnalyzer("points.geojson", "area.geojson")
            >>> df, report = analyzer.generate_report(output_path="results.json")
            >>> print(report['metrics']['clark_evans']['clark_evans_r'])
        """
        print("\n" + "=" * 60)
        print("GENERATING POINT PATTERN REPORT")
        print("=" * 60)

        report: Dict[str, Any] = {
            'metadata': {
                'points_path': str(self.points_path),
                'boundary_path': str(self.boundary_path),
                'config': self.config.to_dict(),
            },
            'metrics': {},
            'computed_steps': [],
            'skipped_steps': [],
        }

        summary_rows = []

        def density_step():
            return self.calculate_density().summary()

        def g_step():
            table = self.calculate_g_envelope()
            return {'summary': envelope_summary(table), 'table': table.to_dict(orient='list'),
                    'nsim': table.attrs['nsim'], 'alpha': table.attrs['alpha']}

        def l_step():
            table = self.calculate_l_envelope()
            return {'summary': envelope_summary(table), 'table': table.to_dict(orient='list'),
                    'nsim': table.attrs['nsim'], 'alpha': table.attrs['alpha']}

        # (name, method, key measure)
        steps_config = [
            ('pattern', self.calculate_summary, 'intensity'),
            ('density', density_step, 'max_intensity'),
            ('g_envelope', g_step, 'frac_above'),
            ('l_envelope', l_step, 'frac_above'),
            ('clark_evans', self.calculate_clark_evans, 'clark_evans_r'),
            ('quadrat_counts', self.calculate_quadrat_counts, 'vmr'),
        ]

        print(f"\nRunning {len(steps_config)} analysis steps...\n")

        for name, method, key in tqdm(steps_config, desc="Analysis steps", unit="step"):
            try:
                result = method()
                report['metrics'][name] = result
                report['computed_steps'].append(name)

                source = result.get('summary', result)
                value = source.get(key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    summary_rows.append({
                        'step': name,
                        'key_measure': key,
                        'value': value
                    })

            except Exception as e:
                print(f"[ERROR] {name}: {e}")
                report['skipped_steps'].append({
                    'name': name,
                    'reason': str(e)
                })

        summary_df = pd.DataFrame(summary_rows, columns=['step', 'key_measure', 'value'])

        if self.config.output_dir is not None:
            output_dir = Path(self.config.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            report['outputs'] = self._write_outputs(output_dir, make_plots)

        print("\n" + "=" * 60)
        print("REPORT SUMMARY")
        print("=" * 60)
        print(f"Computed: {len(report['computed_steps'])} steps")
        print(f"Skipped: {len(report['skipped_steps'])} steps")
        print("\nKey Results:")
        print("-" * 40)
        for _, row in summary_df.iterrows():
            print(f"  {row['step']:20s} {row['key_measure']:20s} = {row['value']:.4f}")
        print("=" * 60)

        if output_path is not None:
            output_path = Path(output_path)
            print(f"\nSaving report to: {output_path}")

            with open(output_path, 'w') as f:
                json.dump(_to_builtin(report), f, indent=2)
            print("Report saved successfully!")

            csv_path = output_path.with_suffix('.csv')
            summary_df.to_csv(csv_path, index=False)
            print(f"Summary CSV saved to: {csv_path}")

        return summary_df, report

    def _write_outputs(self, output_dir: Path, make_plots: bool) -> Dict[str, str]:
        outputs: Dict[str, str] = {}

        for fname, table in self._envelopes.items():
            path = output_dir / f"{fname.lower()}_envelope.csv"
            table.to_csv(path, index=False)
            outputs[f'{fname.lower()}_envelope_csv'] = str(path)

        if self._density is not None:
            path = self._density.to_geotiff(output_dir / "density.tif")
            outputs['density_tif'] = str(path)

        if make_plots:
            try:
                outputs.update(self.make_plots(output_dir))
            except Exception as e:
                print(f"[ERROR] plots: {e}")

        return outputs


def _to_builtin(obj):
    """Convert numpy types so the report can be serialised to JSON."""
    if isinstance(obj, np.ndarray):
        return [_to_builtin(v) for v in obj.tolist()]
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        obj = float(obj)
    if isinstance(obj, float):
        return None if not np.isfinite(obj) else obj
    elif isinstance(obj, dict):
        return {str(k): _to_builtin(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_to_builtin(i) for i in obj]
    return obj


# =============================================================================
# MODULE-LEVEL CONVENIENCE FUNCTION
# =============================================================================

def analyze(
    points_path: Union[str, Path],
    boundary_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    **config
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Convenience function to run the full point pattern analysis.

    Args:
        points_path: Path to the point observations.
        boundary_path: Path to the study-area boundary.
        output_path: Path to save the JSON report (optional).
        **config: AnalysisConfig fields, e.g. crs="EPSG:32617", g_nsim=99.

    Returns:
        Tuple[pd.DataFrame, Dict[str, Any]]: Summary DataFrame and full report dict.

    Example:
        >>> from pointpattern import analyze
        >>> df, report = analyze(
        ...     "observations.geojson",
        ...     "county.geojson",
        ...     output_path="analysis.json",
        ...     crs="EPSG:32617",
        ...     sigma=2000,
        ... )
    """
    analyzer = PointPatternAnalyzer(
        points_path=points_path,
        boundary_path=boundary_path,
        config=AnalysisConfig(**config),
    )

    return analyzer.generate_report(output_path=output_path)
