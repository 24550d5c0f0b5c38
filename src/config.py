"""
AnalysisConfig: every tunable of a point pattern analysis run in one place.

The defaults reproduce the reference exploratory run: Web Mercator projection,
a G-function envelope from 100 CSR simulations and an L-function envelope
from 10.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union


@dataclass
class AnalysisConfig:
    """
    Parameters for a PointPatternAnalyzer run.

    Attributes:
        crs (str): Projection string both layers are reprojected to. Must be a
            projected CRS so distances are planar.
        county_field (str): Attribute holding the county of each observation.
        county (str): If set, only observations from this county are kept.
        sigma (float): Gaussian kernel bandwidth in CRS units. None selects
            one eighth of the shortest side of the window frame.
        dimyx (int): Number of density pixels along each axis.
        g_radii (tuple): (start, stop, num) for the G-function. A stop of None
            means a quarter of the shortest window side.
        l_radii (tuple): (start, stop, num) for the L-function.
        g_nsim (int): CSR simulations for the G envelope.
        l_nsim (int): CSR simulations for the L envelope.
        nrank (int): Envelope rank (1 = min/max of the simulations).
        quadrat_grid (int): Quadrats per axis for the dispersion test.
        seed (int): Seed for the CSR simulations.
        output_dir (str): Directory for plots, tables and the map.
    """

    crs: str = 'EPSG:3857'
    county_field: Optional[str] = 'county'
    county: Optional[str] = None
    sigma: Optional[float] = None
    dimyx: int = 128
    g_radii: Tuple[float, Optional[float], int] = (0.0, None, 50)
    l_radii: Tuple[float, Optional[float], int] = (0.0, None, 50)
    g_nsim: int = 100
    l_nsim: int = 10
    nrank: int = 1
    quadrat_grid: int = 4
    seed: Optional[int] = 42
    output_dir: Optional[str] = None

    def __post_init__(self):
        self.g_radii = tuple(self.g_radii)
        self.l_radii = tuple(self.l_radii)
        self.validate()

    def validate(self) -> None:
        """
        Check parameter ranges.

        Raises:
            ValueError: If any parameter is out of range.
        """
        if self.sigma is not None and self.sigma <= 0:
            raise ValueError("sigma must be positive")
        if self.dimyx < 2:
            raise ValueError("dimyx must be at least 2")
        for name in ('g_nsim', 'l_nsim'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.nrank < 1:
            raise ValueError("nrank must be at least 1")
        if self.nrank > 1 and self.nrank > min(self.g_nsim, self.l_nsim) // 2:
            raise ValueError("nrank must not exceed half the smallest nsim")
        if self.county is not None and not self.county_field:
            raise ValueError("county_field is required when county is set")
        if self.quadrat_grid < 1:
            raise ValueError("quadrat_grid must be at least 1")
        for name in ('g_radii', 'l_radii'):
            radii = getattr(self, name)
            if len(radii) != 3:
                raise ValueError(f"{name} must be (start, stop, num)")
            if int(radii[2]) < 2:
                raise ValueError(f"{name} needs at least 2 radii")

    def to_dict(self) -> Dict[str, Any]:
        """Return the config as a JSON-serialisable dictionary."""
        data = asdict(self)
        data['g_radii'] = list(self.g_radii)
        data['l_radii'] = list(self.l_radii)
        if self.output_dir is not None:
            data['output_dir'] = str(self.output_dir)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'AnalysisConfig':
        """
        Load a config from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file holds unknown keys or invalid values.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"config file not found: {path}")
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
