"""
Pointwise simulation envelopes of summary functions under CSR.

The observed pattern's summary function is compared with the same function
evaluated on `nsim` patterns of complete spatial randomness simulated in the
same window with the same number of points. At each radius the envelope runs
from the nrank-th smallest to the nrank-th largest simulated value, which is
a pointwise Monte Carlo test of significance level 2 * nrank / (nsim + 1).

For 'G', 'K' and 'L' the observed curve, the simulations and the pointwise
p-values come from the pointpats test functions (`g_test`, `k_test`,
`l_test`) run with `keep_simulations=True`.
"""

import warnings
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from .pattern import PointPattern, simulate_csr
from .statistics import TESTS, check_radii, theoretical


def pointwise_envelope(simulations: np.ndarray, nrank: int = 1) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Rank simulated curves at each radius.

    Simulations that are not finite at a radius (e.g. a G histogram with no
    nearest-neighbour distance inside the radius range) are left out of the
    ranking at that radius.

    Args:
        simulations: (nsim, n_radii) simulated values.
        nrank: Rank of the bounds (1 = min/max).

    Returns:
        Tuple[np.ndarray, np.ndarray, np.ndarray]: (lo, hi, mmean). NaN at
        radii with fewer than 2 * nrank - 1 finite simulations.
    """
    sims = np.asarray(simulations, dtype=float)
    sims = np.where(np.isfinite(sims), sims, np.nan)

    # NaN sorts last, so the finite values of each column come first
    ordered = np.sort(sims, axis=0)
    n_finite = np.sum(np.isfinite(sims), axis=0)
    ok = n_finite >= 2 * nrank - 1
    cols = np.flatnonzero(ok)

    lo = np.full(sims.shape[1], np.nan)
    hi = np.full(sims.shape[1], np.nan)
    lo[cols] = ordered[nrank - 1, cols]
    hi[cols] = ordered[n_finite[cols] - nrank, cols]

    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        mmean = np.nanmean(sims, axis=0)
    mmean[~ok] = np.nan
    return lo, hi, mmean


def _pvalues(obs: np.ndarray, sims: np.ndarray) -> np.ndarray:
    """Two-sided pointwise Monte Carlo p-values, as pointpats reports them."""
    with np.errstate(invalid='ignore'):
        p = (1.0 + np.sum(sims >= obs[np.newaxis, :], axis=0)) / (len(sims) + 1.0)
    return np.minimum(p, 1.0 - p)


def envelope(
    pattern: PointPattern,
    fun: Union[str, Callable] = 'G',
    r=None,
    nsim: int = 99,
    nrank: int = 1,
    seed: Optional[int] = None,
    progress: bool = True
) -> pd.DataFrame:
    """
    Compute a CSR simulation envelope of a summary function.

    Args:
        pattern: Observed point pattern.
        fun: 'G', 'K', 'L' or a callable `fun(pattern, r)` returning one
            value per radius.
        r: Increasing radii. Required.
        nsim: Number of CSR simulations.
        nrank: Rank of the envelope bounds (1 = min/max).
        seed: Seed for numpy's global random state, which pointpats draws
            its simulations from.
        progress: Show a tqdm progress bar for callable functions.

    Returns:
        pd.DataFrame: Columns 'r', 'obs', 'theo', 'lo', 'hi', 'mmean' and
        'pvalue'. `attrs` holds 'fname', 'nsim', 'nrank' and 'alpha'.
        'theo' is NaN for custom callables.

    Raises:
        ValueError: If r is missing, nsim < 1, nrank is out of range, the
            function name is unknown or the pattern has fewer than 2 points.
        TypeError: If fun is neither a string nor a callable.
    """
    if r is None:
        raise ValueError("Radii must be provided")
    r = check_radii(r)
    if nsim < 1:
        raise ValueError("nsim must be at least 1")
    if nrank < 1 or (nrank > 1 and nrank > nsim // 2):
        raise ValueError(f"nrank must be between 1 and {max(1, nsim // 2)}")

    if isinstance(fun, str):
        fname = fun.upper()
        if fname not in TESTS:
            raise ValueError(f"Unknown summary function '{fun}'. Use 'G', 'K' or 'L'.")
    elif callable(fun):
        fname = getattr(fun, '__name__', 'custom')
    else:
        raise TypeError(f"fun must be a string or callable, got {type(fun).__name__}")

    if pattern.n < 2:
        raise ValueError(f"Need at least 2 points for the {fname}-function")

    if seed is not None:
        np.random.seed(seed)

    if isinstance(fun, str):
        result = TESTS[fname](
            pattern.points,
            support=r,
            hull=pattern.window.geometry,
            keep_simulations=True,
            n_simulations=nsim,
        )
        obs = np.asarray(result.statistic, dtype=float)
        sims = np.asarray(result.simulations, dtype=float).reshape(nsim, len(r))
        pvalue = np.asarray(result.pvalue, dtype=float)
        theo = theoretical(pattern, fname, r)
    else:
        obs = np.asarray(fun(pattern, r), dtype=float)
        simulations = simulate_csr(pattern.window, n=pattern.n, nsim=nsim)
        sims = np.empty((nsim, len(r)))
        for i, sim in enumerate(tqdm(
            simulations, desc=f"Simulating {fname} envelope", unit="sim", disable=not progress
        )):
            sims[i] = fun(sim, r)
        pvalue = _pvalues(obs, sims)
        theo = np.full(len(r), np.nan)

    lo, hi, mmean = pointwise_envelope(sims, nrank)

    table = pd.DataFrame({
        'r': r,
        'obs': obs,
        'theo': theo,
        'lo': lo,
        'hi': hi,
        'mmean': mmean,
        'pvalue': pvalue,
    })
    table.attrs.update({
        'fname': fname,
        'nsim': int(nsim),
        'nrank': int(nrank),
        'alpha': 2.0 * nrank / (nsim + 1),
    })
    return table


def envelope_summary(table: pd.DataFrame) -> Dict[str, float]:
    """
    Describe where the observed curve sits relative to the envelope.

    Returns:
        Dict[str, float]: 'frac_above' (obs > hi, clustering for G/K/L),
        'frac_below' (obs < lo, regularity), 'frac_inside', 'max_excess'
        (largest obs - hi), 'max_excess_r' and 'max_deficit_r'.
    """
    valid = table.dropna(subset=['obs', 'lo', 'hi'])
    n = len(valid)
    if n == 0:
        return {
            'frac_above': 0.0,
            'frac_below': 0.0,
            'frac_inside': 0.0,
            'max_excess': 0.0,
            'max_excess_r': float('nan'),
            'max_deficit_r': float('nan'),
        }

    above = valid['obs'] > valid['hi']
    below = valid['obs'] < valid['lo']
    excess = valid['obs'] - valid['hi']
    deficit = valid['lo'] - valid['obs']

    return {
        'frac_above': float(above.mean()),
        'frac_below': float(below.mean()),
        'frac_inside': float((~above & ~below).mean()),
        'max_excess': float(excess.max()),
        'max_excess_r': float(valid['r'].iloc[int(np.argmax(excess.to_numpy()))]),
        'max_deficit_r': float(valid['r'].iloc[int(np.argmax(deficit.to_numpy()))]),
    }
