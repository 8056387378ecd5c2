"""
Rarefaction and Species Accumulation Curves

Two related curve families:

1. Rarefaction curves (per site): Hurlbert's closed-form expected richness
   evaluated on a grid of subsample sizes from 1 to the site's specimen count
   N. Curves are non-decreasing and end at the observed richness.

2. Species accumulation curves (per grouping): pooled richness as sites are
   added in random order. Each of P permutations of the site order gives the
   union richness of every prefix 1..k; the curve is the mean and standard
   deviation across permutations.

Accumulation is a Monte Carlo estimator. Each permutation draws from its own
generator spawned from ``numpy.random.SeedSequence(seed)``, so the result
depends only on (seed, P) and not on how trials are split across worker
processes. The closed-form expectation of the same curve (Kindt's exact
estimator) is available as :func:`exact_accumulation`.

Example Usage:
    >>> from bolddiversity.rarefaction import rarefaction_curves, species_accumulation
    >>> curves = rarefaction_curves(matrices['zone'])
    >>> accum = species_accumulation(matrices['country'], permutations=200, seed=1)
    >>> accum.to_frame().head()
"""

from dataclasses import dataclass
from functools import partial
from typing import List, Optional
import logging
import multiprocessing as mp

import numpy as np
import pandas as pd
from scipy.special import gammaln

from .community import CommunityMatrix
from .config import RarefactionConfig
from .diversity import rarefy_curve_values

logger = logging.getLogger(__name__)


# ============================================================================
# Rarefaction Curves
# ============================================================================

@dataclass(frozen=True)
class RarefactionCurve:
    """Expected richness against subsample size for one site."""
    site_id: str
    sample_sizes: np.ndarray
    expected_richness: np.ndarray

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'site_id': self.site_id,
            'sample_size': self.sample_sizes,
            'expected_richness': self.expected_richness,
        })


def curve_sample_sizes(total: int, n_points: int = 50, grid: str = "linear") -> np.ndarray:
    """
    Integer subsample sizes from 1 to ``total`` (both included).

    Parameters
    ----------
    total : int
        Specimen count N of the site
    n_points : int
        Requested number of grid points (fewer are returned for small N)
    grid : str
        "linear" or "geometric" spacing

    Examples
    --------
    >>> curve_sample_sizes(10, n_points=4)
    array([ 1,  4,  7, 10])
    """
    if total < 1:
        return np.array([], dtype=np.int64)
    if grid == "geometric":
        raw = np.geomspace(1, total, n_points)
    elif grid == "linear":
        raw = np.linspace(1, total, n_points)
    else:
        raise ValueError(f"Invalid grid: {grid}")

    sizes = np.unique(np.round(raw).astype(np.int64))
    sizes = np.clip(sizes, 1, total)
    return np.unique(np.concatenate([[1], sizes, [total]]))


def rarefaction_curve(
    site_id: str,
    counts: np.ndarray,
    config: Optional[RarefactionConfig] = None,
) -> RarefactionCurve:
    """Rarefaction curve of one site; empty for a site with no specimens."""
    config = config or RarefactionConfig()
    total = int(np.asarray(counts).sum())
    sizes = curve_sample_sizes(total, config.curve_points, config.grid)

    if sizes.size == 0:
        return RarefactionCurve(site_id, sizes, np.array([], dtype=float))

    expected = rarefy_curve_values(counts, sizes)
    # round-off in the log-gamma ratios must not break monotonicity
    expected = np.maximum.accumulate(expected)

    return RarefactionCurve(site_id, sizes, expected)


def rarefaction_curves(
    matrix: CommunityMatrix,
    config: Optional[RarefactionConfig] = None,
) -> List[RarefactionCurve]:
    """Rarefaction curves for every site of a matrix, in row order."""
    config = config or RarefactionConfig()
    curves = [rarefaction_curve(site, matrix.row(site), config) for site in matrix.sites]
    logger.debug(f"Computed {len(curves)} rarefaction curves for {matrix.grouping} sites")
    return curves


def curves_to_frame(curves: List[RarefactionCurve]) -> pd.DataFrame:
    """Long table (site_id, sample_size, expected_richness) of several curves."""
    if not curves:
        return pd.DataFrame(columns=['site_id', 'sample_size', 'expected_richness'])
    return pd.concat([c.to_frame() for c in curves], ignore_index=True)


# ============================================================================
# Species Accumulation
# ============================================================================

@dataclass(frozen=True)
class AccumulationCurve:
    """
    Pooled richness against number of sites.

    ``sd_richness`` is NaN for the exact estimator, which reports the
    expectation only.
    """
    grouping: str
    sites: np.ndarray
    mean_richness: np.ndarray
    sd_richness: np.ndarray
    method: str = "random"
    permutations: int = 0
    seed: Optional[int] = None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'grouping': self.grouping,
            'sites': self.sites,
            'mean_richness': self.mean_richness,
            'sd_richness': self.sd_richness,
        })


def _accumulate_trial(seed_seq: np.random.SeedSequence, presence: np.ndarray) -> np.ndarray:
    """Pooled richness of each prefix of one random site ordering."""
    rng = np.random.default_rng(seed_seq)
    order = rng.permutation(presence.shape[0])
    pooled = np.logical_or.accumulate(presence[order], axis=0)
    return pooled.sum(axis=1)


def species_accumulation(
    matrix: CommunityMatrix,
    permutations: int = 200,
    seed: int = 42,
    n_threads: int = 1,
) -> AccumulationCurve:
    """
    Random-order species accumulation curve of a grouping.

    Parameters
    ----------
    matrix : CommunityMatrix
        Country or zone matrix (one row per site)
    permutations : int
        Number of random site orderings P (default: 200)
    seed : int
        Root seed; trial t uses the t-th child of SeedSequence(seed)
    n_threads : int
        Worker processes for the trials (default: 1, serial)

    Returns
    -------
    AccumulationCurve
        Mean and sample standard deviation (ddof=1; 0 when P == 1) of pooled
        richness for 1..k sites
    """
    if permutations < 1:
        raise ValueError("permutations must be at least 1")

    presence = np.asarray(matrix.counts) > 0
    n_sites = presence.shape[0]

    if n_sites == 0:
        logger.warning(f"No {matrix.grouping} sites to accumulate")
        empty = np.array([], dtype=float)
        return AccumulationCurve(matrix.grouping, np.array([], dtype=np.int64), empty, empty,
                                 permutations=permutations, seed=seed)

    seeds = np.random.SeedSequence(seed).spawn(permutations)
    worker = partial(_accumulate_trial, presence=presence)

    logger.info(
        f"Accumulating {n_sites} {matrix.grouping} sites over "
        f"{permutations} permutations using {n_threads} threads"
    )

    if n_threads > 1:
        with mp.Pool(processes=n_threads) as pool:
            trials = pool.map(worker, seeds)
    else:
        trials = [worker(s) for s in seeds]

    trials = np.vstack(trials).astype(float)
    mean = trials.mean(axis=0)
    if permutations > 1:
        sd = trials.std(axis=0, ddof=1)
    else:
        sd = np.zeros(n_sites)

    return AccumulationCurve(
        grouping=matrix.grouping,
        sites=np.arange(1, n_sites + 1),
        mean_richness=mean,
        sd_richness=sd,
        method="random",
        permutations=permutations,
        seed=seed,
    )


def exact_accumulation(matrix: CommunityMatrix) -> AccumulationCurve:
    """
    Expected pooled richness for k randomly chosen sites (Kindt's estimator).

    E[S_k] = sum_i [1 - C(K - f_i, k) / C(K, k)], where f_i is the number of
    sites holding unit i and K the number of sites. This is the value the
    random-order mean converges to as the number of permutations grows.
    """
    frequencies = (np.asarray(matrix.counts) > 0).sum(axis=0).astype(float)
    frequencies = frequencies[frequencies > 0]
    n_sites = len(matrix)

    sizes = np.arange(1, n_sites + 1, dtype=float)
    absent = n_sites - frequencies[np.newaxis, :]
    k = sizes[:, np.newaxis]

    feasible = absent >= k
    safe_absent = np.where(feasible, absent, k)
    log_ratio = (
        gammaln(safe_absent + 1) - gammaln(safe_absent - k + 1)
        - gammaln(n_sites + 1) + gammaln(n_sites - k + 1)
    )
    log_ratio = np.where(feasible, log_ratio, -np.inf)
    mean = np.sum(1.0 - np.exp(log_ratio), axis=1)

    return AccumulationCurve(
        grouping=matrix.grouping,
        sites=sizes.astype(np.int64),
        mean_richness=mean,
        sd_richness=np.full(n_sites, np.nan),
        method="exact",
    )
