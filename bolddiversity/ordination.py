"""
Non-metric Multidimensional Scaling of Sites

Places sites in two dimensions so that the rank order of their ordination
distances follows the rank order of their community dissimilarities.

Workflow:
1. Square-root transform of counts, then Wisconsin double standardization
   (divide each column by its maximum, then each row by its total). This
   damps dominant BINs and unequal sampling effort between sites.
2. Bray-Curtis dissimilarity between every pair of sites:
       d(a, b) = sum |x_a - x_b| / sum (x_a + x_b)
3. NMDS by SMACOF majorization. Each iteration fits disparities to the
   current ordination distances by isotonic regression on the dissimilarity
   order, measures Kruskal's stress-1, and applies the Guttman transform.
   Several random starts are run and the lowest-stress configuration is kept,
   centred and rotated to its principal axes.

A final stress above ``stress_tolerance`` is reported as non-convergence on
the result (``converged=False``) together with the best configuration found;
it is logged as a warning and never raised. Fewer than three usable sites
give an undefined result with NaN coordinates.

Example Usage:
    >>> from bolddiversity.ordination import ordinate
    >>> result = ordinate(matrices['country'])
    >>> print(result.stress, result.converged)
    >>> result.to_frame().head()
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging

import numpy as np
import pandas as pd
from scipy.optimize import isotonic_regression
from scipy.spatial.distance import pdist, squareform

from .community import CommunityMatrix
from .config import OrdinationConfig

logger = logging.getLogger(__name__)


class OrdinationError(Exception):
    """Raised when a dissimilarity matrix cannot be ordinated."""
    pass


@dataclass(frozen=True)
class OrdinationResult:
    """
    NMDS configuration of one grouping.

    Attributes
    ----------
    grouping : str
        Matrix grouping ("country" or "zone")
    coordinates : pd.DataFrame
        One row per site (index ``site_id``), columns NMDS1..NMDSk
    stress : float
        Kruskal stress-1 of the best configuration (NaN if undefined)
    converged : bool
        True when stress <= the configured tolerance
    n_iter : int
        SMACOF iterations used by the best start
    n_init : int
        Random starts run
    status : str
        Human-readable outcome
    """
    grouping: str
    coordinates: pd.DataFrame
    stress: float
    converged: bool
    n_iter: int
    n_init: int
    status: str

    def to_frame(self) -> pd.DataFrame:
        return self.coordinates.reset_index()


# ============================================================================
# Transformation and Dissimilarity
# ============================================================================

def wisconsin_sqrt(counts: np.ndarray) -> np.ndarray:
    """
    Square-root transform followed by Wisconsin double standardization.

    All-zero columns and rows stay zero.
    """
    x = np.sqrt(np.asarray(counts, dtype=float))

    col_max = x.max(axis=0) if x.size else np.zeros(x.shape[1])
    col_max[col_max == 0] = 1.0
    x = x / col_max

    row_sum = x.sum(axis=1, keepdims=True)
    row_sum[row_sum == 0] = 1.0
    return x / row_sum


def bray_curtis(x: np.ndarray) -> np.ndarray:
    """Square Bray-Curtis dissimilarity matrix of the rows of ``x``."""
    x = np.asarray(x, dtype=float)
    if x.shape[0] < 2:
        return np.zeros((x.shape[0], x.shape[0]))
    return squareform(pdist(x, metric='braycurtis'))


# ============================================================================
# NMDS
# ============================================================================

def _stress(distances: np.ndarray, order: np.ndarray) -> Tuple[float, np.ndarray]:
    """Kruskal stress-1 and the isotonic disparities of condensed distances."""
    disparities = np.empty_like(distances)
    disparities[order] = isotonic_regression(distances[order]).x

    denominator = np.sum(distances ** 2)
    if denominator == 0:
        return 0.0, disparities
    return float(np.sqrt(np.sum((distances - disparities) ** 2) / denominator)), disparities


def _guttman_transform(x: np.ndarray, distances: np.ndarray, disparities: np.ndarray) -> np.ndarray:
    n = x.shape[0]

    # scale disparities to a fixed total so the configuration cannot shrink to a point
    scale = np.sqrt((n * (n - 1) / 2) / np.sum(disparities ** 2))
    target = squareform(disparities * scale)
    current = squareform(distances)

    ratio = np.zeros_like(current)
    np.divide(target, current, out=ratio, where=current > 0)

    b = -ratio
    b[np.arange(n), np.arange(n)] = ratio.sum(axis=1)
    return b @ x / n


def _smacof_single(
    condensed: np.ndarray,
    n_sites: int,
    n_components: int,
    max_iter: int,
    eps: float,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, float, int]:
    """One SMACOF run from a random start."""
    order = np.argsort(condensed, kind='mergesort')

    x = rng.uniform(size=(n_sites, n_components))
    x -= x.mean(axis=0)

    previous = None
    n_iter = 0
    for n_iter in range(1, max_iter + 1):
        distances = pdist(x)
        stress, disparities = _stress(distances, order)

        if previous is not None and previous - stress < eps:
            break
        previous = stress

        if np.sum(disparities ** 2) == 0:
            break
        x = _guttman_transform(x, distances, disparities)

    stress, _ = _stress(pdist(x), order)
    return x, stress, n_iter


def _principal_axes(x: np.ndarray) -> np.ndarray:
    """Centre a configuration and rotate it onto its principal axes."""
    x = x - x.mean(axis=0)
    _, _, vt = np.linalg.svd(x, full_matrices=False)
    rotated = x @ vt.T

    # fix the arbitrary sign of each axis for reproducible output
    signs = np.sign(rotated[np.argmax(np.abs(rotated), axis=0), np.arange(rotated.shape[1])])
    signs[signs == 0] = 1.0
    return rotated * signs


def nmds(
    dissimilarities: np.ndarray,
    n_components: int = 2,
    n_init: int = 20,
    max_iter: int = 300,
    eps: float = 1e-6,
    seed: int = 42,
) -> Tuple[np.ndarray, float, int]:
    """
    Non-metric MDS of a square dissimilarity matrix.

    Parameters
    ----------
    dissimilarities : np.ndarray
        Symmetric, non-negative (n, n) matrix with a zero diagonal, n >= 3
    n_components : int
        Output dimensions
    n_init : int
        Random starts; the lowest-stress result is returned
    max_iter : int
        Iteration cap per start
    eps : float
        Stop a start when stress improves by less than this
    seed : int
        Seed of the generator drawing all starting configurations

    Returns
    -------
    Tuple[np.ndarray, float, int]
        (coordinates (n, n_components), stress-1, iterations of best start)

    Raises
    ------
    OrdinationError
        If the matrix is not square, symmetric, finite and non-negative, or
        has fewer than 3 rows
    """
    d = np.asarray(dissimilarities, dtype=float)

    if d.ndim != 2 or d.shape[0] != d.shape[1]:
        raise OrdinationError(f"dissimilarities must be a square matrix, got shape {d.shape}")
    if d.shape[0] < 3:
        raise OrdinationError("NMDS needs at least 3 sites")
    if not np.all(np.isfinite(d)) or (d < 0).any():
        raise OrdinationError("dissimilarities must be finite and non-negative")
    if not np.allclose(d, d.T):
        raise OrdinationError("dissimilarities must be symmetric")

    condensed = squareform(d, checks=False)
    rng = np.random.default_rng(seed)

    best = None
    for start in range(n_init):
        x, stress, n_iter = _smacof_single(condensed, d.shape[0], n_components, max_iter, eps, rng)
        logger.debug(f"  NMDS start {start + 1}/{n_init}: stress={stress:.4f} after {n_iter} iterations")
        if best is None or stress < best[1]:
            best = (x, stress, n_iter)

    x, stress, n_iter = best
    return _principal_axes(x), stress, n_iter


def ordinate(
    matrix: CommunityMatrix,
    config: Optional[OrdinationConfig] = None,
) -> OrdinationResult:
    """
    NMDS ordination of the sites of a community matrix.

    Parameters
    ----------
    matrix : CommunityMatrix
        Country or zone matrix
    config : Optional[OrdinationConfig]
        Iteration budget, restarts, tolerance and seed

    Returns
    -------
    OrdinationResult
        Coordinates and stress. ``converged`` is False when the stress stays
        above ``config.stress_tolerance``, and the result is undefined (NaN
        coordinates) when fewer than three sites hold specimens.
    """
    config = config or OrdinationConfig()
    columns = [f"NMDS{i + 1}" for i in range(config.n_components)]

    totals = matrix.site_totals()
    empty = [site for site, n in totals.items() if n == 0]
    if empty:
        logger.warning(f"Dropping {len(empty)} {matrix.grouping} sites without specimens from ordination")
        matrix = matrix.subset([s for s in matrix.sites if s not in empty])

    sites = pd.Index(matrix.sites, name='site_id')

    if len(sites) < 3:
        status = f"undefined: NMDS needs at least 3 sites, got {len(sites)}"
        logger.warning(f"{matrix.grouping} ordination {status}")
        return OrdinationResult(
            grouping=matrix.grouping,
            coordinates=pd.DataFrame(np.nan, index=sites, columns=columns),
            stress=float('nan'),
            converged=False,
            n_iter=0,
            n_init=0,
            status=status,
        )

    dissimilarities = bray_curtis(wisconsin_sqrt(matrix.counts))
    coords, stress, n_iter = nmds(
        dissimilarities,
        n_components=config.n_components,
        n_init=config.n_init,
        max_iter=config.max_iter,
        eps=config.eps,
        seed=config.seed,
    )

    converged = stress <= config.stress_tolerance
    if converged:
        status = f"converged: stress {stress:.4f} <= {config.stress_tolerance}"
        logger.info(f"{matrix.grouping} NMDS {status} ({len(sites)} sites)")
    else:
        status = (
            f"not converged: stress {stress:.4f} > {config.stress_tolerance} "
            f"after {config.n_init} starts of up to {config.max_iter} iterations"
        )
        logger.warning(f"{matrix.grouping} NMDS {status}; reporting best configuration")

    return OrdinationResult(
        grouping=matrix.grouping,
        coordinates=pd.DataFrame(coords, index=sites, columns=columns),
        stress=stress,
        converged=bool(converged),
        n_iter=n_iter,
        n_init=config.n_init,
        status=status,
    )
