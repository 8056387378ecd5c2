"""
Per-Site Diversity Statistics

Computes, for each row of a community matrix (counts n_1..n_k, N = sum n_i):

- richness           number of BINs with n_i > 0
- shannon            -sum p_i ln p_i, p_i = n_i / N (0 when richness <= 1)
- simpson            1 - sum p_i^2, Gini-Simpson form (0 when richness <= 1)
- rarefied richness  Hurlbert's expected BIN count in a subsample of m
                     specimens drawn without replacement:

                         E[S_m] = sum_i [1 - C(N - n_i, m) / C(N, m)]

                     with C(N - n_i, m) = 0 when N - n_i < m.

Undefined statistics are reported as None and named in the summary's
``undefined`` field, never as zero: rarefied richness is undefined for m > N,
and Shannon/Simpson are undefined for a site with no specimens.

Diversity tables only publish sites with more than ``min_specimens``
specimens (500 by default). This is an analysis policy for stable index
estimates, not a numerical requirement; set it to 0 to publish every site.

Example Usage:
    >>> import numpy as np
    >>> from bolddiversity.diversity import shannon, simpson
    >>> counts = np.array([2, 2, 2, 2, 2])
    >>> round(shannon(counts), 3), round(simpson(counts), 3)
    (1.609, 0.8)
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from scipy.special import gammaln

from .community import CommunityMatrix
from .config import DiversityConfig

logger = logging.getLogger(__name__)


TABLE_COLUMNS = [
    'site_id', 'zone', 'specimen_count', 'richness', 'rarefied_richness',
    'shannon', 'simpson', 'rarefaction_depth', 'undefined',
]


@dataclass(frozen=True)
class DiversitySummary:
    """Diversity statistics of one site; None marks an undefined statistic."""
    site_id: str
    specimen_count: int
    richness: int
    rarefied_richness: Optional[float]
    shannon: Optional[float]
    simpson: Optional[float]
    rarefaction_depth: Optional[int] = None
    zone: Optional[str] = None
    undefined: Tuple[str, ...] = ()


# ============================================================================
# Indices
# ============================================================================

def richness(counts: np.ndarray) -> int:
    return int(np.count_nonzero(np.asarray(counts)))


def shannon(counts: np.ndarray) -> Optional[float]:
    """Shannon entropy with natural log; None for an empty site."""
    counts = np.asarray(counts, dtype=float)
    total = counts.sum()
    if total <= 0:
        return None

    present = counts[counts > 0]
    if present.size <= 1:
        return 0.0

    p = present / total
    return float(-np.sum(p * np.log(p)))


def simpson(counts: np.ndarray) -> Optional[float]:
    """Gini-Simpson index 1 - sum p^2; None for an empty site."""
    counts = np.asarray(counts, dtype=float)
    total = counts.sum()
    if total <= 0:
        return None

    present = counts[counts > 0]
    if present.size <= 1:
        return 0.0

    p = present / total
    return float(1.0 - np.sum(p ** 2))


def _log_comb(n: np.ndarray, k: np.ndarray) -> np.ndarray:
    return gammaln(n + 1) - gammaln(k + 1) - gammaln(n - k + 1)


def rarefy_curve_values(counts: np.ndarray, sizes: Sequence[int]) -> np.ndarray:
    """
    Hurlbert expected richness at several subsample sizes.

    Parameters
    ----------
    counts : np.ndarray
        Counts of one site
    sizes : Sequence[int]
        Subsample sizes; each must satisfy 1 <= m <= N

    Returns
    -------
    np.ndarray
        Expected richness for each size
    """
    counts = np.asarray(counts, dtype=np.int64)
    present = counts[counts > 0].astype(float)
    total = float(present.sum())
    sizes = np.asarray(sizes, dtype=float)

    if sizes.size and (sizes.min() < 1 or sizes.max() > total):
        raise ValueError(f"subsample sizes must lie in [1, {int(total)}]")

    remaining = total - present[np.newaxis, :]
    m = sizes[:, np.newaxis]

    # C(N - n_i, m) is zero when fewer than m specimens lie outside unit i
    feasible = remaining >= m
    log_ratio = np.where(
        feasible,
        _log_comb(np.where(feasible, remaining, m), m) - _log_comb(total, m),
        -np.inf,
    )
    expected = np.sum(1.0 - np.exp(log_ratio), axis=1)

    # m == N is exactly the observed richness
    expected[sizes == total] = float(present.size)
    return expected


def rarefy(counts: np.ndarray, sample_size: int) -> Optional[float]:
    """
    Expected richness in a random subsample of ``sample_size`` specimens.

    Returns None (undefined) when the sample size is not positive or larger
    than the site's specimen count.
    """
    total = int(np.asarray(counts).sum())
    if sample_size < 1 or sample_size > total:
        return None
    return float(rarefy_curve_values(counts, [sample_size])[0])


# ============================================================================
# Site Summaries
# ============================================================================

def summarize_site(
    site_id: str,
    counts: np.ndarray,
    rarefaction_depth: Optional[int] = None,
    zone: Optional[str] = None,
) -> DiversitySummary:
    """
    Compute every diversity statistic for one site.

    Parameters
    ----------
    site_id : str
        Site label
    counts : np.ndarray
        BIN counts of the site
    rarefaction_depth : Optional[int]
        Reference sample size m; None skips rarefaction
    zone : Optional[str]
        Zone annotation carried into the summary
    """
    total = int(np.asarray(counts).sum())
    undefined = []

    rarefied = None
    if rarefaction_depth is not None:
        rarefied = rarefy(counts, rarefaction_depth)
        if rarefied is None:
            undefined.append('rarefied_richness')

    h = shannon(counts)
    d = simpson(counts)
    if h is None:
        undefined.append('shannon')
    if d is None:
        undefined.append('simpson')

    return DiversitySummary(
        site_id=site_id,
        specimen_count=total,
        richness=richness(counts),
        rarefied_richness=rarefied,
        shannon=h,
        simpson=d,
        rarefaction_depth=rarefaction_depth,
        zone=zone,
        undefined=tuple(undefined),
    )


def qualifying_sites(matrix: CommunityMatrix, min_specimens: int) -> List[str]:
    """Sites with strictly more than ``min_specimens`` specimens."""
    totals = matrix.site_totals()
    return [site for site, n in totals.items() if n > min_specimens]


def summarize_matrix(
    matrix: CommunityMatrix,
    config: Optional[DiversityConfig] = None,
    zones: Optional[Dict[str, str]] = None,
) -> List[DiversitySummary]:
    """
    Diversity summaries for the published sites of a matrix.

    Parameters
    ----------
    matrix : CommunityMatrix
        Country or zone matrix
    config : Optional[DiversityConfig]
        Minimum-sample policy and rarefaction depth
    zones : Optional[Dict[str, str]]
        Zone per site (country -> zone); for a zone matrix the site is its
        own zone

    Returns
    -------
    List[DiversitySummary]
        One summary per site with more than ``config.min_specimens``
        specimens, in matrix row order
    """
    config = config or DiversityConfig()
    sites = qualifying_sites(matrix, config.min_specimens)

    n_excluded = len(matrix) - len(sites)
    if n_excluded:
        logger.info(
            f"{n_excluded}/{len(matrix)} {matrix.grouping} sites have "
            f"<= {config.min_specimens} specimens and are not published"
        )
    if not sites:
        logger.warning(
            f"No {matrix.grouping} site has more than {config.min_specimens} specimens"
        )
        return []

    depth = config.rarefaction_depth
    if depth is None:
        depth = int(min(matrix.row(site).sum() for site in sites))
        logger.info(f"Rarefying {matrix.grouping} sites to {depth} specimens")

    summaries = []
    for site in sites:
        if matrix.grouping == 'zone':
            zone = site
        else:
            zone = (zones or {}).get(site)
        summary = summarize_site(site, matrix.row(site), depth, zone)
        if summary.undefined:
            logger.debug(f"  {site}: undefined {', '.join(summary.undefined)}")
        summaries.append(summary)

    return summaries


def diversity_table(
    matrix: CommunityMatrix,
    config: Optional[DiversityConfig] = None,
    zones: Optional[Dict[str, str]] = None,
) -> pd.DataFrame:
    """
    Diversity table (one row per published site) for the presentation layer.

    Undefined statistics are NaN and listed in the ``undefined`` column
    (semicolon separated), so an undefined value is never mistaken for zero.
    """
    summaries = summarize_matrix(matrix, config, zones)

    rows = []
    for summary in summaries:
        row = asdict(summary)
        row['undefined'] = ';'.join(summary.undefined)
        rows.append(row)

    return pd.DataFrame(rows, columns=TABLE_COLUMNS)
