"""
Community Matrix Construction

Aggregates cleaned specimen records into site x BIN abundance matrices. A site
is a country, a latitude zone, or the single synthetic "overall" site.

Matrices are dense: every matrix built from one record set carries the full
set of BINs observed anywhere in that record set, with explicit zeros where a
BIN is absent from a site. Rarefaction, ordination and the network step all
assume a shared, zero-filled column set.

A CommunityMatrix is a read-only snapshot. Its count array is flagged
non-writeable and ``to_frame()`` returns a copy, so downstream engines cannot
modify the matrix another engine is reading.

Example Usage:
    >>> from bolddiversity.community import build_matrices
    >>> matrices = build_matrices(classified_records)
    >>> matrices['zone'].site_totals()
    Tropical        1520
    Sub-tropical     843
    ...
"""

from collections import Counter
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .config import ZoneConfig
from .records import SpecimenRecord

logger = logging.getLogger(__name__)


OVERALL_SITE = "overall"


class CommunityMatrix:
    """
    Immutable site x taxonomic-unit count matrix.

    Parameters
    ----------
    counts : array-like
        Non-negative integer counts, shape (n_sites, n_units)
    sites : Sequence[str]
        Row labels (countries, zones or "overall")
    units : Sequence[str]
        Column labels (BINs)
    grouping : str
        Name of the grouping scheme ("country", "zone", "overall")
    """

    def __init__(
        self,
        counts,
        sites: Sequence[str],
        units: Sequence[str],
        grouping: str,
    ):
        array = np.array(counts, dtype=np.int64, copy=True)
        if array.ndim != 2:
            raise ValueError(f"counts must be two-dimensional, got shape {array.shape}")
        if array.shape != (len(sites), len(units)):
            raise ValueError(
                f"counts shape {array.shape} does not match "
                f"{len(sites)} sites x {len(units)} units"
            )
        if (array < 0).any():
            raise ValueError("counts must be non-negative")
        if len(set(sites)) != len(sites):
            raise ValueError("site labels must be unique")

        array.setflags(write=False)
        self._counts = array
        self._sites = tuple(sites)
        self._units = tuple(units)
        self._index = {site: i for i, site in enumerate(self._sites)}
        self.grouping = grouping

    @property
    def counts(self) -> np.ndarray:
        """Read-only count array, shape (n_sites, n_units)."""
        return self._counts

    @property
    def sites(self) -> tuple:
        return self._sites

    @property
    def units(self) -> tuple:
        return self._units

    @property
    def shape(self) -> tuple:
        return self._counts.shape

    def __len__(self) -> int:
        return len(self._sites)

    def __contains__(self, site: str) -> bool:
        return site in self._index

    def __repr__(self) -> str:
        return (
            f"CommunityMatrix(grouping={self.grouping!r}, "
            f"sites={len(self._sites)}, units={len(self._units)}, "
            f"specimens={int(self._counts.sum())})"
        )

    def row(self, site: str) -> np.ndarray:
        """Counts for one site (read-only view)."""
        if site not in self._index:
            raise KeyError(f"Unknown site: {site}")
        return self._counts[self._index[site]]

    def site_totals(self) -> pd.Series:
        """Specimen count per site."""
        return pd.Series(self._counts.sum(axis=1), index=list(self._sites), name='specimen_count')

    def unit_sets(self) -> Dict[str, FrozenSet[str]]:
        """Set of BINs present (count > 0) at each site."""
        units = np.array(self._units, dtype=object)
        return {
            site: frozenset(units[self._counts[i] > 0])
            for i, site in enumerate(self._sites)
        }

    def subset(self, sites: Iterable[str]) -> 'CommunityMatrix':
        """New matrix restricted to ``sites``; the column set is unchanged."""
        sites = list(sites)
        rows = [self._index[s] for s in sites]
        return CommunityMatrix(self._counts[rows], sites, self._units, self.grouping)

    def to_frame(self) -> pd.DataFrame:
        """Copy of the matrix as a DataFrame (sites x units)."""
        return pd.DataFrame(
            self._counts.copy(),
            index=pd.Index(self._sites, name=self.grouping),
            columns=pd.Index(self._units, name='taxonomic_unit_id'),
        )


# ============================================================================
# Builders
# ============================================================================

def build_community_matrix(
    records: Iterable[SpecimenRecord],
    site_key: Callable[[SpecimenRecord], Optional[str]],
    units: Sequence[str],
    grouping: str,
    site_order: Optional[Sequence[str]] = None,
) -> CommunityMatrix:
    """
    Group records by site, then by BIN, and materialize a dense matrix.

    Parameters
    ----------
    records : Iterable[SpecimenRecord]
        Cleaned records
    site_key : Callable
        Returns the site label of a record, or None to leave it out
    units : Sequence[str]
        Full column set (every BIN of the record set)
    grouping : str
        Grouping name stored on the matrix
    site_order : Optional[Sequence[str]]
        Preferred row order; sites with no records are dropped. Sites not in
        the order are appended alphabetically. Default: alphabetical.

    Returns
    -------
    CommunityMatrix
    """
    tallies: Dict[str, Counter] = {}
    for record in records:
        site = site_key(record)
        if site is None:
            continue
        tallies.setdefault(site, Counter())[record.taxonomic_unit_id] += 1

    if site_order is None:
        sites = sorted(tallies)
    else:
        sites = [s for s in site_order if s in tallies]
        sites += sorted(set(tallies) - set(sites))

    column = {unit: j for j, unit in enumerate(units)}
    counts = np.zeros((len(sites), len(units)), dtype=np.int64)
    for i, site in enumerate(sites):
        for unit, n in tallies[site].items():
            counts[i, column[unit]] = n

    matrix = CommunityMatrix(counts, sites, units, grouping)
    logger.debug(f"Built {matrix!r}")
    return matrix


def all_units(records: Iterable[SpecimenRecord]) -> List[str]:
    """Sorted set of BINs in a record set."""
    return sorted({r.taxonomic_unit_id for r in records})


def build_country_matrix(records: List[SpecimenRecord], units: Optional[Sequence[str]] = None) -> CommunityMatrix:
    units = all_units(records) if units is None else units
    return build_community_matrix(records, lambda r: r.country, units, 'country')


def build_zone_matrix(
    records: List[SpecimenRecord],
    units: Optional[Sequence[str]] = None,
    config: Optional[ZoneConfig] = None,
) -> CommunityMatrix:
    """Zone x BIN matrix; records with no zone are left out."""
    config = config or ZoneConfig()
    units = all_units(records) if units is None else units
    return build_community_matrix(
        records, lambda r: r.zone, units, 'zone', site_order=config.names
    )


def build_overall_matrix(records: List[SpecimenRecord], units: Optional[Sequence[str]] = None) -> CommunityMatrix:
    units = all_units(records) if units is None else units
    return build_community_matrix(records, lambda r: OVERALL_SITE, units, 'overall')


def build_matrices(
    records: List[SpecimenRecord],
    config: Optional[ZoneConfig] = None,
) -> Dict[str, CommunityMatrix]:
    """
    Build the country, zone and overall matrices over one shared column set.

    Parameters
    ----------
    records : List[SpecimenRecord]
        Cleaned records with zones assigned
    config : Optional[ZoneConfig]
        Zone order for the zone matrix rows

    Returns
    -------
    Dict[str, CommunityMatrix]
        Keys 'country', 'zone' and 'overall'
    """
    units = all_units(records)

    matrices = {
        'country': build_country_matrix(records, units),
        'zone': build_zone_matrix(records, units, config),
        'overall': build_overall_matrix(records, units),
    }

    for name, matrix in matrices.items():
        logger.info(
            f"  {name}: {len(matrix)} sites x {len(matrix.units)} BINs, "
            f"{int(matrix.counts.sum())} specimens"
        )

    return matrices


# ============================================================================
# Presentation Copy
# ============================================================================

def spatial_density(records: Iterable[SpecimenRecord]) -> pd.DataFrame:
    """
    Specimen and BIN counts per integer-degree cell.

    Coordinates are rounded to the nearest whole degree (half to even) on a
    copy used only for mapping; the community matrices keep using the
    unrounded records.

    Returns
    -------
    pd.DataFrame
        Columns: latitude, longitude (rounded), specimens, units. Records
        without both coordinates are left out.
    """
    frame = pd.DataFrame(
        [
            (r.latitude, r.longitude, r.taxonomic_unit_id)
            for r in records
            if r.latitude is not None and r.longitude is not None
        ],
        columns=['latitude', 'longitude', 'taxonomic_unit_id'],
    )
    if frame.empty:
        return pd.DataFrame(columns=['latitude', 'longitude', 'specimens', 'units'])

    frame['latitude'] = np.round(frame['latitude'].astype(float)).astype(int)
    frame['longitude'] = np.round(frame['longitude'].astype(float)).astype(int)

    density = (
        frame.groupby(['latitude', 'longitude'])
        .agg(specimens=('taxonomic_unit_id', 'size'), units=('taxonomic_unit_id', 'nunique'))
        .reset_index()
    )
    return density
