"""
Latitude Zone Classification

Assigns specimens, and derivatively countries, to absolute-latitude zones:

    |lat| <= 20          Tropical
    20 < |lat| <= 40     Sub-tropical
    40 < |lat| <= 60     Temperate
    |lat| > 60           Extreme

A latitude exactly on a boundary belongs to the lower (equatorward) band.
Boundaries and zone names come from :class:`bolddiversity.config.ZoneConfig`.

Countries are classified by the mean latitude of their specimens, with the
same threshold function applied to the mean. This is not a majority vote over
the member records' zones: a country sampled at 10, 15, 25 and 70 degrees has
a mean of 30 and is Sub-tropical even though only one record is.

Example Usage:
    >>> from bolddiversity.zones import classify_latitude
    >>> classify_latitude(20.0)
    'Tropical'
    >>> classify_latitude(-45.5)
    'Temperate'
"""

from dataclasses import replace
from typing import Dict, List, Optional
import bisect
import logging

from .config import ZoneConfig
from .records import SpecimenRecord

logger = logging.getLogger(__name__)


def classify_latitude(
    latitude: Optional[float],
    config: Optional[ZoneConfig] = None,
) -> Optional[str]:
    """
    Return the zone name for a latitude, or None if the latitude is unknown.

    Parameters
    ----------
    latitude : Optional[float]
        Decimal degrees; the sign is ignored
    config : Optional[ZoneConfig]
        Zone boundaries and names (default: ZoneConfig())
    """
    if latitude is None:
        return None
    config = config or ZoneConfig()

    # bisect_left keeps a value equal to a boundary in the lower band
    index = bisect.bisect_left(config.boundaries, abs(latitude))
    return config.names[index]


def assign_record_zones(
    records: List[SpecimenRecord],
    config: Optional[ZoneConfig] = None,
) -> List[SpecimenRecord]:
    """
    Return copies of the records with ``zone`` set from their own latitude.

    Records without a latitude keep ``zone=None``; they are left out of the
    zone grouping but still count towards their country.
    """
    config = config or ZoneConfig()
    classified = [replace(r, zone=classify_latitude(r.latitude, config)) for r in records]

    n_unzoned = sum(1 for r in classified if r.zone is None)
    if n_unzoned:
        logger.info(f"{n_unzoned} records without latitude left unclassified")

    return classified


def country_mean_latitudes(records: List[SpecimenRecord]) -> Dict[str, float]:
    """Mean latitude per country over records with a known latitude."""
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}

    for r in records:
        if r.latitude is None:
            continue
        sums[r.country] = sums.get(r.country, 0.0) + r.latitude
        counts[r.country] = counts.get(r.country, 0) + 1

    return {country: sums[country] / counts[country] for country in sums}


def assign_country_zones(
    records: List[SpecimenRecord],
    config: Optional[ZoneConfig] = None,
) -> Dict[str, str]:
    """
    Map each country to one zone using its mean specimen latitude.

    The mean is taken over signed latitudes before the absolute value is
    classified, so a label spanning both hemispheres (e.g. an ocean such as
    "Pacific Ocean") averages towards the equator and is usually Tropical.

    Parameters
    ----------
    records : List[SpecimenRecord]
        Cleaned records
    config : Optional[ZoneConfig]
        Zone boundaries and names

    Returns
    -------
    Dict[str, str]
        Country -> zone name. Countries without any latitude are omitted
        (their records still appear in country-level matrices).
    """
    config = config or ZoneConfig()
    means = country_mean_latitudes(records)
    zones = {country: classify_latitude(mean, config) for country, mean in sorted(means.items())}

    missing = {r.country for r in records} - set(zones)
    if missing:
        logger.info(
            f"{len(missing)} countries have no specimen latitudes and no zone: "
            f"{sorted(missing)[:10]}"
        )

    return zones
