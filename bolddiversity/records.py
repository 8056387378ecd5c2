"""
Specimen Records: BOLD TSV Parsing, Cleaning and Summary Counts

This module turns raw barcode specimen records into the typed records used by
every downstream analysis.

Key Responsibilities:
1. Parse BOLD TSV exports, mapping BOLD column names onto the record fields:
   - processid: Unique specimen identifier (REQUIRED)
   - bin_uri: Barcode Index Number, the taxonomic unit of the analysis
   - family/genus/species names (old ``*_name`` or new short headers)
   - country (or country/ocean), region (or province_state)
   - lat/lon (or a ``coord`` column in format [lat, lon]) and elev

2. Record Cleaning:
   - Drop records without a BIN or a country (hard filter)
   - Fill missing family/genus/species/region with the "Unknown" sentinel
   - Coerce coordinates and elevation to floats (invalid values become None)
   - Drop duplicate specimen ids, keeping the first occurrence
   - Count every exclusion in a CleaningReport instead of raising

3. Summary Counts:
   - Totals of records, BINs, taxonomic names, countries and latitude range

Important Notes:
- Malformed rows are excluded, never raised as errors; the counts are logged.
- Records missing only family/genus/species are kept. Whether to exclude them
  from family-level aggregates is left to the consumer of the tables.

Example Usage:
    >>> from bolddiversity.records import read_bold_tsv, clean_records
    >>> raw = read_bold_tsv("Lepidoptera_BOLD.tsv")
    >>> records, report = clean_records(raw)
    >>> print(report.n_kept, report.n_missing_unit)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from pathlib import Path
import logging
import math

import pandas as pd

from .config import CleaningConfig

# Configure logging
logger = logging.getLogger(__name__)


UNKNOWN = "Unknown"

# Input contract fields, in output order
RECORD_FIELDS = [
    'id', 'taxonomic_unit_id', 'family', 'genus', 'species',
    'country', 'region', 'latitude', 'longitude', 'elevation',
]

NOMINAL_FIELDS = ['family', 'genus', 'species', 'region']

# BOLD export headers for each input field, in order of preference
BOLD_COLUMN_ALIASES = {
    'id': ['processid', 'sampleid'],
    'taxonomic_unit_id': ['bin_uri'],
    'family': ['family_name', 'family'],
    'genus': ['genus_name', 'genus'],
    'species': ['species_name', 'species'],
    'country': ['country', 'country/ocean'],
    'region': ['region', 'province_state', 'province/state'],
    'latitude': ['lat'],
    'longitude': ['lon'],
    'elevation': ['elev', 'elevation'],
}

_MISSING_LITERALS = {'', 'nan', 'none', 'null', 'na', 'n/a', '<na>'}


# ============================================================================
# Record Types
# ============================================================================

@dataclass(frozen=True)
class SpecimenRecord:
    """
    One cleaned barcode specimen.

    ``taxonomic_unit_id`` and ``country`` are always set on records produced
    by :func:`clean_records`. ``zone`` stays None until the record is
    classified (see :mod:`bolddiversity.zones`) and remains None when the
    latitude is unknown.
    """
    id: str
    taxonomic_unit_id: str
    country: str
    family: str = UNKNOWN
    genus: str = UNKNOWN
    species: str = UNKNOWN
    region: str = UNKNOWN
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    elevation: Optional[float] = None
    zone: Optional[str] = None


@dataclass
class CleaningReport:
    """Counts of records kept and dropped by :func:`clean_records`."""
    n_input: int = 0
    n_kept: int = 0
    n_missing_id: int = 0
    n_missing_unit: int = 0
    n_missing_country: int = 0
    n_duplicate_id: int = 0
    filled_unknown: Dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in NOMINAL_FIELDS}
    )

    @property
    def n_dropped(self) -> int:
        return self.n_input - self.n_kept

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_input': self.n_input,
            'n_kept': self.n_kept,
            'n_dropped': self.n_dropped,
            'n_missing_id': self.n_missing_id,
            'n_missing_unit': self.n_missing_unit,
            'n_missing_country': self.n_missing_country,
            'n_duplicate_id': self.n_duplicate_id,
            **{f'filled_{name}': count for name, count in self.filled_unknown.items()},
        }


# ============================================================================
# Value Coercion
# ============================================================================

def coerce_text(value: Any) -> Optional[str]:
    """
    Coerce a nominal value to a stripped string, or None if missing.

    Examples
    --------
    >>> coerce_text("  Canada ")
    'Canada'
    >>> coerce_text(float('nan')) is None
    True
    >>> coerce_text("NA") is None
    True
    """
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None

    text = str(value).strip()
    if text.lower() in _MISSING_LITERALS:
        return None
    return text


def coerce_float(value: Any, limit: Optional[float] = None) -> Optional[float]:
    """
    Coerce a numeric value to float, or None if missing or invalid.

    Parameters
    ----------
    value : Any
        Raw value (number or string)
    limit : Optional[float]
        If given, values with ``abs(value) > limit`` are treated as invalid

    Examples
    --------
    >>> coerce_float("45.2")
    45.2
    >>> coerce_float("91", limit=90) is None
    True
    >>> coerce_float("n/a") is None
    True
    """
    text = coerce_text(value)
    if text is None:
        return None

    try:
        number = float(text)
    except (TypeError, ValueError):
        logger.debug(f"Could not parse numeric value '{value}'")
        return None

    if not math.isfinite(number):
        return None
    if limit is not None and abs(number) > limit:
        logger.debug(f"Value out of range (|x| > {limit}): {number}")
        return None
    return number


def extract_coordinates(coord_string: Any) -> Optional[Tuple[float, float]]:
    """
    Parse a BOLD coordinate string from format '[lat, lon]' to floats.

    Handles '[34.5, -76.2]', '34.5, -76.2' and '34.5 -76.2'.

    Returns
    -------
    Optional[Tuple[float, float]]
        (latitude, longitude) tuple, or None if parsing fails or the values
        are outside the valid ranges
    """
    coord_str = coerce_text(coord_string)
    if coord_str is None:
        return None

    coord_str = coord_str.strip('[](){} ')
    parts = coord_str.split(',') if ',' in coord_str else coord_str.split()

    if len(parts) != 2:
        logger.debug(f"Coordinate string has wrong number of parts: '{coord_string}'")
        return None

    lat = coerce_float(parts[0], limit=90)
    lon = coerce_float(parts[1], limit=180)
    if lat is None or lon is None:
        return None

    return (lat, lon)


# ============================================================================
# BOLD TSV Parsing
# ============================================================================

def read_bold_tsv(
    tsv_path: Union[str, Path],
    encoding: str = 'utf-8',
) -> pd.DataFrame:
    """
    Read a BOLD TSV export and map its columns onto the record fields.

    Parameters
    ----------
    tsv_path : Union[str, Path]
        Path to BOLD TSV file
    encoding : str
        File encoding (default: 'utf-8', falls back to 'latin-1' if needed)

    Returns
    -------
    pd.DataFrame
        One row per specimen with the columns of ``RECORD_FIELDS``. Fields
        absent from the export are filled with None; values are not cleaned
        here (see :func:`clean_records`).

    Raises
    ------
    FileNotFoundError
        If TSV file doesn't exist
    pd.errors.EmptyDataError
        If file is empty
    ValueError
        If no specimen id column (processid/sampleid) is present
    """
    path = Path(tsv_path)

    if not path.exists():
        raise FileNotFoundError(f"BOLD TSV file not found: {path}")

    logger.info(f"Reading BOLD TSV file: {path}")

    try:
        df = pd.read_csv(path, sep='\t', encoding=encoding, dtype=str, low_memory=False)
    except UnicodeDecodeError:
        logger.warning(f"{encoding} decoding failed, trying latin-1")
        df = pd.read_csv(path, sep='\t', encoding='latin-1', dtype=str, low_memory=False)

    if df.empty:
        raise pd.errors.EmptyDataError(f"BOLD TSV file is empty: {path}")

    logger.info(f"Read {len(df)} rows and {len(df.columns)} columns")

    columns = {c.strip().lower(): c for c in df.columns}
    mapped = pd.DataFrame(index=df.index)

    for name, aliases in BOLD_COLUMN_ALIASES.items():
        source = next((columns[a] for a in aliases if a in columns), None)
        if source is not None:
            mapped[name] = df[source]
        else:
            mapped[name] = None

    if mapped['id'].isna().all():
        raise ValueError(
            f"BOLD TSV is missing a specimen id column (one of "
            f"{BOLD_COLUMN_ALIASES['id']}). Found {len(df.columns)} columns total."
        )

    # Newer exports carry a single coord column instead of lat/lon
    if 'coord' in columns and mapped['latitude'].isna().all():
        coords = df[columns['coord']].apply(extract_coordinates)
        mapped['latitude'] = coords.apply(lambda x: x[0] if x is not None else None)
        mapped['longitude'] = coords.apply(lambda x: x[1] if x is not None else None)
        logger.info(f"Parsed {int(coords.notna().sum())} coordinates from 'coord' column")

    missing_fields = [name for name in RECORD_FIELDS if name != 'id' and mapped[name].isna().all()]
    if missing_fields:
        logger.warning(f"No values found for fields: {missing_fields}")

    return mapped[RECORD_FIELDS]


# ============================================================================
# Record Cleaning
# ============================================================================

def _iter_raw(raw_records: Union[pd.DataFrame, Iterable[Mapping[str, Any]]]) -> Iterable[Mapping[str, Any]]:
    if isinstance(raw_records, pd.DataFrame):
        return raw_records.to_dict(orient='records')
    return raw_records


def clean_records(
    raw_records: Union[pd.DataFrame, Iterable[Mapping[str, Any]]],
    config: Optional[CleaningConfig] = None,
) -> Tuple[List[SpecimenRecord], CleaningReport]:
    """
    Filter and normalize raw specimen records.

    Parameters
    ----------
    raw_records : DataFrame or iterable of mappings
        Records with (a subset of) the fields in ``RECORD_FIELDS``
    config : Optional[CleaningConfig]
        Cleaning policy (default: CleaningConfig())

    Returns
    -------
    Tuple[List[SpecimenRecord], CleaningReport]
        Cleaned records, in input order, and the exclusion counts

    Notes
    -----
    A record is dropped when it has no id, no BIN, or no country (in that
    order of precedence for counting). Missing nominal fields below the BIN
    are filled with ``config.unknown_label``. Nothing is raised for malformed
    rows.
    """
    config = config or CleaningConfig()
    report = CleaningReport()
    cleaned = []
    seen_ids = set()

    for raw in _iter_raw(raw_records):
        report.n_input += 1

        record_id = coerce_text(raw.get('id'))
        unit_id = coerce_text(raw.get('taxonomic_unit_id'))
        country = coerce_text(raw.get('country'))

        if record_id is None:
            report.n_missing_id += 1
            continue
        if unit_id is None:
            report.n_missing_unit += 1
            continue
        if country is None:
            report.n_missing_country += 1
            continue
        if config.drop_duplicate_ids and record_id in seen_ids:
            report.n_duplicate_id += 1
            continue
        seen_ids.add(record_id)

        nominal = {}
        for name in NOMINAL_FIELDS:
            value = coerce_text(raw.get(name))
            if value is None:
                report.filled_unknown[name] += 1
                value = config.unknown_label
            nominal[name] = value

        cleaned.append(SpecimenRecord(
            id=record_id,
            taxonomic_unit_id=unit_id,
            country=country,
            latitude=coerce_float(raw.get('latitude'), limit=90),
            longitude=coerce_float(raw.get('longitude'), limit=180),
            elevation=coerce_float(raw.get('elevation')),
            **nominal,
        ))

    report.n_kept = len(cleaned)
    _log_cleaning_report(report)

    return cleaned, report


def _log_cleaning_report(report: CleaningReport) -> None:
    """Log exclusion counts for a cleaning pass."""
    pct_kept = (report.n_kept / report.n_input * 100) if report.n_input > 0 else 0

    logger.info(
        f"Record cleaning: {report.n_kept}/{report.n_input} records retained "
        f"({pct_kept:.1f}%), {report.n_dropped} excluded"
    )
    if report.n_missing_unit:
        logger.info(f"  Excluded {report.n_missing_unit} records without a BIN")
    if report.n_missing_country:
        logger.info(f"  Excluded {report.n_missing_country} records without a country")
    if report.n_missing_id:
        logger.warning(f"  Excluded {report.n_missing_id} records without a specimen id")
    if report.n_duplicate_id:
        logger.warning(
            f"  Excluded {report.n_duplicate_id} duplicate specimen ids "
            f"(kept first occurrence)"
        )
    for name, count in report.filled_unknown.items():
        if count:
            logger.debug(f"  Filled {count} missing '{name}' values with sentinel")


def records_to_frame(records: Iterable[SpecimenRecord]) -> pd.DataFrame:
    """Convert records to a DataFrame (one row per record, including zone)."""
    columns = RECORD_FIELDS + ['zone']
    rows = [{name: getattr(r, name) for name in columns} for r in records]
    return pd.DataFrame(rows, columns=columns)


# ============================================================================
# Summary Counts
# ============================================================================

def summarize_records(
    n_total: int,
    records: List[SpecimenRecord],
    unknown_label: str = UNKNOWN,
) -> pd.DataFrame:
    """
    Build the summary counts table for a cleaned record set.

    Parameters
    ----------
    n_total : int
        Number of raw records before cleaning
    records : List[SpecimenRecord]
        Cleaned records
    unknown_label : str
        Sentinel excluded from the family/genus/species name counts

    Returns
    -------
    pd.DataFrame
        Two columns, ``metric`` and ``value``, with rows: total_records,
        filtered_records, unique_units, unique_families, unique_genera,
        unique_species, unique_countries, latitude_min, latitude_max.
        Latitude bounds are None when no record has a latitude.
    """
    def _names(attr: str) -> int:
        return len({getattr(r, attr) for r in records} - {unknown_label})

    latitudes = [r.latitude for r in records if r.latitude is not None]

    summary = [
        ('total_records', n_total),
        ('filtered_records', len(records)),
        ('unique_units', len({r.taxonomic_unit_id for r in records})),
        ('unique_families', _names('family')),
        ('unique_genera', _names('genus')),
        ('unique_species', _names('species')),
        ('unique_countries', len({r.country for r in records})),
        ('latitude_min', min(latitudes) if latitudes else None),
        ('latitude_max', max(latitudes) if latitudes else None),
    ]

    return pd.DataFrame(summary, columns=['metric', 'value'])
