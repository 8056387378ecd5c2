"""
Unit tests for bolddiversity.records module

Tests cover:
1. BOLD TSV parsing and column mapping
2. Value and coordinate coercion
3. Record cleaning (hard filters, sentinel fill, duplicates)
4. Summary counts table
"""

import pytest
import pandas as pd
import numpy as np
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from bolddiversity.config import CleaningConfig
from bolddiversity.records import (
    RECORD_FIELDS,
    UNKNOWN,
    SpecimenRecord,
    clean_records,
    coerce_float,
    coerce_text,
    extract_coordinates,
    read_bold_tsv,
    records_to_frame,
    summarize_records,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def test_data_dir():
    """Return path to test data directory."""
    return Path(__file__).parent / "data"


@pytest.fixture
def test_bold_tsv(test_data_dir):
    """Return path to test BOLD TSV file."""
    return test_data_dir / "test_bold.tsv"


@pytest.fixture
def raw_records():
    """Raw records covering every cleaning rule."""
    return [
        {'id': 'A1', 'taxonomic_unit_id': 'BIN1', 'family': 'Apidae', 'genus': 'Bombus',
         'species': 'Bombus terrestris', 'country': 'Spain', 'region': 'Madrid',
         'latitude': '40.4', 'longitude': '-3.7', 'elevation': '650'},
        {'id': 'A2', 'taxonomic_unit_id': 'BIN2', 'family': None, 'genus': '',
         'species': float('nan'), 'country': 'Spain', 'latitude': 41.0},
        {'id': 'A3', 'taxonomic_unit_id': None, 'country': 'Spain'},
        {'id': 'A4', 'taxonomic_unit_id': 'BIN1', 'country': '  '},
        {'id': None, 'taxonomic_unit_id': 'BIN1', 'country': 'Spain'},
        {'id': 'A1', 'taxonomic_unit_id': 'BIN3', 'country': 'France'},
        {'id': 'A7', 'taxonomic_unit_id': 'BIN3', 'country': 'France',
         'latitude': '95', 'longitude': 'east'},
    ]


# ============================================================================
# Coercion Tests
# ============================================================================

class TestCoercion:
    """Test value coercion helpers."""

    @pytest.mark.parametrize("value", [None, float('nan'), '', '  ', 'NA', 'n/a', 'None', 'null'])
    def test_coerce_text_missing(self, value):
        assert coerce_text(value) is None

    def test_coerce_text_strips(self):
        assert coerce_text('  Costa Rica ') == 'Costa Rica'
        assert coerce_text(12) == '12'

    def test_coerce_float_valid(self):
        assert coerce_float('45.2') == 45.2
        assert coerce_float(-12) == -12.0

    def test_coerce_float_invalid(self):
        assert coerce_float('abc') is None
        assert coerce_float('inf') is None
        assert coerce_float(None) is None

    def test_coerce_float_limit(self):
        assert coerce_float('90', limit=90) == 90.0
        assert coerce_float('-90.5', limit=90) is None

    def test_extract_coordinates_formats(self):
        assert extract_coordinates('[34.5, -76.2]') == (34.5, -76.2)
        assert extract_coordinates('34.5, -76.2') == (34.5, -76.2)
        assert extract_coordinates('34.5 -76.2') == (34.5, -76.2)

    def test_extract_coordinates_invalid(self):
        assert extract_coordinates('') is None
        assert extract_coordinates(None) is None
        assert extract_coordinates('[91, 0]') is None
        assert extract_coordinates('[10, 200]') is None
        assert extract_coordinates('[1, 2, 3]') is None


# ============================================================================
# TSV Parsing Tests
# ============================================================================

class TestReadBoldTsv:
    """Test BOLD TSV parsing."""

    def test_columns_mapped(self, test_bold_tsv):
        df = read_bold_tsv(test_bold_tsv)
        assert list(df.columns) == RECORD_FIELDS
        assert len(df) == 10
        assert df.loc[0, 'id'] == 'LEP001-20'
        assert df.loc[0, 'taxonomic_unit_id'] == 'BOLD:AAA0001'
        assert df.loc[0, 'family'] == 'Nymphalidae'
        assert df.loc[0, 'region'] == 'Guanacaste'

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_bold_tsv(tmp_path / "missing.tsv")

    def test_missing_id_column(self, tmp_path):
        path = tmp_path / "no_id.tsv"
        path.write_text("bin_uri\tcountry\nBOLD:AAA0001\tPeru\n")
        with pytest.raises(ValueError, match="specimen id"):
            read_bold_tsv(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.tsv"
        path.write_text("processid\tbin_uri\n")
        with pytest.raises(pd.errors.EmptyDataError):
            read_bold_tsv(path)

    def test_coord_column(self, tmp_path):
        path = tmp_path / "coord.tsv"
        path.write_text(
            "processid\tbin_uri\tcountry/ocean\tcoord\n"
            "X1\tBOLD:AAA0001\tPeru\t[-12.0, -77.0]\n"
            "X2\tBOLD:AAA0002\tPeru\t\n"
        )
        df = read_bold_tsv(path)
        assert df.loc[0, 'latitude'] == -12.0
        assert df.loc[0, 'longitude'] == -77.0
        assert df.loc[0, 'country'] == 'Peru'
        assert pd.isna(df.loc[1, 'latitude'])

    def test_clean_tsv(self, test_bold_tsv):
        records, report = clean_records(read_bold_tsv(test_bold_tsv))

        assert report.n_input == 10
        assert report.n_kept == 7
        assert report.n_missing_unit == 1
        assert report.n_missing_country == 1
        assert report.n_duplicate_id == 1
        assert report.filled_unknown['species'] == 2
        assert report.filled_unknown['region'] == 1

        by_id = {r.id: r for r in records}
        assert by_id['LEP003-20'].species == UNKNOWN
        assert by_id['LEP010-20'].latitude is None
        assert by_id['LEP010-20'].longitude == -92.6
        assert by_id['LEP001-20'].elevation == 120.0


# ============================================================================
# Cleaning Tests
# ============================================================================

class TestCleanRecords:
    """Test record cleaning."""

    def test_drop_counts(self, raw_records):
        records, report = clean_records(raw_records)

        assert [r.id for r in records] == ['A1', 'A2', 'A7']
        assert report.n_input == 7
        assert report.n_kept == 3
        assert report.n_dropped == 4
        assert report.n_missing_unit == 1
        assert report.n_missing_country == 1
        assert report.n_missing_id == 1
        assert report.n_duplicate_id == 1

    def test_every_kept_record_has_unit_and_country(self, raw_records):
        records, _ = clean_records(raw_records)
        for r in records:
            assert r.taxonomic_unit_id
            assert r.country

    def test_unknown_sentinel(self, raw_records):
        records, report = clean_records(raw_records)
        a2 = records[1]
        assert a2.family == UNKNOWN
        assert a2.genus == UNKNOWN
        assert a2.species == UNKNOWN
        assert a2.region == UNKNOWN
        assert report.filled_unknown['family'] == 2

    def test_custom_unknown_label(self, raw_records):
        records, _ = clean_records(raw_records, CleaningConfig(unknown_label="NA_taxon"))
        assert records[1].family == "NA_taxon"

    def test_invalid_coordinates_become_none(self, raw_records):
        records, _ = clean_records(raw_records)
        a7 = records[2]
        assert a7.latitude is None
        assert a7.longitude is None

    def test_numeric_coercion(self, raw_records):
        records, _ = clean_records(raw_records)
        assert records[0].latitude == pytest.approx(40.4)
        assert records[0].elevation == pytest.approx(650.0)

    def test_keep_duplicates(self, raw_records):
        records, report = clean_records(raw_records, CleaningConfig(drop_duplicate_ids=False))
        assert report.n_duplicate_id == 0
        assert len(records) == 4

    def test_dataframe_input(self, raw_records):
        df = pd.DataFrame(raw_records)
        records, report = clean_records(df)
        assert report.n_kept == 3

    def test_empty_input(self):
        records, report = clean_records([])
        assert records == []
        assert report.n_input == 0
        assert report.n_kept == 0

    def test_report_to_dict(self, raw_records):
        _, report = clean_records(raw_records)
        d = report.to_dict()
        assert d['n_dropped'] == 4
        assert d['filled_species'] == 2

    def test_records_to_frame(self, raw_records):
        records, _ = clean_records(raw_records)
        frame = records_to_frame(records)
        assert list(frame.columns) == RECORD_FIELDS + ['zone']
        assert len(frame) == 3


# ============================================================================
# Summary Tests
# ============================================================================

class TestSummarizeRecords:
    """Test summary counts table."""

    def test_summary_values(self, raw_records):
        records, _ = clean_records(raw_records)
        summary = summarize_records(len(raw_records), records)
        values = dict(zip(summary['metric'], summary['value']))

        assert values['total_records'] == 7
        assert values['filtered_records'] == 3
        assert values['unique_units'] == 3
        assert values['unique_families'] == 1
        assert values['unique_genera'] == 1
        assert values['unique_species'] == 1
        assert values['unique_countries'] == 2
        assert values['latitude_min'] == pytest.approx(40.4)
        assert values['latitude_max'] == pytest.approx(41.0)

    def test_summary_without_latitudes(self):
        records = [SpecimenRecord(id='1', taxonomic_unit_id='B', country='Chile')]
        summary = summarize_records(1, records)
        values = dict(zip(summary['metric'], summary['value']))
        assert values['latitude_min'] is None or np.isnan(values['latitude_min'])
