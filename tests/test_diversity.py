"""
Unit tests for bolddiversity.diversity module

Tests cover:
1. Richness, Shannon and Simpson indices
2. Hurlbert rarefaction (edge values and brute-force agreement)
3. Site summaries with undefined statistics
4. Minimum-sample policy and diversity tables
"""

import pytest
import numpy as np
import pandas as pd
from itertools import combinations
from math import log
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from bolddiversity.community import CommunityMatrix
from bolddiversity.config import DiversityConfig
from bolddiversity.diversity import (
    TABLE_COLUMNS,
    diversity_table,
    qualifying_sites,
    rarefy,
    rarefy_curve_values,
    richness,
    shannon,
    simpson,
    summarize_matrix,
    summarize_site,
)


def brute_force_rarefy(counts, m):
    """Mean richness over every subsample of size m (small inputs only)."""
    specimens = [unit for unit, n in enumerate(counts) for _ in range(n)]
    totals = [len(set(specimens[i] for i in idx)) for idx in combinations(range(len(specimens)), m)]
    return sum(totals) / len(totals)


class TestIndices:
    """Test diversity indices."""

    def test_even_community(self):
        counts = np.array([2, 2, 2, 2, 2])
        assert richness(counts) == 5
        assert shannon(counts) == pytest.approx(log(5))
        assert simpson(counts) == pytest.approx(0.8)

    def test_single_unit(self):
        counts = np.array([0, 7, 0])
        assert richness(counts) == 1
        assert shannon(counts) == 0.0
        assert simpson(counts) == 0.0

    def test_empty_site_undefined(self):
        counts = np.zeros(3, dtype=int)
        assert richness(counts) == 0
        assert shannon(counts) is None
        assert simpson(counts) is None

    def test_zeros_ignored(self):
        assert shannon(np.array([3, 0, 1])) == pytest.approx(shannon(np.array([3, 1])))
        assert simpson(np.array([3, 0, 1])) == pytest.approx(1 - (0.75 ** 2 + 0.25 ** 2))

    def test_bounds(self):
        rng = np.random.default_rng(0)
        for _ in range(20):
            counts = rng.integers(0, 30, size=12)
            if counts.sum() == 0:
                continue
            s = richness(counts)
            assert 0 <= shannon(counts) <= log(max(s, 1)) + 1e-12
            assert 0 <= simpson(counts) <= 1 - 1 / max(s, 1) + 1e-12


class TestRarefaction:
    """Test Hurlbert rarefied richness."""

    def test_full_sample_is_richness(self):
        counts = np.array([5, 3, 1, 0, 1])
        assert rarefy(counts, 10) == pytest.approx(4.0)

    def test_single_specimen(self):
        assert rarefy(np.array([5, 3, 1]), 1) == pytest.approx(1.0)

    def test_above_total_undefined(self):
        assert rarefy(np.array([2, 2]), 5) is None
        assert rarefy(np.array([2, 2]), 0) is None

    @pytest.mark.parametrize("m", [1, 2, 3, 4, 5, 6])
    def test_matches_brute_force(self, m):
        counts = [3, 2, 1, 1]
        assert rarefy(np.array(counts), m) == pytest.approx(brute_force_rarefy(counts, m))

    def test_curve_values_monotone(self):
        counts = np.array([40, 20, 10, 5, 2, 1, 1, 1])
        values = rarefy_curve_values(counts, range(1, counts.sum() + 1))
        assert np.all(np.diff(values) >= -1e-9)
        assert values[-1] == pytest.approx(richness(counts))

    def test_curve_values_out_of_range(self):
        with pytest.raises(ValueError):
            rarefy_curve_values(np.array([1, 1]), [3])

    def test_large_counts_finite(self):
        counts = np.array([50000, 20000, 3, 1])
        value = rarefy(counts, 1000)
        assert np.isfinite(value)
        assert 2.0 <= value <= 4.0


class TestSummaries:
    """Test site summaries and tables."""

    def test_summarize_site(self):
        summary = summarize_site('Peru', np.array([2, 2, 2, 2, 2]), rarefaction_depth=10, zone='Tropical')
        assert summary.specimen_count == 10
        assert summary.richness == 5
        assert summary.rarefied_richness == pytest.approx(5.0)
        assert summary.shannon == pytest.approx(log(5))
        assert summary.simpson == pytest.approx(0.8)
        assert summary.zone == 'Tropical'
        assert summary.undefined == ()

    def test_summarize_site_undefined_rarefaction(self):
        summary = summarize_site('Peru', np.array([1, 1]), rarefaction_depth=5)
        assert summary.rarefied_richness is None
        assert summary.undefined == ('rarefied_richness',)
        assert summary.richness == 2

    def test_summarize_empty_site(self):
        summary = summarize_site('Nowhere', np.array([0, 0]), rarefaction_depth=1)
        assert set(summary.undefined) == {'rarefied_richness', 'shannon', 'simpson'}

    def test_min_specimens_strict(self):
        m = CommunityMatrix([[3, 2], [2, 2], [1, 0]], ['a', 'b', 'c'], ['u1', 'u2'], 'country')
        assert qualifying_sites(m, 4) == ['a']
        assert qualifying_sites(m, 3) == ['a', 'b']
        assert qualifying_sites(m, 0) == ['a', 'b', 'c']

    def test_default_depth_is_smallest_published(self):
        m = CommunityMatrix([[30, 20], [5, 5], [1, 0]], ['a', 'b', 'c'], ['u1', 'u2'], 'country')
        summaries = summarize_matrix(m, DiversityConfig(min_specimens=2), {'a': 'Tropical'})

        assert [s.site_id for s in summaries] == ['a', 'b']
        assert all(s.rarefaction_depth == 10 for s in summaries)
        assert summaries[0].zone == 'Tropical'
        assert summaries[1].zone is None

    def test_zone_matrix_zone_column(self):
        m = CommunityMatrix([[3, 2], [2, 2]], ['Tropical', 'Temperate'], ['u1', 'u2'], 'zone')
        summaries = summarize_matrix(m, DiversityConfig(min_specimens=0))
        assert [s.zone for s in summaries] == ['Tropical', 'Temperate']

    def test_no_qualifying_sites(self):
        m = CommunityMatrix([[3, 2]], ['a'], ['u1', 'u2'], 'country')
        assert summarize_matrix(m) == []
        table = diversity_table(m)
        assert table.empty
        assert list(table.columns) == TABLE_COLUMNS

    def test_diversity_table(self):
        m = CommunityMatrix([[2, 2, 2, 2, 2], [1, 0, 0, 0, 1]], ['a', 'b'],
                            ['u1', 'u2', 'u3', 'u4', 'u5'], 'country')
        table = diversity_table(m, DiversityConfig(min_specimens=0, rarefaction_depth=4))

        assert list(table.columns) == TABLE_COLUMNS
        row_a = table.set_index('site_id').loc['a']
        assert row_a['richness'] == 5
        assert row_a['simpson'] == pytest.approx(0.8)
        assert row_a['undefined'] == ''

        row_b = table.set_index('site_id').loc['b']
        assert pd.isna(row_b['rarefied_richness'])
        assert row_b['undefined'] == 'rarefied_richness'
