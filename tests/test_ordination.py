"""
Unit tests for bolddiversity.ordination module

Tests cover:
1. Wisconsin/sqrt transform and Bray-Curtis dissimilarity
2. NMDS input validation, reproducibility and rank preservation
3. ordinate() results, undefined and non-converged cases
"""

import pytest
import numpy as np
from pathlib import Path
from scipy.spatial.distance import pdist, squareform
from scipy.stats import spearmanr

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from bolddiversity.community import CommunityMatrix
from bolddiversity.config import OrdinationConfig
from bolddiversity.ordination import (
    OrdinationError,
    bray_curtis,
    nmds,
    ordinate,
    wisconsin_sqrt,
)


@pytest.fixture
def gradient_matrix():
    """Eight sites along a one-dimensional turnover gradient."""
    n_sites, n_units = 8, 12
    counts = np.zeros((n_sites, n_units), dtype=int)
    for i in range(n_sites):
        for j in range(n_units):
            # unimodal response centred on each site's gradient position
            counts[i, j] = int(round(20 * np.exp(-((j - 1.5 * i) ** 2) / 4.0)))
    sites = [f'S{i}' for i in range(n_sites)]
    units = [f'U{j}' for j in range(n_units)]
    return CommunityMatrix(counts, sites, units, 'country')


class TestDissimilarity:
    """Test transformation and Bray-Curtis."""

    def test_wisconsin_rows_sum_to_one(self):
        x = wisconsin_sqrt(np.array([[4, 0, 9], [1, 1, 0], [0, 0, 0]]))
        np.testing.assert_allclose(x.sum(axis=1), [1.0, 1.0, 0.0])
        assert np.all(x >= 0)

    def test_bray_curtis_known_values(self):
        d = bray_curtis(np.array([[1, 0], [0, 1], [1, 1]]))
        assert d[0, 1] == pytest.approx(1.0)
        assert d[0, 2] == pytest.approx(1 / 3)
        np.testing.assert_allclose(d, d.T)
        np.testing.assert_allclose(np.diag(d), 0.0)

    def test_bray_curtis_single_site(self):
        assert bray_curtis(np.array([[1, 2]])).shape == (1, 1)


class TestNmds:
    """Test the SMACOF NMDS routine."""

    def test_not_square(self):
        with pytest.raises(OrdinationError):
            nmds(np.zeros((3, 4)))

    def test_too_few_sites(self):
        with pytest.raises(OrdinationError):
            nmds(np.array([[0, 1], [1, 0]]))

    def test_asymmetric(self):
        d = np.array([[0, 1, 2], [1, 0, 1], [3, 1, 0]], dtype=float)
        with pytest.raises(OrdinationError, match="symmetric"):
            nmds(d)

    def test_negative_or_nan(self):
        d = np.array([[0, -1, 2], [-1, 0, 1], [2, 1, 0]], dtype=float)
        with pytest.raises(OrdinationError):
            nmds(d)
        d = np.array([[0, np.nan, 2], [np.nan, 0, 1], [2, 1, 0]], dtype=float)
        with pytest.raises(OrdinationError):
            nmds(d)

    def test_euclidean_configuration_recovered(self):
        rng = np.random.default_rng(0)
        points = rng.normal(size=(10, 2))
        d = squareform(pdist(points))

        coords, stress, n_iter = nmds(d, n_init=4, max_iter=500, seed=1)
        assert coords.shape == (10, 2)
        assert stress < 0.1
        assert n_iter >= 1

        rho, _ = spearmanr(squareform(d), pdist(coords))
        assert rho > 0.9

    def test_reproducible(self):
        rng = np.random.default_rng(3)
        d = squareform(pdist(rng.normal(size=(6, 3))))
        a = nmds(d, n_init=3, seed=9)
        b = nmds(d, n_init=3, seed=9)
        np.testing.assert_allclose(a[0], b[0])
        assert a[1] == b[1]

    def test_centred(self):
        rng = np.random.default_rng(4)
        d = squareform(pdist(rng.normal(size=(7, 2))))
        coords, _, _ = nmds(d, n_init=2, seed=0)
        np.testing.assert_allclose(coords.mean(axis=0), 0.0, atol=1e-9)


class TestOrdinate:
    """Test ordination of community matrices."""

    def test_result_frame(self, gradient_matrix):
        result = ordinate(gradient_matrix, OrdinationConfig(n_init=5))
        frame = result.to_frame()

        assert list(frame.columns) == ['site_id', 'NMDS1', 'NMDS2']
        assert list(frame['site_id']) == list(gradient_matrix.sites)
        assert result.grouping == 'country'
        assert np.all(np.isfinite(frame[['NMDS1', 'NMDS2']].values))
        assert 0 <= result.stress <= 1
        assert result.converged == (result.stress <= 0.2)

    def test_gradient_order_recovered(self, gradient_matrix):
        result = ordinate(gradient_matrix, OrdinationConfig(n_init=10))
        axis1 = result.coordinates['NMDS1'].values
        rho, _ = spearmanr(axis1, np.arange(len(axis1)))
        assert abs(rho) > 0.8
        assert result.converged

    def test_fewer_than_three_sites_undefined(self):
        m = CommunityMatrix([[1, 2], [3, 0]], ['Tropical', 'Temperate'], ['u1', 'u2'], 'zone')
        result = ordinate(m)
        assert not result.converged
        assert np.isnan(result.stress)
        assert result.status.startswith('undefined')
        assert result.coordinates.isna().all().all()
        assert list(result.coordinates.index) == ['Tropical', 'Temperate']

    def test_empty_sites_dropped(self, gradient_matrix):
        counts = np.vstack([gradient_matrix.counts, np.zeros((1, len(gradient_matrix.units)), dtype=int)])
        m = CommunityMatrix(counts, list(gradient_matrix.sites) + ['Empty'], gradient_matrix.units, 'country')
        result = ordinate(m, OrdinationConfig(n_init=3))
        assert 'Empty' not in result.coordinates.index
        assert len(result.coordinates) == len(gradient_matrix)

    def test_non_convergence_flagged(self, gradient_matrix):
        cfg = OrdinationConfig(n_init=1, max_iter=1, stress_tolerance=1e-9)
        result = ordinate(gradient_matrix, cfg)
        assert not result.converged
        assert result.status.startswith('not converged')
        assert np.all(np.isfinite(result.coordinates.values))

    def test_reproducible(self, gradient_matrix):
        cfg = OrdinationConfig(n_init=3, seed=8)
        a = ordinate(gradient_matrix, cfg)
        b = ordinate(gradient_matrix, cfg)
        np.testing.assert_allclose(a.coordinates.values, b.coordinates.values)
