"""
Unit tests for bolddiversity.network module

Tests cover:
1. Shared unit counts, symmetry and vertex sizes
2. Sparse and dense edge representations
3. Tables and networkx export
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from bolddiversity.community import CommunityMatrix
from bolddiversity.network import build_shared_unit_network, network_from_matrix


@pytest.fixture
def zone_sets():
    return {
        'Tropical': {'A', 'B', 'C'},
        'Temperate': {'B', 'C', 'D'},
        'Extreme': {'E'},
    }


class TestSharedUnitNetwork:
    """Test the zone network."""

    def test_shared_counts(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        assert graph.shared_unit_count('Tropical', 'Temperate') == 2
        assert graph.vertices == {'Tropical': 3, 'Temperate': 3, 'Extreme': 1}

    def test_symmetric(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        for a in zone_sets:
            for b in zone_sets:
                assert graph.shared_unit_count(a, b) == graph.shared_unit_count(b, a)

    def test_self_is_vertex_size(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        assert graph.shared_unit_count('Tropical', 'Tropical') == 3

    def test_unknown_zone(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        with pytest.raises(KeyError):
            graph.shared_unit_count('Tropical', 'Lunar')

    def test_sparse_and_dense(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        sparse = graph.edge_list()
        dense = graph.edge_list(dense=True)

        assert sparse == [('Tropical', 'Temperate', 2)]
        assert len(dense) == 3
        assert ('Tropical', 'Extreme', 0) in dense
        # each unordered pair once, no self-edges
        assert len({frozenset(e[:2]) for e in dense}) == 3
        assert all(a != b for a, b, _ in dense)

    def test_tables(self, zone_sets):
        graph = build_shared_unit_network(zone_sets)
        vertices = graph.vertex_table()
        assert list(vertices.columns) == ['zone', 'unique_unit_count']
        assert list(vertices['zone']) == ['Tropical', 'Temperate', 'Extreme']

        edges = graph.edge_table(dense=True)
        assert list(edges.columns) == ['zone_a', 'zone_b', 'shared_unit_count']
        assert len(edges) == 3
        assert len(graph.edge_table()) == 1

    def test_to_networkx(self, zone_sets):
        g = build_shared_unit_network(zone_sets).to_networkx()
        assert g.number_of_nodes() == 3
        assert g.number_of_edges() == 1
        assert g.nodes['Tropical']['size'] == 3
        assert g['Tropical']['Temperate']['weight'] == 2

        dense = build_shared_unit_network(zone_sets).to_networkx(dense=True)
        assert dense.number_of_edges() == 3

    def test_single_zone(self):
        graph = build_shared_unit_network({'Tropical': {'A'}})
        assert graph.edges == {}
        assert graph.vertices == {'Tropical': 1}


class TestNetworkFromMatrix:
    """Test building the network from a zone matrix."""

    def test_from_matrix(self):
        m = CommunityMatrix(
            [[1, 2, 1, 0], [0, 4, 1, 3]],
            ['Tropical', 'Temperate'],
            ['A', 'B', 'C', 'D'],
            'zone',
        )
        graph = network_from_matrix(m)
        assert graph.vertices == {'Tropical': 3, 'Temperate': 3}
        assert graph.shared_unit_count('Temperate', 'Tropical') == 2
