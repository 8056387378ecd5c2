"""
Shared-BIN Network Between Latitude Zones

Builds an undirected weighted graph whose vertices are zones and whose edge
weights count the BINs two zones share:

    vertex size  = |units(a)|
    edge weight  = |units(a) & units(b)|     for a != b

Each unordered zone pair appears once; there are no self-edges (the self
intersection is the vertex size).

Two edge representations are exposed and they differ in edge count:
- sparse: pairs sharing no BIN are omitted
- dense:  every pair of distinct zones, zero weights included

Example Usage:
    >>> from bolddiversity.network import build_shared_unit_network
    >>> graph = build_shared_unit_network({'Tropical': {'A', 'B', 'C'},
    ...                                    'Temperate': {'B', 'C', 'D'}})
    >>> graph.shared_unit_count('Tropical', 'Temperate')
    2
"""

from dataclasses import dataclass
from itertools import combinations
from typing import AbstractSet, Dict, FrozenSet, List, Mapping, Tuple
import logging

import networkx as nx
import pandas as pd

from .community import CommunityMatrix

logger = logging.getLogger(__name__)


UnitSets = Dict[str, FrozenSet[str]]


@dataclass(frozen=True)
class NetworkGraph:
    """
    Zones linked by shared BIN counts.

    Attributes
    ----------
    vertices : Dict[str, int]
        Zone -> number of unique BINs, in zone order
    edges : Dict[Tuple[str, str], int]
        (zone_a, zone_b) -> shared BIN count for every unordered pair of
        distinct zones (dense); zone_a precedes zone_b in vertex order
    """
    vertices: Dict[str, int]
    edges: Dict[Tuple[str, str], int]

    def shared_unit_count(self, a: str, b: str) -> int:
        """Shared BINs of two zones; symmetric, and the vertex size when a == b."""
        if a == b:
            return self.vertices[a]
        if (a, b) in self.edges:
            return self.edges[(a, b)]
        if (b, a) in self.edges:
            return self.edges[(b, a)]
        raise KeyError(f"No such zone pair: ({a}, {b})")

    def edge_list(self, dense: bool = False) -> List[Tuple[str, str, int]]:
        """Edges as (zone_a, zone_b, shared_unit_count); zero weights only if dense."""
        return [
            (a, b, weight)
            for (a, b), weight in self.edges.items()
            if dense or weight > 0
        ]

    def vertex_table(self) -> pd.DataFrame:
        return pd.DataFrame(
            list(self.vertices.items()), columns=['zone', 'unique_unit_count']
        )

    def edge_table(self, dense: bool = False) -> pd.DataFrame:
        return pd.DataFrame(
            self.edge_list(dense), columns=['zone_a', 'zone_b', 'shared_unit_count']
        )

    def to_networkx(self, dense: bool = False) -> nx.Graph:
        """
        Export as a networkx Graph for layout and drawing.

        Node attribute ``size`` is the unique BIN count; edge attribute
        ``weight`` the shared BIN count.
        """
        graph = nx.Graph()
        for zone, size in self.vertices.items():
            graph.add_node(zone, size=size)
        for a, b, weight in self.edge_list(dense):
            graph.add_edge(a, b, weight=weight)
        return graph


def shared_units(a: AbstractSet[str], b: AbstractSet[str]) -> int:
    return len(a & b)


def build_shared_unit_network(unit_sets: Mapping[str, AbstractSet[str]]) -> NetworkGraph:
    """
    Build the zone network from per-zone BIN sets.

    Parameters
    ----------
    unit_sets : Mapping[str, AbstractSet[str]]
        Zone -> set of BINs present; iteration order fixes vertex order

    Returns
    -------
    NetworkGraph
    """
    sets = {zone: frozenset(units) for zone, units in unit_sets.items()}

    vertices = {zone: len(units) for zone, units in sets.items()}
    edges = {
        (a, b): shared_units(sets[a], sets[b])
        for a, b in combinations(list(sets), 2)
    }

    n_sparse = sum(1 for w in edges.values() if w > 0)
    logger.info(
        f"Shared-BIN network: {len(vertices)} zones, {len(edges)} zone pairs "
        f"({n_sparse} with shared BINs)"
    )

    return NetworkGraph(vertices=vertices, edges=edges)


def network_from_matrix(matrix: CommunityMatrix) -> NetworkGraph:
    """Zone network from a zone community matrix (BINs with count > 0)."""
    return build_shared_unit_network(matrix.unit_sets())
