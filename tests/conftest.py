"""Shared test fixtures: small graphs with known community structure."""

from __future__ import annotations

import itertools

import pytest

from mdl_graph.graph_view import EdgeArrayGraph
from mdl_graph.partition import PartitionState


def _clique_edges(nodes):
    return list(itertools.combinations(nodes, 2))


@pytest.fixture
def triangle_graph() -> EdgeArrayGraph:
    """Triangle A-B-C plus an isolated node D."""
    edges = [("A", "B"), ("B", "C"), ("A", "C")]
    return EdgeArrayGraph(["A", "B", "C", "D"], [u for u, _ in edges], [v for _, v in edges])


@pytest.fixture
def two_cliques_graph() -> EdgeArrayGraph:
    """Two 5-cliques (0-4 and 5-9) joined by the single edge 4-9."""
    edges = _clique_edges(range(5)) + _clique_edges(range(5, 10)) + [(4, 9)]
    return EdgeArrayGraph(range(10), [u for u, _ in edges], [v for _, v in edges])


@pytest.fixture
def clique_pair():
    """Factory: two k-cliques (0..k-1 and k..2k-1) joined by the single edge (k-1)-(2k-1)."""

    def _build(k):
        edges = _clique_edges(range(k)) + _clique_edges(range(k, 2 * k)) + [(k - 1, 2 * k - 1)]
        return EdgeArrayGraph(range(2 * k), [u for u, _ in edges], [v for _, v in edges])

    return _build


@pytest.fixture
def edgeless_graph() -> EdgeArrayGraph:
    return EdgeArrayGraph(["a", "b", "c", "d", "e"], [], [])


@pytest.fixture
def empty_graph() -> EdgeArrayGraph:
    return EdgeArrayGraph([], [], [])


@pytest.fixture
def multigraph() -> EdgeArrayGraph:
    """A-B three times over two edge types, a self-loop on A, and B-C."""
    return EdgeArrayGraph(
        ["A", "B", "C"],
        ["A", "A", "B", "A", "B"],
        ["B", "B", "A", "A", "C"],
        weights=[2, 1, 1, 5, 1],
        edge_types=[0, 1, 0, 0, 1],
    )


@pytest.fixture
def triangle_state(triangle_graph) -> PartitionState:
    return PartitionState.from_graph(triangle_graph)


@pytest.fixture
def cliques_state(two_cliques_graph) -> PartitionState:
    return PartitionState.from_graph(two_cliques_graph)


@pytest.fixture
def canonical():
    """Snapshot of all bookkeeping tables with communities named by their member sets."""

    def _snapshot(state: PartitionState):
        name = {cid: frozenset(com.members) for cid, com in state.communities.items()}

        def rename(table):
            return {name[k]: v for k, v in table.items()}

        return {
            'assignment': tuple(name[c] for c in state.assignment),
            'node_weight': tuple(frozenset(rename(t).items()) for t in state.node_community_weight),
            'node_count': tuple(frozenset(rename(t).items()) for t in state.node_community_count),
            'communities': {
                name[cid]: (com.weight_sum, com.internal_weight_sum, com.size,
                            rename(com.neighbor_weight), rename(com.neighbor_count))
                for cid, com in state.communities.items()
            },
            'internal_total': state.internal_total,
        }

    return _snapshot
