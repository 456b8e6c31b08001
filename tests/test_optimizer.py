"""Tests for mdl_graph/optimizer.py: multilevel local search."""

from __future__ import annotations

import numpy as np
import pytest

from mdl_graph.level_map import LevelMap
from mdl_graph.objective import ObjectiveEvaluator
from mdl_graph.optimizer import InferenceConfig, LocalSearchOptimizer, SearchState
from mdl_graph.partition import PartitionState


def _run(graph, **config):
    state = PartitionState.from_graph(graph)
    level_map = LevelMap.identity(state.N)
    optimizer = LocalSearchOptimizer(InferenceConfig(**config))
    outcome = optimizer.run(state, level_map)
    return state, level_map, optimizer, outcome


def _blocks(labels):
    """Partition as a set of frozensets of node indices, independent of label values."""
    groups = {}
    for node, label in enumerate(labels):
        groups.setdefault(int(label), set()).add(node)
    return {frozenset(g) for g in groups.values()}


class TestInferenceConfig:
    def test_defaults(self):
        config = InferenceConfig()
        assert config.objective == "planted_partition"
        assert config.tolerance == 1e-10
        assert config.seed is None
        assert config.to_dict()['use_weight'] is False

    @pytest.mark.parametrize("kwargs", [
        {'objective': 'modularity'},
        {'tolerance': -1.0},
        {'tolerance': float('nan')},
        {'seed': -3},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            InferenceConfig(**kwargs)


class TestLocalSearch:
    def test_triangle_groups_and_isolated_node(self, triangle_graph):
        state, level_map, optimizer, outcome = _run(triangle_graph, seed=0)
        assert outcome.state is SearchState.CONVERGED
        labels = level_map.project(state.groups())
        assert _blocks(labels) == {frozenset({0, 1, 2}), frozenset({3})}

        singletons = PartitionState.from_graph(triangle_graph)
        assert (optimizer.evaluator.description_length(state)
                < optimizer.evaluator.description_length(singletons))

    def test_edgeless_graph_stays_singletons(self, edgeless_graph):
        state, level_map, _, outcome = _run(edgeless_graph, seed=0)
        assert outcome.state is SearchState.CONVERGED
        assert outcome.n_moves == 0
        assert outcome.n_levels == 0
        assert outcome.n_passes == 1
        assert len(_blocks(level_map.project(state.groups()))) == 5

    def test_empty_graph_converges_immediately(self, empty_graph):
        state, level_map, _, outcome = _run(empty_graph)
        assert outcome.state is SearchState.CONVERGED
        assert outcome.n_passes == 0
        assert level_map.project(state.groups()).size == 0

    @pytest.mark.parametrize("k", [8, 10])
    def test_two_cliques_recovered(self, clique_pair, k):
        state, level_map, optimizer, outcome = _run(clique_pair(k), seed=1)
        assert outcome.state is SearchState.CONVERGED
        labels = level_map.project(state.groups())
        assert _blocks(labels) == {frozenset(range(k)), frozenset(range(k, 2 * k))}
        assert outcome.n_merges > 0

        singletons = PartitionState.from_graph(clique_pair(k))
        assert (optimizer.evaluator.description_length(state)
                < optimizer.evaluator.description_length(singletons))

    def test_dense_blocks_stall_without_agglomeration(self, clique_pair):
        # every single-node merge of two singletons costs description length here
        state, _, _, outcome = _run(clique_pair(10), seed=1, agglomerate=False)
        assert outcome.n_moves == 0
        assert state.n_communities == 20

    def test_agglomeration_never_increases_description_length(self, clique_pair):
        graph = clique_pair(8)
        state = PartitionState.from_graph(graph)
        optimizer = LocalSearchOptimizer(InferenceConfig(seed=0))
        before = optimizer.evaluator.description_length(state)
        merges, moves = optimizer._agglomerate(state)
        assert merges > 0 and moves >= merges
        assert optimizer.evaluator.description_length(state) < before
        state.check_consistency()

    def test_agglomeration_without_edges_does_nothing(self, edgeless_graph):
        state = PartitionState.from_graph(edgeless_graph)
        assert LocalSearchOptimizer()._agglomerate(state) == (0, 0)

    def test_small_cliques_end_in_one_block(self, two_cliques_graph):
        # two 5-cliques: a single block encodes shorter than the split
        state, level_map, _, outcome = _run(two_cliques_graph, seed=1)
        assert outcome.state is SearchState.CONVERGED
        assert _blocks(level_map.project(state.groups())) == {frozenset(range(10))}

    def test_same_seed_same_result(self, two_cliques_graph, clique_pair):
        for graph in (two_cliques_graph, clique_pair(8)):
            first = _run(graph, seed=42)
            second = _run(graph, seed=42)
            np.testing.assert_array_equal(first[1].project(first[0].groups()),
                                          second[1].project(second[0].groups()))
            assert first[3].n_moves == second[3].n_moves
            assert (first[2].evaluator.description_length(first[0])
                    == second[2].evaluator.description_length(second[0]))

    def test_converged_result_is_a_fixed_point(self, two_cliques_graph):
        state, level_map, optimizer, _ = _run(two_cliques_graph, seed=5)
        labels = level_map.project(state.groups())
        dl = optimizer.evaluator.description_length(state)

        state.coarsen(level_map)
        outcome = LocalSearchOptimizer(InferenceConfig(seed=9)).run(state, level_map)
        assert outcome.n_moves == 0
        np.testing.assert_array_equal(level_map.project(state.groups()), labels)
        assert optimizer.evaluator.description_length(state) == pytest.approx(dl)

    def test_no_improving_move_left(self, two_cliques_graph):
        state, _, optimizer, _ = _run(two_cliques_graph, seed=3)
        assert all(optimizer.evaluator.best_move(state, n) is None for n in range(state.N))

    @pytest.mark.parametrize("objective", ["partition", "planted_partition"])
    def test_invariant_checks_pass(self, two_cliques_graph, objective):
        state, _, _, outcome = _run(two_cliques_graph, seed=7, objective=objective,
                                    check_invariants=True)
        assert outcome.state is SearchState.CONVERGED
        state.check_consistency()

    def test_coarsening_preserves_leaf_count(self, two_cliques_graph):
        state, level_map, _, outcome = _run(two_cliques_graph, seed=2)
        assert outcome.n_levels >= 1
        assert state.n_leaves == 10
        assert level_map.n_leaves == 10
        assert int(state.leaf_sizes.sum()) == 10

    def test_description_length_never_increases(self, two_cliques_graph):
        state = PartitionState.from_graph(two_cliques_graph)
        evaluator = ObjectiveEvaluator()
        seen = [evaluator.description_length(state)]

        def record(event):
            seen.append(evaluator.description_length(state))

        LocalSearchOptimizer(InferenceConfig(seed=4), progress=record).run(
            state, LevelMap.identity(state.N))
        assert all(b <= a + 1e-9 for a, b in zip(seen, seen[1:]))


class TestProgressAndCancellation:
    def test_progress_events(self, triangle_graph):
        events = []
        state = PartitionState.from_graph(triangle_graph)
        LocalSearchOptimizer(InferenceConfig(seed=0), progress=events.append).run(
            state, LevelMap.identity(state.N))
        assert events
        assert set(events[0]) == {'level', 'pass', 'moves', 'n_nodes', 'n_communities'}
        assert events[0]['level'] == 0 and events[0]['pass'] == 1
        assert events[-1]['moves'] == 0

    def test_cancel_before_run(self, triangle_graph, canonical):
        state = PartitionState.from_graph(triangle_graph)
        before = canonical(state)
        optimizer = LocalSearchOptimizer(InferenceConfig(seed=0))
        optimizer.cancel()
        outcome = optimizer.run(state, LevelMap.identity(state.N))
        assert outcome.state is SearchState.CANCELLED
        assert outcome.n_moves == 0
        assert canonical(state) == before

    def test_cancel_from_progress_callback(self, two_cliques_graph):
        state = PartitionState.from_graph(two_cliques_graph)
        events = []

        def stop_after_first_pass(event):
            events.append(event)
            optimizer.cancel()

        optimizer = LocalSearchOptimizer(InferenceConfig(seed=0), progress=stop_after_first_pass)
        outcome = optimizer.run(state, LevelMap.identity(state.N))
        assert outcome.state is SearchState.CANCELLED
        assert optimizer.search_state is SearchState.CANCELLED
        assert len(events) == 1
        assert outcome.n_levels == 0
        state.check_consistency()

    def test_verbose_output(self, triangle_graph, capsys):
        _run(triangle_graph, seed=0, verbose=True)
        out = capsys.readouterr().out
        assert "[StatInf] level 0 pass 1" in out
        assert "converged" in out
