# mdl_graph/optimizer.py
from __future__ import annotations
import enum
import threading
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Literal, Optional

import numpy as np

from .core_utilities import PerformanceMonitor
from .level_map import LevelMap
from .objective import OBJECTIVES, ObjectiveEvaluator
from .partition import PartitionState


@dataclass
class InferenceConfig:
    seed: Optional[int] = None                 # seeds the sweep start offsets; None = fresh entropy
    objective: Literal["partition", "planted_partition"] = "planted_partition"
    tolerance: float = 1e-10                   # a move must lower the DL by more than this
    use_weight: bool = False                   # False: every parallel edge counts 1
    check_invariants: bool = False             # full consistency check after every move
    agglomerate: bool = True                   # community merge phase once node moves stall
    verbose: bool = False

    def __post_init__(self):
        if self.objective not in OBJECTIVES:
            raise ValueError(f"Unknown objective: {self.objective!r} (expected one of {OBJECTIVES})")
        if not self.tolerance >= 0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")
        if self.seed is not None and int(self.seed) < 0:
            raise ValueError(f"seed must be non-negative, got {self.seed}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SearchState(enum.Enum):
    SEARCHING = "searching"
    MERGING = "merging"
    COARSENING = "coarsening"
    CONVERGED = "converged"
    CANCELLED = "cancelled"


@dataclass
class SearchOutcome:
    state: SearchState
    n_moves: int        # moves applied over all levels
    n_levels: int       # coarsenings performed
    n_passes: int       # local passes over all levels
    n_merges: int = 0   # community merges applied over all levels


class LocalSearchOptimizer:
    """
    Multilevel greedy search over a PartitionState.

    Each level runs randomized local passes until a pass moves nothing, then
    (with ``agglomerate``) tries an agglomerative merge of whole communities
    and, if that lowered the description length, goes back to local passes.
    Once neither helps, the graph is coarsened if the level changed at all
    and the search repeats on the meta-nodes; otherwise it has converged.
    """

    def __init__(self, config: Optional[InferenceConfig] = None,
                 progress: Optional[Callable[[Dict[str, Any]], None]] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.config = config or InferenceConfig()
        self.evaluator = ObjectiveEvaluator(self.config.objective, self.config.tolerance)
        self.progress = progress
        self.monitor = monitor or PerformanceMonitor(enabled=True)
        self.search_state = SearchState.SEARCHING
        self._cancel = threading.Event()
        self._rng = None

    def cancel(self):
        """Request cancellation; honoured at the next node visit, pass or merge step."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self, state: PartitionState, level_map: LevelMap) -> SearchOutcome:
        """Optimize ``state`` in place, coarsening it (and ``level_map``) as needed."""
        self._rng = np.random.default_rng(self.config.seed)
        self.search_state = SearchState.SEARCHING
        n_moves = n_levels = n_passes = n_merges = 0
        level_changed = False

        if state.N == 0:
            self.search_state = SearchState.CONVERGED
            return SearchOutcome(self.search_state, 0, 0, 0)

        while True:
            if self.cancelled:
                self.search_state = SearchState.CANCELLED
                break

            if self.search_state is SearchState.SEARCHING:
                with self.monitor.timed_operation("Local search"):
                    result = self._search_level(state)
                if result is None:
                    self.search_state = SearchState.CANCELLED
                    break
                moves, passes = result
                n_moves += moves
                n_passes += passes
                level_changed = level_changed or moves > 0
                if self.config.agglomerate:
                    self.search_state = SearchState.MERGING
                elif level_changed:
                    self.search_state = SearchState.COARSENING
                else:
                    self.search_state = SearchState.CONVERGED
                    break

            elif self.search_state is SearchState.MERGING:
                with self.monitor.timed_operation("Agglomeration"):
                    result = self._agglomerate(state)
                if result is None:
                    self.search_state = SearchState.CANCELLED
                    break
                merges, moves = result
                if merges:
                    n_merges += merges
                    n_moves += moves
                    level_changed = True
                    if self.config.verbose:
                        print(f"[StatInf] level {state.level}: merged {merges:,} communities, "
                              f"{state.n_communities:,} left")
                    self.search_state = SearchState.SEARCHING
                elif level_changed:
                    self.search_state = SearchState.COARSENING
                else:
                    self.search_state = SearchState.CONVERGED
                    break

            elif self.search_state is SearchState.COARSENING:
                with self.monitor.timed_operation("Coarsening"):
                    coarse = state.coarsen(level_map)
                n_levels += 1
                level_changed = False
                if self.config.check_invariants:
                    state.check_consistency()
                if self.config.verbose:
                    print(f"[StatInf] Zoomed out to level {coarse.level}: "
                          f"{coarse.n_nodes:,} meta-nodes, {coarse.n_edges:,} meta-edges")
                self.search_state = SearchState.SEARCHING

        if self.config.verbose:
            print(f"[StatInf] Search {self.search_state.value}: {n_moves:,} moves, "
                  f"{n_merges:,} merges, {n_levels} coarsenings, "
                  f"{state.n_communities:,} communities")
        return SearchOutcome(self.search_state, n_moves, n_levels, n_passes, n_merges)

    def _search_level(self, state: PartitionState):
        """
        Local passes on the current level until one pass moves nothing.

        Returns (moves, passes), or None if cancelled.
        """
        n = state.N
        total_moves = 0
        passes = 0
        while True:
            if self.cancelled:
                return None
            start = int(self._rng.integers(n))
            pass_moves = 0
            for step in range(n):
                if self.cancelled:
                    return None
                node = (start + step) % n
                move = self.evaluator.best_move(state, node)
                if move is not None:
                    state.move_node(node, move.community)
                    pass_moves += 1
                    if self.config.check_invariants:
                        state.check_consistency()
            passes += 1
            total_moves += pass_moves
            self._report(state, passes, pass_moves)
            if pass_moves == 0:
                return total_moves, passes

    def _agglomerate(self, state: PartitionState):
        """
        Greedy agglomeration of the current communities.

        Repeatedly merges the cheapest pair of adjacent communities, even
        when every merge raises the description length, until no adjacent
        pair is left. The prefix of that merge sequence with the lowest
        description length is then applied to ``state`` by node moves. This
        gets past partitions, such as all singletons on dense blocks, that
        no single-node move can improve.

        Returns (merges, node moves) applied, or None if cancelled.
        """
        evaluator = self.evaluator
        degree = {cid: com.weight_sum for cid, com in state.communities.items()}
        inner = {cid: com.internal_weight_sum / 2.0 for cid, com in state.communities.items()}
        size = {cid: com.size for cid, com in state.communities.items()}
        count = {cid: len(com) for cid, com in state.communities.items()}
        links = {cid: {other: w for other, w in com.neighbor_weight.items() if other != cid}
                 for cid, com in state.communities.items()}

        B = state.n_communities
        N = state.n_leaves
        E = state.total_weight
        e_in = state.internal_total

        merges = []
        running = best = 0.0
        best_len = 0
        while True:
            if self.cancelled:
                return None
            pairs = [(a, b, w) for a, nbrs in links.items() for b, w in nbrs.items() if a < b]
            if not pairs:
                break
            first = [p[0] for p in pairs]
            second = [p[1] for p in pairs]
            between = np.array([p[2] for p in pairs], dtype=np.float64)
            deltas = evaluator.merge_deltas(
                B, N, E, e_in,
                [degree[c] for c in first], [degree[c] for c in second],
                [inner[c] for c in first], [inner[c] for c in second],
                between,
                [size[c] for c in first], [size[c] for c in second],
            )
            k = int(np.argmin(deltas))
            keep, gone = first[k], second[k]
            if count[gone] > count[keep]:
                keep, gone = gone, keep
            w = float(between[k])

            for other, x in links.pop(gone).items():
                if other == keep:
                    continue
                del links[other][gone]
                links[other][keep] = links[other].get(keep, 0.0) + x
                links[keep][other] = links[keep].get(other, 0.0) + x
            del links[keep][gone]
            degree[keep] += degree.pop(gone)
            inner[keep] += inner.pop(gone) + w
            size[keep] += size.pop(gone)
            count[keep] += count.pop(gone)
            B -= 1
            e_in += w

            merges.append((keep, gone))
            running += float(deltas[k])
            if running < best - evaluator.tolerance:
                best, best_len = running, len(merges)

        moves = 0
        for keep, gone in merges[:best_len]:
            for node in sorted(state.communities[gone].members):
                state.move_node(node, keep)
                moves += 1
            if self.config.check_invariants:
                state.check_consistency()
        return best_len, moves

    def _report(self, state, pass_index, pass_moves):
        event = {
            'level': state.level,
            'pass': pass_index,
            'moves': pass_moves,
            'n_nodes': state.N,
            'n_communities': state.n_communities,
        }
        if self.config.verbose:
            print(f"[StatInf] level {state.level} pass {pass_index}: "
                  f"{pass_moves:,} moves, {state.n_communities:,} communities")
        if self.progress is not None:
            self.progress(event)
