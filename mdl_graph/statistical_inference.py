"""
StatisticalInferenceClustering - MDL community detection on a GraphView.

Greedy Louvain-style local search that minimises the description length of
an assortative stochastic block model instead of maximising modularity.

References:
    Lizhi Zhang, Tiago P. Peixoto, "Statistical inference of assortative
    community structures", Phys. Rev. Research 2, 043271 (2020).
    Tiago P. Peixoto, "Bayesian stochastic blockmodeling", in Advances in
    Network Clustering and Blockmodeling (Wiley, 2019).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from .core_utilities import PerformanceMonitor
from .level_map import LevelMap
from .optimizer import InferenceConfig, LocalSearchOptimizer, SearchState
from .partition import PartitionState
from .partition_analyzer import PartitionAnalyzer

STAT_INF_CLASS = "stat_inf_class"

REFERENCES = [
    "Lizhi Zhang, Tiago P. Peixoto, Statistical inference of assortative community structures, "
    "Phys. Rev. Research 2 043271 (2020), https://dx.doi.org/10.1103/PhysRevResearch.2.043271",
    "Tiago P. Peixoto, Bayesian stochastic blockmodeling, in Advances in Network Clustering and "
    "Blockmodeling (Wiley, 2019), https://dx.doi.org/10.1002/9781119483298.ch11",
]


@dataclass
class InferenceResult:
    node_ids: np.ndarray
    labels: Optional[np.ndarray]               # None when the run was cancelled
    description_length: Optional[float]
    n_communities: int
    n_levels: int = 0
    n_moves: int = 0
    n_merges: int = 0
    cancelled: bool = False
    config: Dict[str, Any] = field(default_factory=dict)

    def as_series(self, name=STAT_INF_CLASS) -> pd.Series:
        if self.labels is None:
            raise ValueError("Cancelled run has no committed labels")
        return pd.Series(self.labels, index=pd.Index(self.node_ids), name=name)

    def size_distribution(self) -> pd.Series:
        """Community size -> number of communities of that size."""
        if self.labels is None:
            raise ValueError("Cancelled run has no committed labels")
        return PartitionAnalyzer(verbose=False).size_distribution(self.labels)


def write_labels(node_table, node_ids, labels, column=STAT_INF_CLASS):
    """
    Store community labels in a node table, creating the column if absent.

    Parameters:
    -----------
    node_table : pandas.DataFrame or None
        Node attribute table indexed by node id. If None a new one is created.
    node_ids : array-like
        Nodes to label
    labels : array-like
        One integer label per node

    Returns:
    --------
    pandas.DataFrame
        The (possibly new) node table
    """
    if node_table is None:
        node_table = pd.DataFrame(index=pd.Index(node_ids))
    if column not in node_table.columns:
        node_table[column] = 0
    if len(node_ids):
        node_table.loc[list(node_ids), column] = np.asarray(labels, dtype=np.int64)
    node_table[column] = node_table[column].astype(np.int64)
    return node_table


class StatisticalInferenceClustering:
    """
    Community detection by minimum description length.

    Example:
    --------
    >>> clusterer = StatisticalInferenceClustering(InferenceConfig(seed=0))
    >>> result = clusterer.execute(EdgeArrayGraph.from_edge_frame(edges))
    >>> result.n_communities, result.description_length
    """

    def __init__(self, config: Optional[InferenceConfig] = None, progress=None):
        """
        Parameters:
        -----------
        config : InferenceConfig, optional
            Run settings. Defaults are used if None.
        progress : callable, optional
            Called with a dict after every local pass (level, pass, moves,
            n_nodes, n_communities).
        """
        self.config = config or InferenceConfig()
        self.progress = progress
        self.monitor = PerformanceMonitor(enabled=True)
        self.result = None
        self._optimizer = None
        self.node_table = None
        self._cancel_requested = False

    def cancel(self):
        """Ask a running ``execute`` to stop at its next poll point."""
        self._cancel_requested = True
        if self._optimizer is not None:
            self._optimizer.cancel()
        return True

    def execute(self, graph, node_table=None):
        """
        Partition ``graph`` and write the labels to ``node_table``.

        Parameters:
        -----------
        graph : GraphView
            The graph to partition; its read lock is held for the whole run.
        node_table : pandas.DataFrame, optional
            Node attribute sink indexed by node id. Labels go to the
            ``stat_inf_class`` column. Untouched if the run is cancelled.

        Returns:
        --------
        InferenceResult
        """
        self._cancel_requested = False
        self.monitor.reset()
        verbose = self.config.verbose

        with graph.read_lock():
            with self.monitor.timed_operation("Build partition state"):
                state = PartitionState.from_graph(graph, use_weight=self.config.use_weight)
            node_ids = np.asarray(graph.node_ids())

            if verbose:
                print(f"[StatInf] {state.N:,} nodes, {state.total_weight:,.0f} edges, "
                      f"objective={self.config.objective}")

            if state.N == 0:
                self.result = InferenceResult(node_ids, np.zeros(0, dtype=np.int64), 0.0, 0,
                                              config=self.config.to_dict())
                self.node_table = write_labels(node_table, node_ids, self.result.labels)
                return self.result

            level_map = LevelMap.identity(state.N)
            optimizer = LocalSearchOptimizer(self.config, progress=self.progress, monitor=self.monitor)
            self._optimizer = optimizer
            if self._cancel_requested:
                optimizer.cancel()
            try:
                outcome = optimizer.run(state, level_map)
            finally:
                self._optimizer = None

            if outcome.state is SearchState.CANCELLED:
                if verbose:
                    print("[StatInf] Cancelled, no result committed")
                self.result = InferenceResult(node_ids, None, None, state.n_communities,
                                              n_levels=outcome.n_levels, n_moves=outcome.n_moves,
                                              n_merges=outcome.n_merges, cancelled=True,
                                              config=self.config.to_dict())
                return self.result

            with self.monitor.timed_operation("Project labels"):
                labels = level_map.project(state.groups())
                description_length = optimizer.evaluator.description_length(state)

            self.result = InferenceResult(node_ids, labels, description_length, state.n_communities,
                                          n_levels=outcome.n_levels, n_moves=outcome.n_moves,
                                          n_merges=outcome.n_merges, config=self.config.to_dict())
            self.node_table = write_labels(node_table, node_ids, labels)

        if verbose:
            print(f"[StatInf] {self.result.n_communities:,} communities, "
                  f"description length {description_length:.3f}")
            self.monitor.print_timing_summary()
        return self.result

    def get_description_length(self):
        return self.result.description_length if self.result is not None else 0.0

    def get_report(self) -> Dict[str, Any]:
        """Summary of the last run: description length, community count, sizes."""
        if self.result is None:
            raise ValueError("No run to report on; call execute() first")
        report = {
            'description_length': self.result.description_length,
            'n_communities': self.result.n_communities,
            'n_levels': self.result.n_levels,
            'n_merges': self.result.n_merges,
            'cancelled': self.result.cancelled,
            'objective': self.config.objective,
            'references': list(REFERENCES),
        }
        if not self.result.cancelled:
            report['size_distribution'] = self.result.size_distribution().to_dict()
        return report
