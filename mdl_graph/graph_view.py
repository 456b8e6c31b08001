"""
GraphView - Read-only access to a host graph for community inference.
"""
import threading
from contextlib import contextmanager

import numpy as np
import pandas as pd
from scipy import sparse


class GraphView:
    """
    Read-only view of an undirected multigraph.

    Subclasses expose node identities, edge enumeration (parallel edges and
    several edge types allowed), edge weights and a read lock. The inference
    code only ever reads from a view and expects the caller to hold
    ``read_lock()`` for the whole run.
    """

    def node_ids(self):
        """Node identities, in the order that defines node indices."""
        raise NotImplementedError

    def node_count(self):
        return len(self.node_ids())

    def edge_arrays(self):
        """
        Return all edges as index arrays.

        Returns:
        --------
        sources : numpy.ndarray
            int64 node indices of the first endpoint
        targets : numpy.ndarray
            int64 node indices of the second endpoint
        weights : numpy.ndarray
            float64 edge weights
        edge_types : numpy.ndarray
            int64 edge type of each edge
        """
        raise NotImplementedError

    def edge_types(self):
        """Distinct edge types present in the view."""
        return np.unique(self.edge_arrays()[3])

    def get_edges(self, node_idx):
        """
        Get the edges incident to a node.

        Parameters:
        -----------
        node_idx : int
            Index of the node

        Returns:
        --------
        neighbors : numpy.ndarray
            Opposite endpoint of every incident edge (self-loops listed once)
        weights : numpy.ndarray
            Corresponding edge weights
        edge_types : numpy.ndarray
            Corresponding edge types
        """
        n_nodes = self.node_count()
        if node_idx < 0 or node_idx >= n_nodes:
            raise ValueError(f"Node index {node_idx} out of range [0, {n_nodes-1}]")

        sources, targets, weights, edge_types = self.edge_arrays()
        as_source = sources == node_idx
        as_target = (targets == node_idx) & ~as_source
        neighbors = np.concatenate([targets[as_source], sources[as_target]])
        return (neighbors,
                np.concatenate([weights[as_source], weights[as_target]]),
                np.concatenate([edge_types[as_source], edge_types[as_target]]))

    def get_edge_weight(self, i, j, edge_type=None):
        """Summed weight of all parallel edges between i and j (optionally of one type)."""
        neighbors, weights, edge_types = self.get_edges(i)
        mask = neighbors == j
        if edge_type is not None:
            mask &= edge_types == edge_type
        return float(weights[mask].sum())

    @contextmanager
    def read_lock(self):
        yield self


class EdgeArrayGraph(GraphView):
    """
    In-memory GraphView backed by numpy edge arrays.
    """

    def __init__(self, node_ids, sources, targets, weights=None, edge_types=None):
        """
        Initialize an EdgeArrayGraph.

        Parameters:
        -----------
        node_ids : array-like
            Identities of the nodes. Must be unique.
        sources, targets : array-like
            Endpoint identities of every edge (one entry per parallel edge).
        weights : array-like, optional
            Edge weights. If None, every edge has weight 1.
        edge_types : array-like, optional
            Integer edge type of every edge. If None, all edges have type 0.
        """
        self._node_ids = np.asarray(list(node_ids), dtype=object)
        self._index = {node: idx for idx, node in enumerate(self._node_ids)}
        if len(self._index) != len(self._node_ids):
            raise ValueError("node_ids must be unique")

        sources = list(sources)
        targets = list(targets)
        if len(sources) != len(targets):
            raise ValueError(f"sources and targets differ in length ({len(sources)} vs {len(targets)})")
        m = len(sources)

        self._sources = self._to_indices(sources)
        self._targets = self._to_indices(targets)

        if weights is None:
            self._weights = np.ones(m, dtype=np.float64)
        else:
            self._weights = np.asarray(weights, dtype=np.float64).reshape(-1)
            if self._weights.shape[0] != m:
                raise ValueError(f"Expected {m} weights, got {self._weights.shape[0]}")
            if not np.all(np.isfinite(self._weights)) or np.any(self._weights < 0):
                raise ValueError("Edge weights must be finite and non-negative")

        if edge_types is None:
            self._edge_types = np.zeros(m, dtype=np.int64)
        else:
            self._edge_types = np.asarray(edge_types, dtype=np.int64).reshape(-1)
            if self._edge_types.shape[0] != m:
                raise ValueError(f"Expected {m} edge types, got {self._edge_types.shape[0]}")

        self._lock = threading.RLock()

    def _to_indices(self, ids):
        out = np.empty(len(ids), dtype=np.int64)
        for k, node in enumerate(ids):
            try:
                out[k] = self._index[node]
            except KeyError:
                raise ValueError(f"Edge endpoint {node!r} is not a known node") from None
        return out

    @classmethod
    def from_sparse(cls, matrix, node_ids=None):
        """
        Build a view from a symmetric scipy sparse adjacency matrix.

        Only the upper triangle (diagonal included) is read; every stored
        entry becomes one edge whose weight is the stored value.
        """
        if matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Adjacency matrix must be square, got {matrix.shape}")
        n = matrix.shape[0]
        upper = sparse.triu(sparse.coo_matrix(matrix), k=0).tocoo()
        upper.eliminate_zeros()
        if node_ids is None:
            node_ids = np.arange(n)
        node_ids = list(node_ids)
        if len(node_ids) != n:
            raise ValueError(f"Expected {n} node ids, got {len(node_ids)}")
        return cls(node_ids,
                   [node_ids[i] for i in upper.row],
                   [node_ids[j] for j in upper.col],
                   weights=upper.data)

    @classmethod
    def from_edge_frame(cls, df, nodes=None, source='source', target='target',
                        weight=None, edge_type=None):
        """
        Build a view from a pandas edge table.

        Parameters:
        -----------
        df : pandas.DataFrame
            One row per edge
        nodes : array-like, optional
            Node identities. If None, the union of endpoints in order of appearance.
        source, target : str
            Endpoint columns
        weight : str, optional
            Weight column
        edge_type : str, optional
            Edge type column; non-integer categories are factorized
        """
        sources = df[source].tolist()
        targets = df[target].tolist()
        if nodes is None:
            nodes = pd.unique(pd.Series(sources + targets, dtype=object))
        weights = df[weight].to_numpy() if weight is not None else None
        types = None
        if edge_type is not None:
            types, _ = pd.factorize(df[edge_type])
        return cls(nodes, sources, targets, weights=weights, edge_types=types)

    def node_ids(self):
        return self._node_ids

    def node_count(self):
        return len(self._node_ids)

    def index_of(self, node):
        return self._index[node]

    def edge_arrays(self):
        return self._sources, self._targets, self._weights, self._edge_types

    @contextmanager
    def read_lock(self):
        with self._lock:
            yield self
