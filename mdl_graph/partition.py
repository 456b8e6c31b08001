"""
PartitionState - Incremental community bookkeeping for one optimisation level.

The state owns the current level's topology, the node -> community
assignment and four tables that are kept exactly in sync under single-node
moves:

* ``node_community_weight[n][c]`` / ``node_community_count[n][c]``: weight and
  number of adjacency entries from node ``n`` into community ``c``;
* ``Community.neighbor_weight[d]`` / ``Community.neighbor_count[d]``: the same
  aggregated over all members of a community, towards community ``d``
  (including ``d`` being the community itself).

Communities live in an arena (``communities``, keyed by integer id); nodes and
tables only ever refer to them by id.
"""
from __future__ import annotations

from typing import Dict, List, Optional

import numpy as np

from .coarsen import CoarsenedLevel, build_coarse_level
from .core_utilities import InconsistentPartitionError, undirected_csr
from .level_map import LevelMap


class Community:
    """A block of current-level nodes and its aggregate counters."""

    def __init__(self, community_id: int):
        self.id = community_id
        self.members = set()
        self.weight_sum = 0.0           # e_r: weighted degree of all members
        self.internal_weight_sum = 0.0  # e_rr: internal edges, counted twice
        self.size = 0                   # leaf nodes hidden under the members
        self.neighbor_weight: Dict[int, float] = {}
        self.neighbor_count: Dict[int, int] = {}

    def __len__(self):
        return len(self.members)

    def __repr__(self):
        return (f"Community(id={self.id}, members={sorted(self.members)}, "
                f"e_r={self.weight_sum}, e_rr={self.internal_weight_sum})")

    def add(self, node: int, weight: float, leaf_size: int) -> None:
        self.members.add(node)
        self.weight_sum += weight
        self.size += leaf_size

    def remove(self, node: int, weight: float, leaf_size: int) -> bool:
        """Remove a member; return True when the community is now empty."""
        self.members.remove(node)
        self.weight_sum -= weight
        self.size -= leaf_size
        return not self.members


def _increment(weights, counts, key, w):
    weights[key] = weights.get(key, 0.0) + w
    counts[key] = counts.get(key, 0) + 1


def _decrement(weights, counts, key, w):
    count = counts.get(key, 0) - 1
    if count < 0:
        raise InconsistentPartitionError(f"Edge count towards community {key} would go negative")
    if count == 0:
        del weights[key]
        del counts[key]
    else:
        weights[key] -= w
        counts[key] = count


class PartitionState:
    """
    Current-level graph plus its partition into communities.

    Built once per run (``from_graph``), then mutated in place by
    ``move_node`` and ``coarsen``.
    """

    def __init__(self, indptr, indices, data, self_loops=None, leaf_sizes=None, node_ids=None):
        """
        Initialize a PartitionState with every node in its own community.

        Parameters:
        -----------
        indptr, indices, data : numpy.ndarray
            CSR adjacency between distinct nodes; every undirected pair is
            stored once from each endpoint.
        self_loops : numpy.ndarray, optional
            Self-loop edge weight of every node. Zeros if None.
        leaf_sizes : numpy.ndarray, optional
            Number of original nodes each node stands for. Ones if None.
        node_ids : array-like, optional
            Identities of the level-0 nodes.
        """
        self.node_ids = node_ids
        self.level = 0
        self._next_id = 0
        self._load_level(indptr, indices, data, self_loops, leaf_sizes)
        self.n_leaves = int(self.leaf_sizes.sum())

    @classmethod
    def from_graph(cls, graph, use_weight=False):
        """
        Snapshot a GraphView into a level-0 state.

        Parallel edges of every type between the same pair of nodes are
        merged into one entry. Self-loops are ignored. With
        ``use_weight=False`` each edge counts 1; otherwise the (integer)
        edge weights are summed.
        """
        n = graph.node_count()
        sources, targets, weights, _ = graph.edge_arrays()
        sources = np.asarray(sources, dtype=np.int64)
        targets = np.asarray(targets, dtype=np.int64)

        if use_weight:
            weights = np.asarray(weights, dtype=np.float64)
            if np.any(weights < 0) or np.any(weights != np.round(weights)):
                raise ValueError("Weighted inference requires non-negative integer edge weights")
        else:
            weights = np.ones(sources.shape[0], dtype=np.float64)

        indptr, indices, data = undirected_csr(sources, targets, weights, n)
        return cls(indptr, indices, data, node_ids=graph.node_ids())

    # ------------------------------------------------------------------
    # Level (re)construction
    # ------------------------------------------------------------------

    def _load_level(self, indptr, indices, data, self_loops, leaf_sizes):
        n = len(indptr) - 1
        self.N = n
        self.topology = [
            list(zip(indices[indptr[i]:indptr[i + 1]].tolist(),
                     data[indptr[i]:indptr[i + 1]].tolist()))
            for i in range(n)
        ]
        self.self_loops = (np.zeros(n, dtype=np.float64) if self_loops is None
                           else np.asarray(self_loops, dtype=np.float64))
        self.leaf_sizes = (np.ones(n, dtype=np.int64) if leaf_sizes is None
                           else np.asarray(leaf_sizes, dtype=np.int64))

        rows = np.repeat(np.arange(n, dtype=np.int64), np.diff(indptr))
        row_sums = np.bincount(rows, weights=data, minlength=n)
        self.weights = row_sums.astype(np.float64) + 2.0 * self.self_loops
        self.total_weight = float(data.sum()) / 2.0 + float(self.self_loops.sum())
        self._seed_singletons()

    def _new_community(self) -> Community:
        com = Community(self._next_id)
        self._next_id += 1
        self.communities[com.id] = com
        return com

    def _seed_singletons(self):
        n = self.N
        self.communities: Dict[int, Community] = {}
        self.assignment: List[int] = [0] * n
        self.node_community_weight: List[Dict[int, float]] = [{} for _ in range(n)]
        self.node_community_count: List[Dict[int, int]] = [{} for _ in range(n)]
        self.internal_total = float(self.self_loops.sum())  # e_in

        for node in range(n):
            com = self._new_community()
            com.add(node, float(self.weights[node]), int(self.leaf_sizes[node]))
            com.internal_weight_sum = 2.0 * float(self.self_loops[node])
            self.assignment[node] = com.id

        for node in range(n):
            own = self.communities[self.assignment[node]]
            for neighbor, w in self.topology[node]:
                adj = self.assignment[neighbor]
                _increment(self.node_community_weight[node], self.node_community_count[node], adj, w)
                _increment(own.neighbor_weight, own.neighbor_count, adj, w)

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def move_node(self, node: int, target: Optional[int] = None) -> int:
        """
        Move ``node`` into community ``target``.

        With ``target=None`` the node is moved into a fresh, empty community.
        All four bookkeeping tables are updated in O(degree(node)). Returns
        the id of the community the node ends up in.
        """
        if node < 0 or node >= self.N:
            raise ValueError(f"Node index {node} out of range [0, {self.N-1}]")
        current = self.assignment[node]
        if target == current:
            return current
        if target is None:
            target = self._new_community().id
        elif target not in self.communities:
            raise ValueError(f"Unknown community id {target}")

        self._remove_from_community(node)
        self._add_to_community(node, target)
        return target

    def _remove_from_community(self, node):
        cid = self.assignment[node]
        com = self.communities[cid]
        loop = float(self.self_loops[node])
        w_in = self.node_community_weight[node].get(cid, 0.0)
        com.internal_weight_sum -= 2.0 * (w_in + loop)
        self.internal_total -= w_in + loop

        for neighbor, w in self.topology[node]:
            adj = self.assignment[neighbor]
            _decrement(self.node_community_weight[neighbor], self.node_community_count[neighbor], cid, w)
            _decrement(com.neighbor_weight, com.neighbor_count, adj, w)
            adj_com = self.communities[adj]
            _decrement(adj_com.neighbor_weight, adj_com.neighbor_count, cid, w)

        if com.remove(node, float(self.weights[node]), int(self.leaf_sizes[node])):
            if com.neighbor_count or abs(com.internal_weight_sum) > 1e-9:
                raise InconsistentPartitionError(f"Emptied community {cid} still holds edges")
            del self.communities[cid]

    def _add_to_community(self, node, cid):
        com = self.communities[cid]
        loop = float(self.self_loops[node])
        w_in = self.node_community_weight[node].get(cid, 0.0)
        com.internal_weight_sum += 2.0 * (w_in + loop)
        self.internal_total += w_in + loop

        for neighbor, w in self.topology[node]:
            adj = self.assignment[neighbor]
            _increment(self.node_community_weight[neighbor], self.node_community_count[neighbor], cid, w)
            _increment(com.neighbor_weight, com.neighbor_count, adj, w)
            adj_com = self.communities[adj]
            _increment(adj_com.neighbor_weight, adj_com.neighbor_count, cid, w)

        com.add(node, float(self.weights[node]), int(self.leaf_sizes[node]))
        self.assignment[node] = cid

    # ------------------------------------------------------------------
    # Coarsening
    # ------------------------------------------------------------------

    def coarsen(self, level_map: Optional[LevelMap] = None) -> CoarsenedLevel:
        """
        Zoom out: every community becomes a singleton meta-node.

        The level map (if given) is updated so every meta-node hides the
        union of the leaves of the nodes it absorbed.
        """
        coarse = build_coarse_level(self)
        if level_map is not None:
            level_map.coarsen(coarse.groups)
        self._load_level(coarse.indptr, coarse.indices, coarse.data,
                         coarse.self_loops, coarse.leaf_sizes)
        self.level = coarse.level
        return coarse

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def n_communities(self) -> int:
        return len(self.communities)

    def groups(self) -> List[List[int]]:
        """Members of every active community, in arena order."""
        return [sorted(com.members) for com in self.communities.values()]

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def check_consistency(self, atol=1e-9) -> None:
        """
        Recompute every counter from scratch and compare with the
        incrementally maintained values.

        Raises:
        -------
        InconsistentPartitionError
            On the first mismatch found.
        """
        def fail(msg):
            raise InconsistentPartitionError(f"[level {self.level}] {msg}")

        if sum(len(com) for com in self.communities.values()) != self.N:
            fail("member counts do not add up to the number of nodes")

        node_w = [{} for _ in range(self.N)]
        node_c = [{} for _ in range(self.N)]
        com_w = {cid: {} for cid in self.communities}
        com_c = {cid: {} for cid in self.communities}
        for node in range(self.N):
            cid = self.assignment[node]
            if cid not in self.communities or node not in self.communities[cid].members:
                fail(f"node {node} is not a member of its community {cid}")
            for neighbor, w in self.topology[node]:
                adj = self.assignment[neighbor]
                _increment(node_w[node], node_c[node], adj, w)
                _increment(com_w[cid], com_c[cid], adj, w)

        for node in range(self.N):
            if node_c[node] != self.node_community_count[node]:
                fail(f"node {node}: edge counts {self.node_community_count[node]} != {node_c[node]}")
            for key, w in node_w[node].items():
                if abs(self.node_community_weight[node][key] - w) > atol:
                    fail(f"node {node}: weight towards {key} drifted")

        internal_total = 0.0
        for cid, com in self.communities.items():
            if not com.members:
                fail(f"community {cid} is empty but still active")
            members = list(com.members)
            if abs(com.weight_sum - float(self.weights[members].sum())) > atol:
                fail(f"community {cid}: weight_sum drifted")
            if com.size != int(self.leaf_sizes[members].sum()):
                fail(f"community {cid}: leaf size drifted")
            if com_c[cid] != com.neighbor_count:
                fail(f"community {cid}: neighbor counts {com.neighbor_count} != {com_c[cid]}")
            for key, w in com_w[cid].items():
                if abs(com.neighbor_weight[key] - w) > atol:
                    fail(f"community {cid}: weight towards {key} drifted")
                if abs(self.communities[key].neighbor_weight.get(cid, 0.0) - w) > atol:
                    fail(f"communities {cid} and {key}: asymmetric weights")
            expected_internal = com_w[cid].get(cid, 0.0) + 2.0 * float(self.self_loops[members].sum())
            if abs(com.internal_weight_sum - expected_internal) > atol or com.internal_weight_sum < -atol:
                fail(f"community {cid}: internal_weight_sum drifted")
            internal_total += com.internal_weight_sum / 2.0

        if abs(internal_total - self.internal_total) > atol:
            fail("total internal weight drifted")
