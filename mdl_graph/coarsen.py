# mdl_graph/coarsen.py
from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, List
import numpy as np

from .core_utilities import undirected_csr

if TYPE_CHECKING:
    from .partition import PartitionState


@dataclass
class CoarsenedLevel:
    level: int                         # level index of the coarse graph
    groups: List[List[int]]            # parent-level nodes absorbed by each meta-node
    indptr: np.ndarray                 # CSR adjacency between distinct meta-nodes
    indices: np.ndarray
    data: np.ndarray
    self_loops: np.ndarray             # internal edge weight of each meta-node
    leaf_sizes: np.ndarray             # leaf nodes hidden under each meta-node

    @property
    def n_nodes(self) -> int:
        return len(self.groups)

    @property
    def n_edges(self) -> int:
        return int(self.indices.shape[0] // 2)


def build_coarse_level(state: "PartitionState") -> CoarsenedLevel:
    """
    Collapse every active community of ``state`` into one meta-node.

    Meta-node edges come straight from the community-to-community weight
    table; a community's internal edges become a self-loop whose weight is
    ``internal_weight_sum / 2``, so it still counts twice towards the degree.
    """
    community_ids = list(state.communities)
    index = {cid: k for k, cid in enumerate(community_ids)}
    M = len(community_ids)

    src, dst, wts = [], [], []
    self_loops = np.zeros(M, dtype=np.float64)
    leaf_sizes = np.zeros(M, dtype=np.int64)
    groups = []
    for k, cid in enumerate(community_ids):
        com = state.communities[cid]
        for adj, weight in com.neighbor_weight.items():
            target = index[adj]
            if target > k:
                src.append(k); dst.append(target); wts.append(weight)
        self_loops[k] = com.internal_weight_sum / 2.0
        leaf_sizes[k] = com.size
        groups.append(sorted(com.members))

    indptr, indices, data = undirected_csr(src, dst, wts, M)
    return CoarsenedLevel(
        level=state.level + 1,
        groups=groups,
        indptr=indptr,
        indices=indices,
        data=data,
        self_loops=self_loops,
        leaf_sizes=leaf_sizes,
    )
