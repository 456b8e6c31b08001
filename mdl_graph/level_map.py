# mdl_graph/level_map.py
from __future__ import annotations

from typing import Iterable, List, Sequence

import numpy as np


class LevelMap:
    """
    Tracks which original leaf nodes every current-level node stands for.

    At level 0 node ``i`` hides exactly ``{i}``. After each coarsening the
    meta-node built from a community hides the union of its members' sets.
    """

    def __init__(self, hidden: List[frozenset]):
        self.hidden = hidden
        self.level = 0

    @classmethod
    def identity(cls, n_leaves: int) -> "LevelMap":
        return cls([frozenset((i,)) for i in range(n_leaves)])

    def __len__(self) -> int:
        return len(self.hidden)

    @property
    def n_leaves(self) -> int:
        return sum(len(h) for h in self.hidden)

    def hidden_set(self, node: int) -> frozenset:
        return self.hidden[node]

    def leaf_sizes(self) -> np.ndarray:
        return np.fromiter((len(h) for h in self.hidden), dtype=np.int64, count=len(self.hidden))

    def coarsen(self, groups: Sequence[Iterable[int]]) -> None:
        """Replace the current nodes by one meta-node per group of current nodes."""
        new_hidden = []
        for members in groups:
            leaves = set()
            for node in members:
                leaves.update(self.hidden[node])
            new_hidden.append(frozenset(leaves))
        self.hidden = new_hidden
        self.level += 1

    def project(self, groups: Sequence[Iterable[int]]) -> np.ndarray:
        """
        Project a current-level grouping down to the leaves.

        ``groups[k]`` lists the current-level nodes of community ``k``; every
        leaf hidden under them receives label ``k``.
        """
        labels = np.full(self.n_leaves, -1, dtype=np.int64)
        for label, members in enumerate(groups):
            for node in members:
                for leaf in self.hidden[node]:
                    labels[leaf] = label
        if labels.size and labels.min() < 0:
            raise ValueError("Grouping does not cover every current-level node")
        return labels
