"""
PartitionAnalyzer - Analysis tools for community label vectors.
"""
import numpy as np
import pandas as pd
from sklearn.metrics import normalized_mutual_info_score

from .core_utilities import PerformanceMonitor


class PartitionAnalyzer:
    """
    Class for analyzing and comparing node partitions.
    """

    def __init__(self, verbose=True):
        """
        Initialize the analyzer.

        Parameters:
        -----------
        verbose : bool, default=True
            Whether to print progress messages
        """
        self.verbose = verbose
        self.timing = PerformanceMonitor(enabled=True)

    def community_sizes(self, labels):
        """Number of nodes per community label, largest first."""
        labels = np.asarray(labels)
        return pd.Series(labels).value_counts().rename("size")

    def size_distribution(self, labels):
        """
        Distribution of community sizes.

        Parameters:
        -----------
        labels : array-like
            One community label per node

        Returns:
        --------
        pandas.Series
            Indexed by community size, values are the number of communities
            of that size, sorted by size
        """
        sizes = self.community_sizes(labels)
        dist = sizes.value_counts().sort_index()
        dist.index.name = "size"
        return dist.rename("n_communities")

    def compare_partitions(self, labels_a, labels_b):
        """
        Compare two partitions of the same nodes.

        Parameters:
            labels_a: First label vector
            labels_b: Second label vector

        Returns:
            dict with comparison metrics
        """
        labels_a = np.asarray(labels_a)
        labels_b = np.asarray(labels_b)
        if labels_a.shape != labels_b.shape:
            raise ValueError(f"Label vectors differ in shape: {labels_a.shape} vs {labels_b.shape}")

        with self.timing.timed_operation("Compare partitions"):
            nmi = normalized_mutual_info_score(labels_a, labels_b) if labels_a.size else 1.0

            # Pairs of nodes co-clustered in both partitions, as a share of either
            joint = pd.crosstab(labels_a, labels_b).to_numpy() if labels_a.size else np.zeros((0, 0))
            same_both = float((joint * (joint - 1) / 2).sum())
            sizes_a = np.bincount(pd.factorize(labels_a)[0]) if labels_a.size else np.zeros(0)
            sizes_b = np.bincount(pd.factorize(labels_b)[0]) if labels_b.size else np.zeros(0)
            same_a = float((sizes_a * (sizes_a - 1) / 2).sum())
            same_b = float((sizes_b * (sizes_b - 1) / 2).sum())
            union = same_a + same_b - same_both
            jaccard = same_both / union if union > 0 else 1.0

            comparison = {
                'nmi': float(nmi),
                'pair_jaccard': jaccard,
                'n_communities_a': int(len(np.unique(labels_a))),
                'n_communities_b': int(len(np.unique(labels_b))),
            }

        if self.verbose:
            print("Partition comparison:")
            print(f"  - Normalized Mutual Information: {comparison['nmi']:.4f}")
            print(f"  - Co-clustered pair Jaccard similarity: {jaccard:.4f}")
            print(f"  - Communities: {comparison['n_communities_a']} vs {comparison['n_communities_b']}")

        return comparison


def compare_partitions(labels_a, labels_b, verbose=False):
    """Shortcut for ``PartitionAnalyzer(verbose).compare_partitions``."""
    return PartitionAnalyzer(verbose=verbose).compare_partitions(labels_a, labels_b)
