"""
Core utilities for the MDL community detection framework.
Contains shared utility classes and kernels used across modules.
"""
import time
from collections import defaultdict
from contextlib import contextmanager

import numba as nb
import numpy as np


class InconsistentPartitionError(RuntimeError):
    """Raised when the incremental bookkeeping of a partition has drifted."""


class PerformanceMonitor:
    """Performance monitoring with minimal overhead."""

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.reset()

    def reset(self):
        """Reset all timing statistics."""
        self.timing_stats = defaultdict(float)
        self.timing_counts = defaultdict(int)
        self.total_start_time = time.time()

    @contextmanager
    def timed_operation(self, operation_name, verbose=False):
        """Context manager for timing operations with proper nesting."""
        if not self.enabled:
            yield
            return

        start_time = time.time()
        try:
            yield
        finally:
            elapsed = time.time() - start_time
            self.timing_stats[operation_name] += elapsed
            self.timing_counts[operation_name] += 1
            if verbose:
                print(f"  [{operation_name}] completed in {elapsed:.2f} seconds")

    def get_operation_total(self, operation_name):
        """Get total time for a specific operation"""
        return self.timing_stats.get(operation_name, 0.0)

    def print_timing_summary(self):
        """Print a summary of timing statistics."""
        if not self.enabled:
            return

        total_time = max(time.time() - self.total_start_time, 1e-12)

        print("\n======== TIMING SUMMARY ========")
        print(f"Total execution time: {total_time:.2f} seconds")
        print("\nBreakdown by operation:")

        # Sort operations by time spent (descending)
        sorted_ops = sorted(self.timing_stats.items(), key=lambda x: x[1], reverse=True)

        for operation, elapsed in sorted_ops:
            percentage = (elapsed / total_time) * 100
            count = self.timing_counts[operation]
            avg_time = elapsed / count if count > 0 else 0
            print(f"  {operation:<30} {elapsed:10.2f}s ({percentage:6.2f}%)  |  {count} calls, avg {avg_time:.4f}s per call")

        print("================================")


@nb.njit(cache=True)
def aggregate_undirected_edges(s, t, w):
    """
    Take edges (s,t) with weights w, in either direction and possibly repeated.
    Return UNIQUE undirected pairs a<b with weight = SUM over all copies.
    Self-loops must be filtered out by the caller.
    """
    n = s.shape[0]
    a = np.empty(n, dtype=np.int64)
    b = np.empty(n, dtype=np.int64)
    for i in range(n):
        u = s[i]; v = t[i]
        if u < v:
            a[i] = u; b[i] = v
        else:
            a[i] = v; b[i] = u

    # pack into 64 bits (assumes node ids < 2**31)
    keys = (a << 32) | b
    order = np.argsort(keys, kind='mergesort')

    a = a[order]; b = b[order]
    w = w[order]

    out_a = np.empty(n, dtype=np.int64)
    out_b = np.empty(n, dtype=np.int64)
    out_w = np.empty(n, dtype=np.float64)

    out = 0
    i = 0
    while i < n:
        ua = a[i]; ub = b[i]
        sumw = w[i]
        i += 1
        while i < n and a[i] == ua and b[i] == ub:
            sumw += w[i]
            i += 1
        out_a[out] = ua
        out_b[out] = ub
        out_w[out] = sumw
        out += 1

    return out_a[:out], out_b[:out], out_w[:out]


@nb.njit(cache=True)
def _scatter_pairs(a, b, w, indptr):
    # one slot per endpoint; rows keep ascending pair order
    nnz = indptr[-1]
    indices = np.empty(nnz, np.int64)
    data = np.empty(nnz, np.float64)
    fill = indptr[:-1].copy()
    for i in range(a.size):
        u = a[i]; v = b[i]
        indices[fill[u]] = v; data[fill[u]] = w[i]; fill[u] += 1
        indices[fill[v]] = u; data[fill[v]] = w[i]; fill[v] += 1
    return indices, data


def undirected_csr(sources, targets, weights, n_nodes):
    """
    CSR adjacency (indptr, indices, data) of an undirected multigraph.

    Parallel edges and both directions of a pair are summed into one entry,
    stored once from each endpoint. Self-loops and pairs whose summed weight
    is zero are left out.
    """
    # Ensure dtypes up front (avoids slow implicit casts)
    s = np.asarray(sources, dtype=np.int64)
    t = np.asarray(targets, dtype=np.int64)
    w = np.asarray(weights, dtype=np.float64)
    n = int(n_nodes)

    keep = s != t
    a, b, w = aggregate_undirected_edges(s[keep], t[keep], w[keep])
    nonzero = w > 0
    a, b, w = a[nonzero], b[nonzero], w[nonzero]

    counts = np.bincount(np.concatenate([a, b]), minlength=n)
    indptr = np.zeros(n + 1, dtype=np.int64)
    np.cumsum(counts, out=indptr[1:])

    indices, data = _scatter_pairs(a, b, w, indptr)
    return indptr, indices, data
