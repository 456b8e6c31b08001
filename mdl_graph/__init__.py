"""
MDL Graph Package - Community detection by minimum description length.
"""

# Import main classes for easy access
from .statistical_inference import (
    StatisticalInferenceClustering,
    InferenceResult,
    write_labels,
    STAT_INF_CLASS,
)
from .optimizer import InferenceConfig, LocalSearchOptimizer, SearchState, SearchOutcome
from .partition import PartitionState, Community
from .objective import ObjectiveEvaluator, Move, lbinom
from .level_map import LevelMap
from .coarsen import CoarsenedLevel
from .graph_view import GraphView, EdgeArrayGraph
from .partition_analyzer import PartitionAnalyzer, compare_partitions

# Import core utilities that might be directly useful
from .core_utilities import (
    PerformanceMonitor,
    InconsistentPartitionError,
    aggregate_undirected_edges,
    undirected_csr,
)

# Define what gets imported with `from mdl_graph import *`
__all__ = [
    # Main classes
    'StatisticalInferenceClustering',
    'InferenceResult',
    'InferenceConfig',
    'LocalSearchOptimizer',
    'SearchState',
    'SearchOutcome',
    'PartitionState',
    'Community',
    'ObjectiveEvaluator',
    'Move',
    'LevelMap',
    'CoarsenedLevel',
    'GraphView',
    'EdgeArrayGraph',
    'PartitionAnalyzer',

    # Utility classes
    'PerformanceMonitor',
    'InconsistentPartitionError',

    # Core functions
    'lbinom',
    'write_labels',
    'compare_partitions',
    'aggregate_undirected_edges',
    'undirected_csr',
    'STAT_INF_CLASS',
]

# Package metadata
__version__ = '1.0.0'
__author__ = 'Connor Frankston'
