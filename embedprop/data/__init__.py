"""
Data Module for Embedding Propagation.

This module handles:
1. Graph adjacency in CSR form
2. Discrete per-node features
3. Vocabulary of feature names

Classes:
    CSRGraph: Outgoing-neighbor lookup for every node
    FeatureStore: Feature ids per node, sizes the feature embedding table
    Vocab: (category, name) <-> integer id mapping

Example:
    >>> from embedprop.data import CSRGraph, FeatureStore
    >>>
    >>> graph = CSRGraph.from_edges([(0, 1), (1, 2)], undirected=True)
    >>> store = FeatureStore(len(graph))
    >>> store.set_features(0, ["red"])
    >>> store.fill_missing_nodes()
"""

from .graph import CSRGraph
from .features import FeatureStore
from .vocab import Vocab, TranslationTable

__all__ = [
    'CSRGraph',
    'FeatureStore',
    'Vocab',
    'TranslationTable',
]
