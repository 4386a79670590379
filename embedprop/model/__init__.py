"""
Model Module for Embedding Propagation.

This module implements embedding storage, node embedding construction and
the margin loss.

Components:
    - embeddings.py: Dense embedding tables with row-level mutable views
    - embedding_model.py: Direct/reconstructed node embeddings, averaged
      and attention pooling
    - loss.py: Margin loss and per-feature gradient extraction

Example:
    >>> from embedprop.model import EmbeddingModel, PoolingStrategy, MarginLoss
    >>>
    >>> model = EmbeddingModel(PoolingStrategy.ATTENTION, max_neighbor_nodes=10)
    >>> hv_feats, hv = model.construct(node, features, feature_embeddings, rng)
    >>> thv_feats, thv = model.reconstruct(graph, node, features, feature_embeddings, rng)
    >>>
    >>> loss = MarginLoss(gamma=1.0)(thv, hv, hu)
"""

from .embeddings import EmbeddingStore, Distance
from .embedding_model import EmbeddingModel, PoolingStrategy, NodeCounts
from .loss import MarginLoss, margin_loss, euclidean_distance, extract_grads

__all__ = [
    'EmbeddingStore',
    'Distance',
    'EmbeddingModel',
    'PoolingStrategy',
    'NodeCounts',
    'MarginLoss',
    'margin_loss',
    'euclidean_distance',
    'extract_grads',
]
