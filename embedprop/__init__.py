"""
Embedding Propagation Training Package.

This package learns node embeddings from discrete per-node features using
the embedding propagation objective: a node's embedding built from its own
features should be closer to the estimate reconstructed from its
neighbors' features than the embedding of a random negative node.

Submodules:
    - data: Graph adjacency, feature store and vocabulary
    - model: Embedding storage, pooling strategies and margin loss
    - training: Optimizers, gradient aggregation and the training loop
    - utils: Evaluation metrics and visualization helpers

Example:
    >>> from embedprop.data import CSRGraph, FeatureStore
    >>> from embedprop.model import EmbeddingModel, PoolingStrategy
    >>> from embedprop.training import EmbeddingPropagationTrainer
"""

__version__ = "1.0.0"
__author__ = "Embedding Propagation Team"

# Version info
VERSION_INFO = {
    'major': 1,
    'minor': 0,
    'patch': 0,
    'release': 'stable'
}
