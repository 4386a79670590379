"""
Training Module for Embedding Propagation.

This module implements the complete training pipeline including:
- Parallel per-node loss and gradient computation
- Per-batch gradient aggregation
- Momentum and Adam updates applied row by row to the feature table
- Logging and metrics tracking

Components:
    EmbeddingPropagationTrainer: Main trainer class
    MomentumOptimizer, AdamOptimizer: Feature table optimizers
    aggregate_gradients: Merge per-node gradient maps
    TrainingLogger: Logging and metrics tracking

Example:
    >>> from embedprop.training import EmbeddingPropagationTrainer
    >>> from embedprop.model import EmbeddingModel
    >>>
    >>> trainer = EmbeddingPropagationTrainer(
    ...     model=EmbeddingModel(),
    ...     dims=32,
    ...     passes=20,
    ...     optimizer='momentum',
    ...     optimizer_config={'momentum': 0.9}
    ... )
    >>> node_embeddings, feature_embeddings = trainer.learn(graph, features)
"""

from .trainer import EmbeddingPropagationTrainer, TrainerState, NodeResult
from .optimizer import FeatureOptimizer, MomentumOptimizer, AdamOptimizer, create_optimizer
from .aggregator import aggregate_gradients, iter_batches
from .callbacks import TrainingLogger

__all__ = [
    'EmbeddingPropagationTrainer',
    'TrainerState',
    'NodeResult',
    'FeatureOptimizer',
    'MomentumOptimizer',
    'AdamOptimizer',
    'create_optimizer',
    'aggregate_gradients',
    'iter_batches',
    'TrainingLogger',
]
