"""
Utilities Module.

This module provides helper functions for:
- Evaluation metrics
- Training curve visualization

Components:
    metrics: Evaluation metrics for node embeddings
    visualization: Plotting tools
"""

from .metrics import (
    compute_neighbor_similarity,
    evaluate_link_prediction,
    compute_embedding_statistics,
    evaluate_embeddings,
    check_embedding_health
)
from .visualization import plot_training_curves

__all__ = [
    # Metrics
    'compute_neighbor_similarity',
    'evaluate_link_prediction',
    'compute_embedding_statistics',
    'evaluate_embeddings',
    'check_embedding_health',
    # Visualization
    'plot_training_curves',
]
