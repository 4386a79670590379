"""
Optimizer Module.

Optimizers apply a batch gradient map {feature id: gradient} to the shared
feature embedding table. Each keeps its own moment tables, shaped like the
feature table and updated in lockstep with it.

Updates are applied feature by feature. A feature id appears at most once
in a batch gradient map, so every row is written by exactly one task and
the per-feature updates can run concurrently on a thread pool without
locking the table.

Both optimizers skip a feature entirely (embedding and moments untouched)
when its gradient has any non-finite coordinate.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import Dict, Optional

import torch

from ..model.embeddings import EmbeddingStore


class FeatureOptimizer(ABC):
    """Shared driver: finite-gradient guard and optional parallel dispatch."""

    def update(
        self,
        feature_embeddings: EmbeddingStore,
        grads: Dict[int, torch.Tensor],
        alpha: float,
        t: int,
        executor: Optional[Executor] = None
    ) -> int:
        """
        Apply one optimization step.

        Args:
            feature_embeddings: Table to update in place
            grads: Gradient per feature id, each id at most once
            alpha: Learning rate
            t: Step counter, 0 for the first step
            executor: Optional pool to spread per-feature updates over

        Returns:
            Number of features skipped because of non-finite gradients
        """
        def apply(item) -> bool:
            feat_id, grad = item
            if not torch.isfinite(grad).all():
                return False
            self._update_row(feature_embeddings, feat_id, grad, alpha, t)
            return True

        if executor is not None:
            applied = list(executor.map(apply, grads.items()))
        else:
            applied = [apply(item) for item in grads.items()]

        return applied.count(False)

    @abstractmethod
    def _update_row(
        self,
        feature_embeddings: EmbeddingStore,
        feat_id: int,
        grad: torch.Tensor,
        alpha: float,
        t: int
    ) -> None:
        """Update one feature row and its moments in place."""


class MomentumOptimizer(FeatureOptimizer):
    """
    SGD with momentum.

        v = gamma * v + g
        e = e - alpha * v

    With gamma = 0 this is plain gradient descent.
    """

    def __init__(self, gamma: float, dims: int, length: int):
        """
        Initialize momentum optimizer.

        Args:
            gamma: Momentum decay in [0, 1)
            dims: Embedding dimension
            length: Number of rows in the feature table
        """
        if not 0.0 <= gamma < 1.0:
            raise ValueError(f"Momentum gamma must be in [0, 1), got {gamma}")

        self.gamma = gamma
        self.mom = EmbeddingStore(length, dims)

    def _update_row(self, feature_embeddings, feat_id, grad, alpha, t):
        mom = self.mom.get_embedding_mut(feat_id)
        mom.mul_(self.gamma).add_(grad)

        emb = feature_embeddings.get_embedding_mut(feat_id)
        emb.add_(mom, alpha=-alpha)


class AdamOptimizer(FeatureOptimizer):
    """
    Adam with bias correction.

        m = b1 * m + (1 - b1) * g
        v = b2 * v + (1 - b2) * g^2
        e = e - alpha * m_hat / (sqrt(v_hat) + eps)

    with m_hat = m / (1 - b1^t) and v_hat = v / (1 - b2^t) for the
    1-indexed step t.
    """

    def __init__(
        self,
        beta_1: float,
        beta_2: float,
        dims: int,
        length: int,
        eps: float = 1e-8
    ):
        """
        Initialize Adam optimizer.

        Args:
            beta_1: First moment decay in [0, 1)
            beta_2: Second moment decay in [0, 1)
            dims: Embedding dimension
            length: Number of rows in the feature table
            eps: Denominator term for numerical stability
        """
        if not 0.0 <= beta_1 < 1.0:
            raise ValueError(f"beta_1 must be in [0, 1), got {beta_1}")
        if not 0.0 <= beta_2 < 1.0:
            raise ValueError(f"beta_2 must be in [0, 1), got {beta_2}")
        if eps <= 0:
            raise ValueError(f"eps must be positive, got {eps}")

        self.beta_1 = beta_1
        self.beta_2 = beta_2
        self.eps = eps
        self.mom = EmbeddingStore(length, dims)
        self.var = EmbeddingStore(length, dims)

    def _update_row(self, feature_embeddings, feat_id, grad, alpha, t):
        t = t + 1

        mom = self.mom.get_embedding_mut(feat_id)
        mom.mul_(self.beta_1).add_(grad, alpha=1.0 - self.beta_1)

        var = self.var.get_embedding_mut(feat_id)
        var.mul_(self.beta_2).addcmul_(grad, grad, value=1.0 - self.beta_2)

        m_hat = mom / (1.0 - self.beta_1 ** t)
        v_hat = var / (1.0 - self.beta_2 ** t)

        emb = feature_embeddings.get_embedding_mut(feat_id)
        emb.sub_(alpha * m_hat / (v_hat.sqrt() + self.eps))


def create_optimizer(
    name: str,
    dims: int,
    length: int,
    **kwargs
) -> FeatureOptimizer:
    """
    Create optimizer by name.

    Args:
        name: 'momentum' or 'adam'
        dims: Embedding dimension
        length: Number of rows in the feature table
        **kwargs: Additional arguments for specific optimizers
            - momentum (float): For momentum, default 0.9
            - beta_1 (float): For adam, default 0.9
            - beta_2 (float): For adam, default 0.999
            - eps (float): For adam, default 1e-8

    Returns:
        Optimizer instance
    """
    if name == 'momentum':
        return MomentumOptimizer(kwargs.get('momentum', 0.9), dims, length)
    elif name == 'adam':
        return AdamOptimizer(
            kwargs.get('beta_1', 0.9),
            kwargs.get('beta_2', 0.999),
            dims,
            length,
            eps=kwargs.get('eps', 1e-8)
        )
    else:
        raise ValueError(f"Unknown optimizer: {name}")
