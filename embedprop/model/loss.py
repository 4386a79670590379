"""
Margin Loss Module.

This module implements the embedding propagation objective. For an anchor
node v with direct embedding h(v), reconstruction ~h(v) and a random
negative node u:

    L = max(0, gamma + d(~h(v), h(v)) - d(~h(v), h(u)))

where d is the Euclidean distance. The loss is zero once the
reconstruction is closer to the anchor than to the negative by at least
the margin gamma.

It also provides gradient extraction: after the backward pass the gradient
of every feature leaf is read back into a plain {feature id: gradient} map
that the optimizer can apply to the feature table.
"""

from typing import Dict, Tuple

import torch
import torch.nn as nn

from .embedding_model import NodeCounts


def euclidean_distance(e1: torch.Tensor, e2: torch.Tensor) -> torch.Tensor:
    """
    L2 distance between two vectors.

    Written as sqrt(sum(diff^2)) rather than torch.linalg.norm so that the
    gradient at e1 == e2 is NaN (0/0) instead of silently zero; callers
    filter NaN gradients out.
    """
    return (e1 - e2).pow(2).sum().pow(0.5)


def margin_loss(
    thv: torch.Tensor,
    hv: torch.Tensor,
    hu: torch.Tensor,
    gamma: float
) -> torch.Tensor:
    """
    Hinge loss between reconstruction, anchor and negative.

    Args:
        thv: Reconstructed embedding of the anchor ~h(v)
        hv: Direct embedding of the anchor h(v)
        hu: Direct embedding of the negative h(u)
        gamma: Margin

    Returns:
        Scalar loss tensor
    """
    d1 = euclidean_distance(thv, hv)
    d2 = euclidean_distance(thv, hu)
    return (gamma + d1 - d2).clamp(min=0.0)


class MarginLoss(nn.Module):
    """
    Margin ranking loss for embedding propagation.

    Example:
        >>> loss_fn = MarginLoss(gamma=1.0)
        >>> loss = loss_fn(reconstructed, direct, negative)
        >>> loss, details = loss_fn.forward_with_details(reconstructed, direct, negative)
    """

    def __init__(self, gamma: float = 1.0):
        """
        Initialize margin loss.

        Args:
            gamma: Required separation between positive and negative distance
        """
        super().__init__()
        if gamma < 0:
            raise ValueError(f"gamma must be non-negative, got {gamma}")
        self.gamma = gamma

    def forward(
        self,
        reconstructed: torch.Tensor,
        direct: torch.Tensor,
        negative: torch.Tensor
    ) -> torch.Tensor:
        return margin_loss(reconstructed, direct, negative, self.gamma)

    def forward_with_details(
        self,
        reconstructed: torch.Tensor,
        direct: torch.Tensor,
        negative: torch.Tensor
    ) -> Tuple[torch.Tensor, dict]:
        """
        Compute loss with distance breakdown for monitoring.

        Returns:
            Tuple of (loss, details_dict)
        """
        d_pos = euclidean_distance(reconstructed, direct)
        d_neg = euclidean_distance(reconstructed, negative)
        loss = (self.gamma + d_pos - d_neg).clamp(min=0.0)

        details = {
            'loss': loss.item(),
            'pos_dist': d_pos.item(),  # Should shrink
            'neg_dist': d_neg.item(),  # Should stay large
        }
        return loss, details


def extract_grads(
    loss: torch.Tensor,
    *feature_maps: NodeCounts
) -> Dict[int, torch.Tensor]:
    """
    Read per-feature gradients of ``loss`` back from the feature leaves.

    Feature maps are visited in the order given (direct, reconstructed,
    negative). A feature that appears in more than one map keeps only the
    gradient of its first leaf. Gradients with any non-finite coordinate
    are dropped entirely; they come from degenerate distances such as a
    reconstruction identical to the direct embedding.

    Args:
        loss: Scalar loss built from the leaves in ``feature_maps``
        *feature_maps: NodeCounts maps used to build the loss

    Returns:
        Dict mapping feature id to gradient [D]
    """
    seen = set()
    feat_ids = []
    leaves = []
    for feat_map in feature_maps:
        for feat_id, (leaf, _count) in feat_map.items():
            if feat_id in seen:
                continue
            seen.add(feat_id)
            feat_ids.append(feat_id)
            leaves.append(leaf)

    if not leaves:
        return {}

    grads = torch.autograd.grad(loss, leaves, allow_unused=True)

    result = {}
    for feat_id, leaf, grad in zip(feat_ids, leaves, grads):
        if grad is None:
            grad = torch.zeros_like(leaf)
        if torch.isfinite(grad).all():
            result[feat_id] = grad.detach()

    return result
