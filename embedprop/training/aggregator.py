"""
Gradient Aggregation Module.

This module merges the per-node gradient maps of a batch into a single map
with one entry per feature, and splits shuffled node ids into batches.
"""

from typing import Dict, Iterable, Iterator, List, Sequence

import torch


GradientMap = Dict[int, torch.Tensor]


def aggregate_gradients(grad_maps: Iterable[GradientMap]) -> GradientMap:
    """
    Sum per-node gradient maps elementwise per feature.

    Maps are consumed in the given order, so for a fixed order the result
    is bit-for-bit reproducible no matter which thread produced each map.

    Args:
        grad_maps: One {feature id: gradient} map per node

    Returns:
        Merged map with every feature id exactly once
    """
    merged: GradientMap = {}
    for grad_map in grad_maps:
        for feat_id, grad in grad_map.items():
            acc = merged.get(feat_id)
            if acc is None:
                merged[feat_id] = grad.clone()
            else:
                acc.add_(grad)
    return merged


def iter_batches(node_ids: Sequence[int], batch_size: int) -> Iterator[List[int]]:
    """
    Split node ids into contiguous batches.

    The final batch holds the remainder and may be smaller.
    """
    for start in range(0, len(node_ids), batch_size):
        yield list(node_ids[start:start + batch_size])
