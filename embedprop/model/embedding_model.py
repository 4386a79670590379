"""
Node Embedding Construction Module.

A node embedding is never stored directly during training; it is built on
the fly from the embeddings of discrete features:

    h(v)  = pool(features of v)                       "direct"
    ~h(v) = pool(union of features of v's neighbors)  "reconstruction"

Each distinct feature is looked up once as a fresh leaf tensor with
``requires_grad=True`` so that gradients can later be routed back to the
right row of the feature table. The multiset of features is kept as a
``NodeCounts`` map: feature id -> (leaf tensor, multiplicity).

Two pooling strategies are supported:

- AVERAGED: multiplicity-weighted mean
- ATTENTION: scaled dot-product self-attention between distinct features
"""

import math
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple, Union

import numpy as np
import torch

from ..data.features import FeatureStore
from .embeddings import EmbeddingStore


NodeCounts = Dict[int, Tuple[torch.Tensor, int]]


class PoolingStrategy(Enum):
    """How feature embeddings are combined into a node embedding."""
    AVERAGED = "averaged"
    ATTENTION = "attention"


def collect_embeddings_from_node(
    node: int,
    feature_store: FeatureStore,
    feature_embeddings: EmbeddingStore,
    feat_map: NodeCounts,
    max_features: Optional[int],
    rng: np.random.Generator
) -> None:
    """
    Add the features of ``node`` to ``feat_map``.

    When the node has more than ``max_features`` features, a uniform random
    subset of that size is drawn without replacement.
    """
    feats = feature_store.get_features(node)
    if max_features is not None and len(feats) > max_features:
        feats = rng.choice(feats, size=max_features, replace=False).tolist()

    for feat in feats:
        entry = feat_map.get(feat)
        if entry is not None:
            feat_map[feat] = (entry[0], entry[1] + 1)
        else:
            emb = feature_embeddings.get_embedding(feat)
            feat_map[feat] = (emb.clone().requires_grad_(True), 1)


def mean_embeddings(feat_map: NodeCounts) -> torch.Tensor:
    """Multiplicity-weighted mean of the feature embeddings."""
    if len(feat_map) == 0:
        raise ValueError("Cannot pool an empty feature set")

    embs = torch.stack([emb for emb, _ in feat_map.values()])
    counts = torch.tensor([count for _, count in feat_map.values()], dtype=embs.dtype)

    return (embs * counts.unsqueeze(1)).sum(dim=0) / counts.sum()


def attention_mean(feat_map: NodeCounts) -> torch.Tensor:
    """
    Scaled dot-product attention pooling.

    For features i != j the pair score is dot(e_i, e_j) * c_i * c_j. Each
    feature's scores are summed and divided by sqrt(D), turned into weights
    with a softmax, and the output is sum_i w_i * c_i * e_i.

    Scaling pair scores by multiplicities is an unverified heuristic kept
    for compatibility with existing trained models.
    """
    if len(feat_map) == 0:
        raise ValueError("Cannot pool an empty feature set")

    items = list(feat_map.values())
    if len(items) == 1:
        return items[0][0]

    embs = torch.stack([emb for emb, _ in items])
    counts = torch.tensor([count for _, count in items], dtype=embs.dtype)

    # Pairwise scores, diagonal excluded
    dots = embs @ embs.t()
    dots = dots * torch.outer(counts, counts)
    off_diagonal = ~torch.eye(len(items), dtype=torch.bool)
    scores = (dots * off_diagonal).sum(dim=1) / math.sqrt(embs.size(1))

    # Softmax, shifted by the max for overflow safety
    exps = torch.exp(scores - scores.max())
    attention = exps / exps.sum()

    return ((attention * counts).unsqueeze(1) * embs).sum(dim=0)


class EmbeddingModel:
    """
    Build direct and reconstructed node embeddings from feature embeddings.

    The pooling strategy is fixed at construction; every operation uses it.

    Example:
        >>> import numpy as np
        >>> model = EmbeddingModel(PoolingStrategy.AVERAGED, max_neighbor_nodes=10)
        >>> rng = np.random.default_rng(0)
        >>> feats, hv = model.construct(0, feature_store, feature_embeddings, rng)
        >>> feats, thv = model.reconstruct(graph, 0, feature_store, feature_embeddings, rng)
    """

    def __init__(
        self,
        strategy: Union[PoolingStrategy, str] = PoolingStrategy.AVERAGED,
        max_features: Optional[int] = None,
        max_neighbor_nodes: Optional[int] = None
    ):
        """
        Initialize embedding model.

        Args:
            strategy: AVERAGED or ATTENTION (enum or its string value)
            max_features: Cap on features sampled per node (None = all)
            max_neighbor_nodes: Cap on neighbors sampled for reconstruction
                                (None = all)
        """
        if isinstance(strategy, str):
            try:
                strategy = PoolingStrategy(strategy)
            except ValueError:
                raise ValueError(f"Unknown pooling strategy: {strategy}") from None

        if max_features is not None and max_features < 1:
            raise ValueError(f"max_features must be positive or None, got {max_features}")
        if max_neighbor_nodes is not None and max_neighbor_nodes < 1:
            raise ValueError(
                f"max_neighbor_nodes must be positive or None, got {max_neighbor_nodes}"
            )

        self.strategy = strategy
        self.max_features = max_features
        self.max_neighbor_nodes = max_neighbor_nodes

    def __repr__(self) -> str:
        return (f"EmbeddingModel(strategy={self.strategy.value}, "
                f"max_features={self.max_features}, "
                f"max_neighbor_nodes={self.max_neighbor_nodes})")

    def pool(self, feat_map: NodeCounts) -> torch.Tensor:
        """Combine the collected features with the configured strategy."""
        if self.strategy == PoolingStrategy.ATTENTION:
            return attention_mean(feat_map)
        return mean_embeddings(feat_map)

    def construct(
        self,
        node: int,
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore,
        rng: np.random.Generator
    ) -> Tuple[NodeCounts, torch.Tensor]:
        """
        H(v): embed a node from its own features.

        Returns:
            Tuple of (feature map used, pooled embedding [D])
        """
        feat_map: NodeCounts = {}
        collect_embeddings_from_node(
            node, feature_store, feature_embeddings,
            feat_map, self.max_features, rng
        )
        return feat_map, self.pool(feat_map)

    def reconstruct(
        self,
        graph,
        node: int,
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore,
        rng: np.random.Generator
    ) -> Tuple[NodeCounts, torch.Tensor]:
        """
        ~H(v): estimate a node's embedding from its outgoing neighbors.

        At most ``max_neighbor_nodes`` neighbors are used, drawn uniformly
        without replacement when the node has more.

        Returns:
            Tuple of (feature map used, pooled embedding [D])
        """
        neighbors = graph.get_edges(node)[0]
        cap = self.max_neighbor_nodes
        if cap is not None and len(neighbors) > cap:
            neighbors = rng.choice(neighbors, size=cap, replace=False).tolist()

        return self.construct_from_multiple(
            neighbors, feature_store, feature_embeddings, rng
        )

    def construct_from_multiple(
        self,
        nodes: Iterable[int],
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore,
        rng: np.random.Generator
    ) -> Tuple[NodeCounts, torch.Tensor]:
        """
        Pool the union of the features of several nodes.

        A feature shared by k of the nodes gets multiplicity k.

        Returns:
            Tuple of (feature map used, pooled embedding [D])
        """
        feat_map: NodeCounts = {}
        for node in nodes:
            collect_embeddings_from_node(
                node, feature_store, feature_embeddings,
                feat_map, self.max_features, rng
            )
        return feat_map, self.pool(feat_map)
