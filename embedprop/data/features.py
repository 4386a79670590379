"""
Feature Store Module.

This module keeps the discrete features attached to every node. Feature
names are mapped to integer ids through a vocabulary; the ids index rows of
the feature embedding table learned during training.

Nodes without any feature get a private "singleton" feature so that they
still have a distinguishable embedding:

    len(store) = vocabulary size + number of singleton features
"""

from typing import Iterable, List

from .vocab import Vocab


FEATURE_NODE_TYPE = "feat"


class FeatureStore:
    """
    Per-node lists of feature ids.

    Lifecycle:
        1. ``set_features`` for every node that has features
        2. ``fill_missing_nodes`` exactly once
        3. read-only during training

    Example:
        >>> store = FeatureStore(num_nodes=3)
        >>> store.set_features(0, ["red", "large"])
        >>> store.set_features(1, ["red"])
        >>> store.fill_missing_nodes()
        >>> store.get_features(1)
        [0]
        >>> store.get_features(2)  # singleton feature
        [2]
        >>> len(store)
        3
    """

    def __init__(self, num_nodes: int):
        """
        Initialize empty feature store.

        Args:
            num_nodes: Number of nodes in the graph
        """
        self.features: List[List[int]] = [[] for _ in range(num_nodes)]
        self.feature_vocab = Vocab()
        self.empty_nodes = 0
        self._filled = False

    @property
    def num_nodes(self) -> int:
        return len(self.features)

    def __len__(self) -> int:
        return len(self.feature_vocab) + self.empty_nodes

    def set_features(self, node: int, node_features: Iterable[str]) -> None:
        """
        Replace the features of a node.

        Args:
            node: Node index
            node_features: Feature names; repeated names are kept as
                           repeated ids
        """
        if not 0 <= node < len(self.features):
            raise IndexError(f"Node {node} out of range for {len(self.features)} nodes")

        self.features[node] = [
            self.feature_vocab.get_or_insert(FEATURE_NODE_TYPE, name)
            for name in node_features
        ]

    def get_features(self, node: int) -> List[int]:
        return self.features[node]

    def fill_missing_nodes(self) -> None:
        """
        Assign a unique singleton feature to every node without features.

        Singleton ids start right after the vocabulary range. Must be called
        once, after all ``set_features`` calls.

        Raises:
            RuntimeError: If called a second time
        """
        if self._filled:
            raise RuntimeError("fill_missing_nodes has already been called")

        next_idx = len(self.feature_vocab)
        for node, feats in enumerate(self.features):
            if len(feats) == 0:
                self.features[node] = [next_idx]
                next_idx += 1
                self.empty_nodes += 1

        self._filled = True

    def get_vocab(self) -> Vocab:
        return self.feature_vocab
