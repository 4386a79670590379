"""
Embedding Store Module.

Dense table of fixed-size float vectors addressed by row index. Two tables
exist during a run:

- the feature table, shared by all worker threads and mutated in place by
  the optimizer after every batch
- the node table, computed once after training

Row access returns views into a single backing tensor. Writes through a
view returned by ``get_embedding_mut`` touch only that row, so updates to
distinct rows can proceed from several threads without a table-wide lock
("hogwild" updates). Callers must never hand the same row to two writers in
one step.
"""

from enum import Enum
from typing import Optional, Union

import numpy as np
import torch
import torch.nn.functional as F


class Distance(Enum):
    """Distance metric attached to an embedding table."""
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


class EmbeddingStore:
    """
    Fixed-size table of D-dimensional float32 embeddings.

    Example:
        >>> store = EmbeddingStore(num_embeddings=4, dims=3)
        >>> row = store.get_embedding_mut(2)
        >>> _ = row.add_(1.0)
        >>> store.get_embedding(2)
        tensor([1., 1., 1.])
    """

    def __init__(
        self,
        num_embeddings: int,
        dims: int,
        distance: Distance = Distance.COSINE
    ):
        """
        Initialize zero-filled embedding table.

        Args:
            num_embeddings: Number of rows
            dims: Embedding dimension
            distance: Metric used by compute_distance
        """
        self.dims = dims
        self.distance = distance
        self._data = torch.zeros(num_embeddings, dims, dtype=torch.float32)

    def __len__(self) -> int:
        return self._data.size(0)

    @property
    def data(self) -> torch.Tensor:
        """Full backing tensor [num_embeddings, dims]."""
        return self._data

    def get_embedding(self, idx: int) -> torch.Tensor:
        """Read-only view of one row. Clone before keeping it across steps."""
        return self._data[idx]

    def get_embedding_mut(self, idx: int) -> torch.Tensor:
        """Mutable view of one row; in-place ops write through to the table."""
        return self._data[idx]

    def randomize(self, rng: np.random.Generator, low: float = -1.0, high: float = 1.0) -> None:
        """Fill the table uniformly in [low, high) from ``rng``."""
        values = rng.uniform(low, high, size=tuple(self._data.shape))
        self._data.copy_(torch.from_numpy(values.astype(np.float32)))

    def compute_distance(
        self,
        a: Union[int, torch.Tensor],
        b: Union[int, torch.Tensor]
    ) -> float:
        """
        Distance between two rows or raw vectors under the table's metric.

        Args:
            a: Row index or embedding vector
            b: Row index or embedding vector

        Returns:
            Distance as a python float
        """
        ea = self._data[a] if isinstance(a, int) else a
        eb = self._data[b] if isinstance(b, int) else b

        if self.distance == Distance.COSINE:
            return float(1.0 - F.cosine_similarity(ea, eb, dim=0))
        return float(torch.linalg.vector_norm(ea - eb))

    @classmethod
    def from_tensor(
        cls,
        tensor: torch.Tensor,
        distance: Optional[Distance] = None
    ) -> 'EmbeddingStore':
        """Wrap a copy of an existing [N, D] tensor."""
        store = cls(tensor.size(0), tensor.size(1), distance or Distance.COSINE)
        store._data.copy_(tensor.detach().float())
        return store
