"""
Graph Module.

This module provides the compressed sparse row (CSR) adjacency consumed by
embedding propagation. Reconstruction only needs two things from a graph:
the total node count and, per node, its outgoing neighbors. ``CSRGraph``
answers both in O(1).

Graphs can be built from:
- Python edge lists of (src, dst) or (src, dst, weight)
- A PyTorch ``edge_index`` tensor [2, num_edges]
- A NetworkX graph
"""

from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

import networkx as nx
import torch
from torch_geometric.utils import coalesce, to_undirected


class CSRGraph:
    """
    Immutable CSR adjacency with edge weights.

    Edges are coalesced on construction: neighbors of each node are sorted
    by id and duplicate edges are merged (weights averaged), so neighbor
    order is stable for the lifetime of the graph.

    Example:
        >>> graph = CSRGraph.from_edges([(0, 1), (1, 2)], undirected=True)
        >>> len(graph)
        3
        >>> graph.get_edges(1)
        ([0, 2], [1.0, 1.0])
    """

    def __init__(
        self,
        indptr: torch.Tensor,
        indices: torch.Tensor,
        weights: torch.Tensor
    ):
        """
        Initialize from raw CSR arrays.

        Args:
            indptr: Row pointers [num_nodes + 1]
            indices: Neighbor ids [num_edges]
            weights: Edge weights [num_edges]
        """
        assert indptr.dim() == 1 and indptr.numel() >= 1, "indptr must be 1-D"
        assert indices.numel() == weights.numel(), "indices and weights must align"

        self.indptr = indptr.long()
        self.indices = indices.long()
        self.weights = weights.float()

        # Per-node python lists so that worker threads never touch tensors
        # when walking neighborhoods
        bounds = self.indptr.tolist()
        all_indices = self.indices.tolist()
        all_weights = self.weights.tolist()
        self._neighbors: List[List[int]] = [
            all_indices[bounds[i]:bounds[i + 1]] for i in range(len(bounds) - 1)
        ]
        self._edge_weights: List[List[float]] = [
            all_weights[bounds[i]:bounds[i + 1]] for i in range(len(bounds) - 1)
        ]

    def __len__(self) -> int:
        return len(self._neighbors)

    @property
    def num_nodes(self) -> int:
        return len(self._neighbors)

    @property
    def num_edges(self) -> int:
        return self.indices.numel()

    def get_edges(self, node: int) -> Tuple[List[int], List[float]]:
        """
        Get outgoing edges of a node.

        Args:
            node: Node index

        Returns:
            Tuple of (neighbor ids, edge weights)
        """
        return self._neighbors[node], self._edge_weights[node]

    def degree(self, node: int) -> int:
        return len(self._neighbors[node])

    def to_edge_index(self) -> torch.Tensor:
        """Convert back to an edge_index tensor [2, num_edges]."""
        counts = self.indptr[1:] - self.indptr[:-1]
        rows = torch.repeat_interleave(torch.arange(self.num_nodes), counts)
        return torch.stack([rows, self.indices], dim=0)

    @classmethod
    def from_edge_index(
        cls,
        edge_index: torch.Tensor,
        num_nodes: int,
        edge_weight: Optional[torch.Tensor] = None,
        undirected: bool = False
    ) -> 'CSRGraph':
        """
        Build from an edge_index tensor.

        Args:
            edge_index: Edge indices [2, num_edges]
            num_nodes: Total number of nodes (isolated nodes included)
            edge_weight: Optional weights [num_edges], defaults to 1.0
            undirected: Add the reverse of every edge

        Returns:
            CSRGraph
        """
        edge_index = edge_index.long()
        if edge_weight is None:
            edge_weight = torch.ones(edge_index.size(1), dtype=torch.float32)
        else:
            edge_weight = edge_weight.float()

        if edge_index.numel() > 0:
            assert int(edge_index.max()) < num_nodes, \
                f"Edge references node {int(edge_index.max())} >= num_nodes {num_nodes}"

            if undirected:
                edge_index, edge_weight = to_undirected(
                    edge_index, edge_weight, num_nodes=num_nodes, reduce='mean'
                )
            else:
                edge_index, edge_weight = coalesce(
                    edge_index, edge_weight, num_nodes=num_nodes, reduce='mean'
                )

        row = edge_index[0]
        counts = torch.bincount(row, minlength=num_nodes)
        indptr = torch.zeros(num_nodes + 1, dtype=torch.long)
        indptr[1:] = torch.cumsum(counts, dim=0)

        return cls(indptr, edge_index[1].clone(), edge_weight)

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Sequence],
        num_nodes: Optional[int] = None,
        undirected: bool = False
    ) -> 'CSRGraph':
        """
        Build from (src, dst) or (src, dst, weight) tuples.

        Args:
            edges: Edge tuples
            num_nodes: Total number of nodes. Defaults to max id + 1.
            undirected: Add the reverse of every edge

        Returns:
            CSRGraph
        """
        src, dst, weights = [], [], []
        for edge in edges:
            src.append(int(edge[0]))
            dst.append(int(edge[1]))
            weights.append(float(edge[2]) if len(edge) > 2 else 1.0)

        if num_nodes is None:
            num_nodes = max(src + dst) + 1 if src else 0

        edge_index = torch.tensor([src, dst], dtype=torch.long).view(2, -1)
        edge_weight = torch.tensor(weights, dtype=torch.float32)

        return cls.from_edge_index(edge_index, num_nodes, edge_weight, undirected)

    @classmethod
    def from_networkx(
        cls,
        graph: nx.Graph,
        weight: str = 'weight'
    ) -> Tuple['CSRGraph', Dict[Hashable, int]]:
        """
        Build from a NetworkX graph.

        Undirected graphs get edges in both directions.

        Args:
            graph: networkx.Graph or networkx.DiGraph
            weight: Edge attribute holding the weight (default 1.0)

        Returns:
            Tuple of (CSRGraph, mapping from NetworkX node to index)
        """
        node_mapping = {node: idx for idx, node in enumerate(graph.nodes())}
        edges = [
            (node_mapping[u], node_mapping[v], data.get(weight, 1.0))
            for u, v, data in graph.edges(data=True)
        ]
        csr = cls.from_edges(
            edges,
            num_nodes=len(node_mapping),
            undirected=not graph.is_directed()
        )
        return csr, node_mapping

    @classmethod
    def complete(cls, num_nodes: int) -> 'CSRGraph':
        """Complete directed graph without self loops, uniform weights."""
        edges = [
            (i, j, 1.0)
            for i in range(num_nodes)
            for j in range(num_nodes)
            if i != j
        ]
        return cls.from_edges(edges, num_nodes=num_nodes)
