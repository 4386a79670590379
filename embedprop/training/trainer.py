"""
Embedding Propagation Trainer Module.

This module implements the training loop for embedding propagation. It
handles:
- Random initialization of the feature embedding table
- Shuffled passes over all nodes, split into fixed-size batches
- Parallel per-node forward/backward on a thread pool
- Gradient aggregation and the optimizer step
- Final computation of node embeddings from the learned features

Design Decisions:
- CPU-only, shared-memory data parallelism (one task per node)
- Each node draws from its own RNG stream seeded by
  (seed, batch counter, node id), so results depend only on the seed and
  batch size, not on thread scheduling
- Per-node results are merged in batch order, so gradient sums are
  reproducible across runs
- The batch boundary is the only synchronization point: the feature table
  is read by workers during a batch and written by the optimizer after it
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import torch

from ..data.features import FeatureStore
from ..model.embeddings import Distance, EmbeddingStore
from ..model.embedding_model import EmbeddingModel
from ..model.loss import MarginLoss, extract_grads
from .aggregator import aggregate_gradients, iter_batches
from .callbacks import TrainingLogger
from .optimizer import FeatureOptimizer, create_optimizer


class TrainerState(Enum):
    """Lifecycle of a trainer. A trainer runs exactly once."""
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@dataclass
class NodeResult:
    """
    Outcome of one node's forward and backward pass.

    Attributes:
        loss: Margin loss value
        grads: Finite gradients per feature id
        pos_dist: Distance between reconstruction and anchor
        neg_dist: Distance between reconstruction and negative
    """
    loss: float
    grads: Dict[int, torch.Tensor] = field(default_factory=dict)
    pos_dist: float = 0.0
    neg_dist: float = 0.0


class EmbeddingPropagationTrainer:
    """
    Learn feature and node embeddings with embedding propagation.

    For every node v in a pass:
    1. Build h(v) from v's features and ~h(v) from its neighbors' features
    2. Draw a negative node u != v and build h(u)
    3. Compute margin loss and read gradients of every feature involved

    The batch's gradients are summed per feature and applied by the
    optimizer.

    Example:
        >>> from embedprop.data import CSRGraph, FeatureStore
        >>> from embedprop.model import EmbeddingModel
        >>> from embedprop.training import EmbeddingPropagationTrainer
        >>>
        >>> graph = CSRGraph.complete(100)
        >>> features = FeatureStore(len(graph))
        >>> features.fill_missing_nodes()
        >>>
        >>> trainer = EmbeddingPropagationTrainer(
        ...     model=EmbeddingModel(max_neighbor_nodes=10),
        ...     alpha=1e-2, gamma=1.0, batch_size=32, dims=5, passes=50, seed=42
        ... )
        >>> node_embeddings, feature_embeddings = trainer.learn(graph, features)
    """

    def __init__(
        self,
        model: EmbeddingModel,
        alpha: float = 1e-2,
        gamma: float = 1.0,
        batch_size: int = 32,
        dims: int = 64,
        passes: int = 50,
        seed: int = 42,
        optimizer: str = 'adam',
        optimizer_config: Optional[Dict[str, Any]] = None,
        num_workers: Optional[int] = None,
        logger: Optional[TrainingLogger] = None,
        verbose: bool = True
    ):
        """
        Initialize trainer.

        Args:
            model: Node embedding construction strategy
            alpha: Learning rate
            gamma: Margin of the loss
            batch_size: Nodes per optimizer step
            dims: Embedding dimension
            passes: Number of passes over all nodes
            seed: Seed for initialization, shuffling and negative sampling
            optimizer: 'momentum' or 'adam'
            optimizer_config: Extra optimizer hyper-parameters
            num_workers: Worker threads (None = one per CPU)
            logger: Training logger (default: console only)
            verbose: Whether to print setup and progress

        Raises:
            ValueError: On malformed configuration
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if passes < 1:
            raise ValueError(f"passes must be at least 1, got {passes}")
        if dims < 1:
            raise ValueError(f"dims must be at least 1, got {dims}")
        if alpha <= 0:
            raise ValueError(f"alpha must be positive, got {alpha}")
        if num_workers is not None and num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {num_workers}")

        self.model = model
        self.alpha = alpha
        self.batch_size = batch_size
        self.dims = dims
        self.passes = passes
        self.seed = seed
        self.optimizer_name = optimizer
        self.optimizer_config = optimizer_config or {}
        self.num_workers = num_workers or os.cpu_count() or 1
        self.verbose = verbose

        self.loss_fn = MarginLoss(gamma=gamma)
        self.logger = logger or TrainingLogger(log_dir=None, verbose=verbose)

        # Created once the feature table size is known
        self.optimizer: Optional[FeatureOptimizer] = None

        # Tracking
        self.state = TrainerState.IDLE
        self.history: List[Dict[str, float]] = []
        self.current_pass = 0
        self.step = 0

    @property
    def gamma(self) -> float:
        return self.loss_fn.gamma

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        verbose: bool = True
    ) -> 'EmbeddingPropagationTrainer':
        """
        Build a trainer from a configuration dictionary.

        Args:
            config: Configuration as returned by ``config.load_config``
            verbose: Whether to print progress

        Returns:
            Configured trainer
        """
        model_config = config.get('model', {})
        train_config = config.get('training', {})
        opt_config = dict(config.get('optimizer', {}))
        paths_config = config.get('paths', {})

        model = EmbeddingModel(
            strategy=model_config.get('strategy', 'averaged'),
            max_features=model_config.get('max_features'),
            max_neighbor_nodes=model_config.get('max_neighbor_nodes', 10)
        )

        logger = TrainingLogger(
            log_dir=paths_config.get('logs'),
            log_every=train_config.get('log_every', 1),
            verbose=verbose
        )

        return cls(
            model=model,
            alpha=train_config.get('learning_rate', 1e-2),
            gamma=train_config.get('gamma', 1.0),
            batch_size=train_config.get('batch_size', 32),
            dims=model_config.get('dims', 64),
            passes=train_config.get('passes', 50),
            seed=train_config.get('seed', 42),
            optimizer=opt_config.pop('name', 'adam'),
            optimizer_config=opt_config,
            num_workers=train_config.get('num_workers'),
            logger=logger,
            verbose=verbose
        )

    def _print_setup_summary(self, graph, feature_store: FeatureStore):
        """Print training setup summary."""
        num_batches = (len(graph) + self.batch_size - 1) // self.batch_size
        print("=" * 60)
        print("Embedding Propagation Training Setup")
        print("=" * 60)
        print(f"Model: {self.model}")
        print(f"Nodes: {len(graph):,}")
        print(f"Feature embeddings: {len(feature_store):,} x {self.dims}")
        print(f"Batch size: {self.batch_size}")
        print(f"Batches per pass: {num_batches}")
        print(f"Passes: {self.passes}")
        print(f"Learning rate: {self.alpha}")
        print(f"Margin: {self.gamma}")
        print(f"Optimizer: {self.optimizer_name}")
        print("=" * 60)

    def _validate_inputs(self, graph, feature_store: FeatureStore):
        if len(graph) < 2:
            raise ValueError(
                f"Need at least 2 nodes to sample negatives, got {len(graph)}"
            )
        if feature_store.num_nodes != len(graph):
            raise ValueError(
                f"Feature store covers {feature_store.num_nodes} nodes "
                f"but graph has {len(graph)}"
            )

    def run_pass(
        self,
        graph,
        node: int,
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore,
        batch_idx: int
    ) -> NodeResult:
        """
        Forward and backward pass for a single anchor node.

        Args:
            graph: Graph with ``len`` and ``get_edges``
            node: Anchor node
            feature_store: Node features
            feature_embeddings: Current feature table (read only)
            batch_idx: Global batch counter, part of the RNG seed

        Returns:
            NodeResult with loss and per-feature gradients
        """
        rng = np.random.default_rng([self.seed, batch_idx, node])

        # Negative node u != v
        num_nodes = len(graph)
        neg_node = node
        while neg_node == node:
            neg_node = int(rng.integers(num_nodes))

        # Nothing to reconstruct from
        if len(graph.get_edges(node)[0]) == 0:
            return NodeResult(loss=0.0)

        # h(v), ~h(v), h(u)
        hv_feats, hv = self.model.construct(node, feature_store, feature_embeddings, rng)
        thv_feats, thv = self.model.reconstruct(graph, node, feature_store, feature_embeddings, rng)
        hu_feats, hu = self.model.construct(neg_node, feature_store, feature_embeddings, rng)

        loss, details = self.loss_fn.forward_with_details(thv, hv, hu)
        grads = extract_grads(loss, hv_feats, thv_feats, hu_feats)

        return NodeResult(
            loss=details['loss'],
            grads=grads,
            pos_dist=details['pos_dist'],
            neg_dist=details['neg_dist']
        )

    def train_pass(
        self,
        graph,
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore,
        node_idxs: List[int],
        executor: ThreadPoolExecutor
    ) -> Dict[str, float]:
        """
        Run one pass over the already-shuffled ``node_idxs``.

        Returns:
            Dictionary with pass metrics
        """
        total_loss = 0.0
        total_pos = 0.0
        total_neg = 0.0
        skipped = 0

        for nodes in iter_batches(node_idxs, self.batch_size):
            compute = partial(
                self.run_pass,
                graph,
                feature_store=feature_store,
                feature_embeddings=feature_embeddings,
                batch_idx=self.step
            )
            # map() yields in submission order: merge order is fixed
            results = list(executor.map(compute, nodes))

            grads = aggregate_gradients(r.grads for r in results)
            skipped += self.optimizer.update(
                feature_embeddings, grads, self.alpha, self.step, executor=executor
            )
            self.step += 1

            for r in results:
                total_loss += r.loss
                total_pos += r.pos_dist
                total_neg += r.neg_dist

        n = len(node_idxs)
        return {
            'loss': total_loss / n,
            'pos_dist': total_pos / n,
            'neg_dist': total_neg / n,
            'skipped_updates': skipped,
        }

    def learn_feature_embeddings(
        self,
        graph,
        feature_store: FeatureStore
    ) -> EmbeddingStore:
        """
        Full training loop over the feature embedding table.

        ``feature_store.fill_missing_nodes()`` must have been called.

        Args:
            graph: Graph with ``len`` and ``get_edges``
            feature_store: Node features

        Returns:
            Learned feature embeddings
        """
        if self.state != TrainerState.IDLE:
            raise RuntimeError(f"Trainer already used (state: {self.state.value})")
        self._validate_inputs(graph, feature_store)

        if self.verbose:
            self._print_setup_summary(graph, feature_store)

        self.state = TrainerState.RUNNING

        rng = np.random.default_rng(self.seed)
        feature_embeddings = EmbeddingStore(len(feature_store), self.dims, Distance.COSINE)
        feature_embeddings.randomize(rng)

        self.optimizer = create_optimizer(
            self.optimizer_name, self.dims, len(feature_store), **self.optimizer_config
        )

        node_idxs = np.arange(len(graph))

        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            for pass_idx in range(self.passes):
                self.current_pass = pass_idx
                self.logger.start_pass(pass_idx)

                # Shuffle for SGD
                rng.shuffle(node_idxs)
                metrics = self.train_pass(
                    graph, feature_store, feature_embeddings,
                    node_idxs.tolist(), executor
                )

                self.logger.log_pass(pass_idx, metrics)
                self.history.append(metrics)

        self.state = TrainerState.DONE

        self.logger.save_final({'steps': self.step, 'optimizer': self.optimizer_name})

        return feature_embeddings

    def compute_node_embeddings(
        self,
        graph,
        feature_store: FeatureStore,
        feature_embeddings: EmbeddingStore
    ) -> EmbeddingStore:
        """
        Embed every node from its own features.

        Args:
            graph: Graph (only its size is used)
            feature_store: Node features
            feature_embeddings: Learned feature table

        Returns:
            Node embedding table with cosine distance
        """
        node_embeddings = EmbeddingStore(len(graph), self.dims, Distance.COSINE)

        def fill(node: int):
            rng = np.random.default_rng([self.seed, node])
            # Grad mode is thread local
            with torch.no_grad():
                _, emb = self.model.construct(node, feature_store, feature_embeddings, rng)
                node_embeddings.get_embedding_mut(node).copy_(emb)

        with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
            list(executor.map(fill, range(len(graph))))

        return node_embeddings

    def learn(
        self,
        graph,
        feature_store: FeatureStore
    ) -> Tuple[EmbeddingStore, EmbeddingStore]:
        """
        Train feature embeddings, then derive node embeddings.

        Returns:
            Tuple of (node embeddings, feature embeddings)
        """
        feature_embeddings = self.learn_feature_embeddings(graph, feature_store)
        node_embeddings = self.compute_node_embeddings(graph, feature_store, feature_embeddings)
        return node_embeddings, feature_embeddings
