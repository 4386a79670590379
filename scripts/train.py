#!/usr/bin/env python3
"""
Embedding Propagation Training Script.

This script learns feature and node embeddings from an edge list and a
node feature file.

Input formats:
    edges:    one edge per line, "src dst [weight]" (whitespace separated)
    features: one node per line, "node feat1 feat2 ..." (nodes without a
              line get a unique placeholder feature)

Usage:
    python scripts/train.py --edges data/edges.txt --features data/features.txt
    python scripts/train.py --edges data/edges.txt --passes 100 --optimizer momentum
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import torch

from config import load_config
from embedprop.data import CSRGraph, FeatureStore
from embedprop.training import EmbeddingPropagationTrainer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Train embedding propagation model')

    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to configuration file (default: config/default.yaml)'
    )
    parser.add_argument(
        '--edges', type=str, required=True,
        help='Edge list file'
    )
    parser.add_argument(
        '--features', type=str, default=None,
        help='Node feature file'
    )
    parser.add_argument(
        '--undirected', action='store_true',
        help='Add the reverse of every edge'
    )
    parser.add_argument(
        '--passes', type=int, default=None,
        help='Number of passes (overrides config)'
    )
    parser.add_argument(
        '--batch-size', type=int, default=None,
        help='Batch size (overrides config)'
    )
    parser.add_argument(
        '--lr', type=float, default=None,
        help='Learning rate (overrides config)'
    )
    parser.add_argument(
        '--optimizer', type=str, default=None, choices=['adam', 'momentum'],
        help='Optimizer (overrides config)'
    )
    parser.add_argument(
        '--output', type=str, default=None,
        help='Where to save embeddings (default: <exports>/embeddings.pt)'
    )

    return parser.parse_args(argv)


def read_edges(path: Path) -> List[Tuple[int, int, float]]:
    """Read (src, dst, weight) tuples from an edge list."""
    edges = []
    with open(path, 'r') as f:
        for line_no, line in enumerate(f, 1):
            parts = line.split()
            if not parts or parts[0].startswith('#'):
                continue
            if len(parts) not in (2, 3):
                raise ValueError(f"{path}:{line_no}: expected 'src dst [weight]'")
            src, dst = int(parts[0]), int(parts[1])
            weight = float(parts[2]) if len(parts) == 3 else 1.0
            edges.append((src, dst, weight))
    return edges


def read_features(path: Optional[Path]) -> Dict[int, List[str]]:
    """Read feature names per node. Missing file means no features."""
    node_features = {}
    if path is None:
        return node_features

    with open(path, 'r') as f:
        for line in f:
            parts = line.split()
            if not parts or parts[0].startswith('#'):
                continue
            node_features[int(parts[0])] = parts[1:]
    return node_features


def build_inputs(
    edges: List[Tuple[int, int, float]],
    node_features: Dict[int, List[str]],
    undirected: bool = False
) -> Tuple[CSRGraph, FeatureStore]:
    """
    Build graph and feature store over the same node range.

    Nodes that only appear in the feature file are kept as isolated nodes.
    """
    node_ids = [node for edge in edges for node in edge[:2]]
    node_ids.extend(node_features)
    num_nodes = max(node_ids) + 1 if node_ids else 0

    graph = CSRGraph.from_edges(edges, num_nodes=num_nodes, undirected=undirected)

    features = FeatureStore(num_nodes)
    for node, names in node_features.items():
        features.set_features(node, names)
    features.fill_missing_nodes()

    return graph, features


def main(argv=None):
    """Main training function."""
    args = parse_args(argv)

    print("=" * 60)
    print("Embedding Propagation Training")
    print("=" * 60)

    # Load config
    config = load_config(args.config)
    config.setdefault('training', {})
    config.setdefault('optimizer', {})

    # Override config with command line args
    if args.passes is not None:
        config['training']['passes'] = args.passes
    if args.batch_size is not None:
        config['training']['batch_size'] = args.batch_size
    if args.lr is not None:
        config['training']['learning_rate'] = args.lr
    if args.optimizer is not None:
        config['optimizer']['name'] = args.optimizer

    # Load data
    print("Loading data...")
    edges = read_edges(Path(args.edges))
    node_features = read_features(Path(args.features) if args.features else None)
    graph, features = build_inputs(edges, node_features, undirected=args.undirected)
    print(f"  Nodes: {len(graph):,}")
    print(f"  Edges: {graph.num_edges:,}")
    print(f"  Distinct features: {len(features):,}")

    trainer = EmbeddingPropagationTrainer.from_config(config)

    start_time = time.time()
    node_embeddings, feature_embeddings = trainer.learn(graph, features)
    total_time = time.time() - start_time

    print(f"\nTraining complete in {total_time:.1f}s")
    print(f"Final loss: {trainer.history[-1]['loss']:.4f}")

    # Save embeddings
    if args.output:
        output_path = Path(args.output)
    else:
        output_path = Path(config.get('paths', {}).get('exports', 'exports')) / 'embeddings.pt'
    output_path.parent.mkdir(parents=True, exist_ok=True)

    torch.save({
        'node_embeddings': node_embeddings.data,
        'feature_embeddings': feature_embeddings.data,
        'feature_names': [
            features.get_vocab().get_name(i) for i in range(len(features.get_vocab()))
        ],
        'config': config,
    }, output_path)
    print(f"Embeddings saved to: {output_path}")

    # Evaluate final embeddings
    print("\nEvaluating node embeddings...")
    from embedprop.utils.metrics import evaluate_embeddings
    eval_results = evaluate_embeddings(node_embeddings.data, graph.to_edge_index())

    print("\nEvaluation Results:")
    print(f"  Neighbor similarity gap: {eval_results['neighbor_similarity']['sim_gap']:.4f}")
    print(f"  Link prediction AUC: {eval_results['link_prediction']['auc_roc']:.4f}")
    print(f"  Embeddings collapsed: {eval_results['embedding_stats']['is_collapsed']}")

    print("\n" + "=" * 60)
    print("Training complete!")
    print("=" * 60)


if __name__ == '__main__':
    main()
