"""
Visualization Module.

This module provides plotting utilities for training curves written by
``TrainingLogger``.
"""

import json
from typing import Optional


def plot_training_curves(
    metrics_path: str,
    output_path: Optional[str] = None,
    show: bool = True
) -> None:
    """
    Plot training curves from logged metrics.

    Args:
        metrics_path: Path to pass_metrics.json
        output_path: Optional path to save figure
        show: Whether to display plot
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        print("matplotlib not installed. Install with: pip install matplotlib")
        return

    with open(metrics_path, 'r') as f:
        metrics = json.load(f)

    passes = [m['pass'] for m in metrics]
    loss = [m.get('loss') for m in metrics]

    fig, axes = plt.subplots(1, 2, figsize=(12, 4))

    # Loss
    ax = axes[0]
    ax.plot(passes, loss, label='Margin Loss', marker='.')
    ax.set_xlabel('Pass')
    ax.set_ylabel('Loss')
    ax.set_title('Training Loss')
    ax.legend()
    ax.grid(True, alpha=0.3)

    # Reconstruction distances if available
    ax = axes[1]
    if metrics and 'pos_dist' in metrics[0]:
        pos_dist = [m.get('pos_dist') for m in metrics]
        neg_dist = [m.get('neg_dist') for m in metrics]
        ax.plot(passes, pos_dist, label='d(~h(v), h(v))', marker='.')
        ax.plot(passes, neg_dist, label='d(~h(v), h(u))', marker='.')
        ax.set_xlabel('Pass')
        ax.set_ylabel('Distance')
        ax.set_title('Reconstruction Distances')
        ax.legend()
        ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path, dpi=150, bbox_inches='tight')
        print(f"Saved figure to {output_path}")

    if show:
        plt.show()

    plt.close(fig)
