"""
Training Callbacks Module.

This module implements monitoring for the training loop:
- TrainingLogger: Per-pass console lines and JSON metric files
"""

import json
import time
from pathlib import Path
from typing import Dict, List, Optional


class TrainingLogger:
    """
    Log per-pass margin loss, reconstruction distances and skipped updates.

    Example:
        >>> logger = TrainingLogger(log_dir='logs', log_every=10)
        >>>
        >>> for pass_idx in range(100):
        ...     logger.start_pass(pass_idx)
        ...     metrics = run_pass()
        ...     logger.log_pass(pass_idx, metrics)
        >>>
        >>> logger.save_final()
    """

    def __init__(
        self,
        log_dir: Optional[str] = 'logs',
        log_every: int = 1,
        verbose: bool = True
    ):
        """
        Initialize logger.

        Args:
            log_dir: Directory for pass_metrics.json and
                     training_summary.json (None = keep in memory only)
            log_every: Print to console every N passes
            verbose: Whether to print to console
        """
        self.log_dir = Path(log_dir) if log_dir is not None else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_every = max(1, log_every)
        self.verbose = verbose

        self.pass_metrics: List[Dict] = []
        self.start_time = time.time()
        self._pass_start: Optional[float] = None

    def start_pass(self, pass_idx: int):
        """Mark start of a pass."""
        self._pass_start = time.time()

    def log_pass(self, pass_idx: int, metrics: Dict[str, float]):
        """
        Record the metrics of a finished pass.

        Args:
            pass_idx: Pass number
            metrics: Dict with 'loss' and optionally 'pos_dist', 'neg_dist'
                     and 'skipped_updates'
        """
        duration = time.time() - self._pass_start if self._pass_start is not None else 0.0
        self._pass_start = None

        record = {'pass': pass_idx, 'seconds': duration, **metrics}
        self.pass_metrics.append(record)

        if self.verbose and pass_idx % self.log_every == 0:
            print(self._format_pass(record))

    @staticmethod
    def _format_pass(record: Dict) -> str:
        parts = [f"Pass {record['pass']:4d}", f"loss: {record['loss']:.4f}"]
        if 'pos_dist' in record:
            parts.append(f"d+: {record['pos_dist']:.4f}")
        if 'neg_dist' in record:
            parts.append(f"d-: {record['neg_dist']:.4f}")
        if record.get('skipped_updates'):
            parts.append(f"skipped: {record['skipped_updates']}")
        parts.append(f"{record['seconds']:.1f}s")
        return " | ".join(parts)

    def save_final(self, extra_info: Optional[Dict] = None) -> Dict:
        """
        Summarize the run and write the JSON files.

        Args:
            extra_info: Additional info to include in the summary

        Returns:
            Summary dictionary
        """
        summary = {
            'total_passes': len(self.pass_metrics),
            'total_time_seconds': time.time() - self.start_time,
            'total_skipped_updates': sum(
                m.get('skipped_updates', 0) for m in self.pass_metrics
            ),
        }
        if self.pass_metrics:
            best = min(self.pass_metrics, key=lambda m: m['loss'])
            summary['first_loss'] = self.pass_metrics[0]['loss']
            summary['final_loss'] = self.pass_metrics[-1]['loss']
            summary['best_loss'] = best['loss']
            summary['best_pass'] = best['pass']

        if extra_info:
            summary.update(extra_info)

        if self.log_dir is not None:
            with open(self.log_dir / 'pass_metrics.json', 'w') as f:
                json.dump(self.pass_metrics, f, indent=2)

            with open(self.log_dir / 'training_summary.json', 'w') as f:
                json.dump(summary, f, indent=2)

        if self.verbose:
            print(f"\nTraining complete in {summary['total_time_seconds']:.1f}s")
            if self.log_dir is not None:
                print(f"Logs saved to {self.log_dir}")

        return summary
