"""
Configuration module for embedding propagation training.

This module provides configuration loading and validation utilities.
"""

from pathlib import Path
import yaml
from typing import Dict, Any, Optional


VALID_STRATEGIES = ('averaged', 'attention')
VALID_OPTIMIZERS = ('momentum', 'adam')


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, loads default.yaml

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        config_path = Path(__file__).parent / "default.yaml"
    else:
        config_path = Path(config_path)

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    validate_config(config)
    return config


def get_default_config() -> Dict[str, Any]:
    """Get default configuration dictionary."""
    return load_config()


def _check_positive_int(section: Dict[str, Any], key: str, allow_none: bool = False):
    value = section.get(key)
    if value is None:
        if allow_none:
            return
        raise ValueError(f"Missing required config value: {key}")
    if not isinstance(value, int) or value < 1:
        raise ValueError(f"{key} must be a positive integer, got {value!r}")


def validate_config(config: Dict[str, Any]) -> None:
    """
    Check a configuration dictionary for malformed values.

    Only keys that are present are checked; missing keys fall back to the
    trainer's defaults.

    Raises:
        ValueError: On the first malformed value
    """
    model = config.get('model', {}) or {}
    training = config.get('training', {}) or {}
    optimizer = config.get('optimizer', {}) or {}

    if 'dims' in model:
        _check_positive_int(model, 'dims')
    _check_positive_int(model, 'max_features', allow_none=True)
    _check_positive_int(model, 'max_neighbor_nodes', allow_none=True)

    strategy = model.get('strategy')
    if strategy is not None and strategy not in VALID_STRATEGIES:
        raise ValueError(
            f"Unknown pooling strategy '{strategy}'. Use one of {VALID_STRATEGIES}"
        )

    for key in ('passes', 'batch_size'):
        if key in training:
            _check_positive_int(training, key)
    _check_positive_int(training, 'num_workers', allow_none=True)

    lr = training.get('learning_rate')
    if lr is not None and lr <= 0:
        raise ValueError(f"learning_rate must be positive, got {lr}")

    gamma = training.get('gamma')
    if gamma is not None and gamma < 0:
        raise ValueError(f"gamma must be non-negative, got {gamma}")

    name = optimizer.get('name')
    if name is not None and name not in VALID_OPTIMIZERS:
        raise ValueError(f"Unknown optimizer '{name}'. Use one of {VALID_OPTIMIZERS}")


__all__ = ['load_config', 'get_default_config', 'validate_config']
