"""
Utility functions for the explorer_ml computation core.

Core helpers: seeding, logging, timing, configuration loading and
project path resolution.
"""

import os
import random
import logging
import time
from pathlib import Path
from contextlib import contextmanager
from typing import Generator, List, Optional, Union

import numpy as np
import yaml

logger = logging.getLogger(__name__)


def set_seed(seed: int = 42) -> None:
    """
    Set random seed for Python and NumPy for reproducibility.

    Models draw their randomness from their own ``random_state``; this only
    covers ad-hoc sampling in scripts and tests.

    Args:
        seed: Random seed value (default: 42)
    """
    random.seed(seed)
    np.random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


def get_rng(random_state: Optional[Union[int, np.random.Generator]] = None) -> np.random.Generator:
    """
    Resolve a ``random_state`` argument into a NumPy Generator.

    Args:
        random_state: None (fresh entropy), an int seed, or an existing Generator

    Returns:
        numpy Generator
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    fmt: str = LOG_FORMAT
) -> logging.Logger:
    """
    Route explorer_ml log records to the console and an optional file.

    Replaces any handlers already on the root logger, so repeated calls
    (e.g. from a notebook) do not duplicate output.

    Args:
        level: Level name ("DEBUG", "INFO", ...) or numeric level; unknown names mean INFO
        log_file: Optional path to log file, parent directories are created
        fmt: Record format

    Returns:
        The explorer_ml package logger
    """
    if isinstance(level, str):
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO
    else:
        log_level = level

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=log_level, format=fmt, handlers=handlers, force=True)
    return logging.getLogger("explorer_ml")


@contextmanager
def timer(name: str) -> Generator:
    """
    Context manager to time code blocks.

    Args:
        name: Name of the operation being timed

    Usage:
        with timer("Train decision tree"):
            model.train(rows, features, target)
    """
    t0 = time.time()
    logger.debug(f"[{name}] starting...")
    try:
        yield
    finally:
        elapsed = time.time() - t0
        logger.info(f"[{name}] done in {elapsed:.3f}s")


def get_project_root() -> Path:
    """
    Get the project root directory.

    Returns:
        Path to project root (parent of explorer_ml/)
    """
    return Path(__file__).parent.parent


def load_config(path: Union[str, Path]) -> dict:
    """
    Load YAML configuration file.

    Args:
        path: Path to YAML config file (relative or absolute)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
    """
    candidates = [Path(path), get_project_root() / path]
    config_path = next((p for p in candidates if p.exists()), None)
    if config_path is None:
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    logger.debug(f"Loaded config {config_path} with sections {sorted(config)}")
    return config


def get_config_value(config: dict, key: str, default=None):
    """
    Resolve a dot-separated key from a nested config dict.

    Example:
        >>> config = load_config('configs/models.yaml')
        >>> get_config_value(config, 'holt.alpha')
        0.3
    """
    value = config
    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value
