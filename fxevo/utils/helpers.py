"""
Helper utilities for the fxevo backtesting engine.
"""

import math
import uuid
from pathlib import Path
from typing import Union

import numpy as np


def ensure_directory(path: Union[str, Path]) -> Path:
    """Create ``path`` and any missing parents; return it as a Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, falling back to ``default`` for a zero denominator.

    Used for ratios such as the share of profitable chunks, where an
    Investor that never sold has no ratio at all.
    """
    if denominator == 0:
        return default
    return numerator / denominator


def format_percentage(value: float, decimal_places: int = 2) -> str:
    """Render a fraction such as an annualized return (0.05) as "5.00%"."""
    return f"{value * 100:.{decimal_places}f}%"


def generate_ref_no() -> str:
    """Short unique reference number for influencers and lots."""
    return uuid.uuid4().hex[:20].upper()


def is_finite(value: float) -> bool:
    return not (math.isnan(value) or math.isinf(value))


def sample_std(values) -> float:
    """Sample standard deviation (divides by N - 1), 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def default_worker_count() -> int:
    """
    Worker threads to use when none are configured.

    All logical CPUs on small machines, half of them on large ones.
    """
    import psutil
    count = psutil.cpu_count(logical=True) or 1
    if count > 10:
        count //= 2
    return count
