"""
Rolling mean / variance over a fixed window of observations.
"""

from collections import deque
from typing import Tuple

import numpy as np


class RollingStats:
    """
    Keeps the last ``window_size`` values of one metric.

    Stats are only reported as valid once the window is full. The variance
    is the population variance (divided by N).
    """

    def __init__(self, window_size: int):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self.window = deque(maxlen=window_size)

    def add_value(self, value: float) -> Tuple[float, float, bool]:
        """
        Add an observation and return ``(mean, std_dev_squared, stats_valid)``.

        Mean and variance are 0.0 until the window fills.
        """
        self.window.append(value)
        if len(self.window) < self.window_size:
            return 0.0, 0.0, False

        values = np.fromiter(self.window, dtype=float, count=len(self.window))
        mean = float(values.mean())
        std_dev_squared = float(((values - mean) ** 2).mean())
        return mean, std_dev_squared, True

    def __len__(self) -> int:
        return len(self.window)
