"""Summary metrics and statistics calculation."""

import math
from collections.abc import Sequence

import numpy as np


def nearest_rank(sorted_data: np.ndarray, q: float) -> float:
    """Nearest-rank percentile of already sorted data.

    The element at index ``max(0, ceil(q * n) - 1)`` is returned, so every
    reported value is an observed sample.
    """
    n = len(sorted_data)
    if n == 0:
        return math.nan
    idx = max(0, math.ceil(q * n - 1e-9) - 1)
    return float(sorted_data[min(idx, n - 1)])


def percentile_table(
    data: list[float] | np.ndarray, percentiles: Sequence[float]
) -> dict[float, float]:
    """Map each requested percentile to its nearest-rank value."""
    sorted_data = np.sort(np.asarray(data, dtype=float))
    return {float(q): nearest_rank(sorted_data, q) for q in percentiles}


def summarize(
    data: list[float] | np.ndarray, quantiles: Sequence[float] | None = None
) -> dict[str, float]:
    """Compute summary statistics for simulated lineup scores.

    Args:
        data: Array or list of numerical values
        quantiles: Optional list of quantiles to compute. If None, uses [0.05, 0.95]

    Returns:
        Dictionary containing summary statistics with keys:
        - mean: arithmetic mean
        - median: nearest-rank 50th percentile
        - variance, std: sample statistics (ddof=1, ddof=0 for a single value)
        - min, max
        - q05, q95: default quantiles (or custom qXX keys if quantiles provided)
    """
    if quantiles is None:
        quantiles = [0.05, 0.95]

    data_array = np.sort(np.asarray(data, dtype=float))

    if len(data_array) == 0:
        return {}

    ddof = 1 if len(data_array) > 1 else 0
    variance = float(np.var(data_array, ddof=ddof))
    result = {
        "mean": float(np.mean(data_array)),
        "median": nearest_rank(data_array, 0.5),
        "variance": variance,
        "std": math.sqrt(variance),
        "min": float(data_array[0]),
        "max": float(data_array[-1]),
    }

    for q in quantiles:
        if not (0 <= q <= 1):
            continue
        key = f"q{int(round(q * 100)):02d}"
        result[key] = nearest_rank(data_array, q)

    return result
