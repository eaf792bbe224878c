"""Tests for summary metrics functionality."""

import math

import numpy as np
import pytest

from lineup_simlab.metrics import nearest_rank, percentile_table, summarize


def test_summarize_basic():
    """Test basic summarize functionality with default quantiles."""
    data = [1.0, 2.0, 3.0, 4.0, 5.0]
    result = summarize(data)

    expected_keys = {"mean", "median", "variance", "std", "min", "max", "q05", "q95"}
    assert set(result.keys()) == expected_keys

    assert result["mean"] == 3.0
    assert result["median"] == 3.0
    assert result["variance"] == pytest.approx(np.var(data, ddof=1))
    assert result["std"] == pytest.approx(np.std(data, ddof=1))
    assert result["min"] == 1.0
    assert result["max"] == 5.0
    # Nearest rank: index ceil(0.05 * 5) - 1 = 0 and ceil(0.95 * 5) - 1 = 4
    assert result["q05"] == 1.0
    assert result["q95"] == 5.0


def test_nearest_rank_values_are_observed():
    """Nearest-rank percentiles are always observed values."""
    data = np.arange(1.0, 11.0)

    assert nearest_rank(data, 0.10) == 1.0
    assert nearest_rank(data, 0.25) == 3.0
    assert nearest_rank(data, 0.50) == 5.0
    assert nearest_rank(data, 0.90) == 9.0
    assert nearest_rank(data, 0.0) == 1.0
    assert nearest_rank(data, 1.0) == 10.0


def test_nearest_rank_empty():
    """Empty samples have a NaN percentile."""
    assert math.isnan(nearest_rank(np.array([]), 0.5))


def test_percentile_table_unsorted_input():
    """Percentile tables sort their input first."""
    table = percentile_table([5.0, 1.0, 4.0, 2.0, 3.0], [0.2, 0.6, 1.0])

    assert table == {0.2: 1.0, 0.6: 3.0, 1.0: 5.0}


def test_summarize_empty_data():
    """Test summarize with empty data."""
    assert summarize([]) == {}


def test_summarize_single_value():
    """Test summarize with single value."""
    result = summarize([5.0])

    assert result["mean"] == 5.0
    assert result["median"] == 5.0
    assert result["std"] == 0.0
    assert result["variance"] == 0.0
    assert result["q05"] == 5.0
    assert result["q95"] == 5.0


def test_summarize_skips_out_of_range_quantiles():
    """Quantiles outside [0, 1] are skipped."""
    result = summarize([1.0, 2.0], quantiles=[0.5, 1.5])

    assert "q50" in result
    assert "q150" not in result
