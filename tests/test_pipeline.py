"""Tests for the optimize-then-simulate pipeline."""

import pytest

from lineup_simlab.errors import Infeasible
from lineup_simlab.models import ContestDescriptor, OptimizationConstraints, RosterRequirement, RunStatus
from lineup_simlab.pipeline import LabResult, optimize_and_simulate
from lineup_simlab.progress import CancellationToken, ProgressSink


def test_generate_and_simulate(pool, contest, ten_lineups, fast_config):
    """Generated lineups are simulated in order with progress from both stages."""
    sink = ProgressSink()
    result = optimize_and_simulate(pool, contest, ten_lineups, fast_config, trial_count=200, sink=sink)

    assert isinstance(result, LabResult)
    assert result.generation.is_complete
    assert result.simulation is not None
    assert result.simulation.status is RunStatus.COMPLETE
    assert [r.lineup_id for r in result.simulation.results] == [
        lu.lineup_id for lu in result.generation.lineups
    ]
    stages = {event.stage for event in sink.drain()}
    assert stages == {"generation", "simulation"}


def test_cancelled_generation_skips_simulation(pool, contest, ten_lineups, fast_config):
    """A cancelled generation skips simulation."""
    token = CancellationToken()
    token.cancel()
    result = optimize_and_simulate(pool, contest, ten_lineups, fast_config, cancel=token)

    assert result.generation.status is RunStatus.CANCELLED
    assert result.simulation is None


def test_infeasible_request_raises(pool, fast_config):
    """Infeasible requests raise before any work starts."""
    contest = ContestDescriptor(salary_cap=20000, roster=RosterRequirement.uniform("UTIL", 6))
    with pytest.raises(Infeasible) as exc_info:
        optimize_and_simulate(pool, contest, OptimizationConstraints(), fast_config)
    assert exc_info.value.constraint == "salary_cap"
