"""Optimize-then-simulate orchestration."""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .config import LabConfig
from .constraints import compile_context
from .correlation import CorrelationModel
from .generator import LineupGenerator
from .models import (
    ContestDescriptor,
    GenerationResult,
    OptimizationConstraints,
    Player,
    RunStatus,
    SimulationBatch,
)
from .progress import CancellationToken, Deadline, ProgressSink
from .simulator import MonteCarloSimulator

logger = logging.getLogger(__name__)


@dataclass
class LabResult:
    generation: GenerationResult
    simulation: Optional[SimulationBatch] = None


def optimize_and_simulate(
    players: Sequence[Player],
    contest: ContestDescriptor,
    constraints: OptimizationConstraints,
    config: Optional[LabConfig] = None,
    *,
    trial_count: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    deadline: Optional[Deadline] = None,
    sink: Optional[ProgressSink] = None,
) -> LabResult:
    """Compile, generate and simulate with one shared token, deadline and sink.

    Simulation is skipped when generation was cancelled or produced nothing.

    Raises:
        InvalidInput: Malformed request
        Infeasible: No lineup can satisfy the hard constraints
    """
    config = config or LabConfig()
    context = compile_context(players, contest, constraints)
    correlation = CorrelationModel(players, contest.roster.sport)

    generator = LineupGenerator(config, correlation=correlation)
    generation = generator.generate(context, cancel=cancel, deadline=deadline, sink=sink)

    if generation.status is RunStatus.CANCELLED or not generation.lineups:
        logger.info("Skipping simulation (generation %s)", generation.status.value)
        return LabResult(generation=generation)

    simulator = MonteCarloSimulator(players, contest, config, correlation=correlation)
    simulation = simulator.simulate(
        generation.lineups, trial_count, cancel=cancel, deadline=deadline, sink=sink
    )
    return LabResult(generation=generation, simulation=simulation)
