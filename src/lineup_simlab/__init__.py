"""Lineup SimLab - constrained DFS lineup generation with Monte Carlo contest simulation."""

__version__ = "0.1.0"

from .config import LabConfig
from .constraints import CompiledContext, compile_context
from .correlation import CorrelationModel
from .errors import Infeasible, InvalidInput, LabError, SimulationError
from .exposure import ExposureController, ExposureReport
from .generator import LineupGenerator
from .metrics import summarize
from .objectives import objective_scores
from .models import (
    ContestDescriptor,
    ContestFormat,
    GenerationResult,
    Lineup,
    Objective,
    OptimizationConstraints,
    PayoutTier,
    Player,
    RosterRequirement,
    RunStatus,
    ShortfallReason,
    SimulationBatch,
    SimulationResult,
    SlotAssignment,
    StackingRule,
)
from .pipeline import LabResult, optimize_and_simulate
from .progress import CancellationToken, Deadline, ProgressEvent, ProgressReporter, ProgressSink
from .simulator import MonteCarloSimulator

__all__ = [
    "CancellationToken",
    "CompiledContext",
    "ContestDescriptor",
    "ContestFormat",
    "CorrelationModel",
    "Deadline",
    "ExposureController",
    "ExposureReport",
    "GenerationResult",
    "Infeasible",
    "InvalidInput",
    "LabConfig",
    "LabError",
    "LabResult",
    "Lineup",
    "LineupGenerator",
    "MonteCarloSimulator",
    "Objective",
    "OptimizationConstraints",
    "PayoutTier",
    "Player",
    "ProgressEvent",
    "ProgressReporter",
    "ProgressSink",
    "RosterRequirement",
    "RunStatus",
    "ShortfallReason",
    "SimulationBatch",
    "SimulationError",
    "SimulationResult",
    "SlotAssignment",
    "StackingRule",
    "compile_context",
    "objective_scores",
    "optimize_and_simulate",
    "summarize",
]
