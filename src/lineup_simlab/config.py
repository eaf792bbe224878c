"""Configuration handling for lineup generation and simulation."""

import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

try:
    import yaml
    YAML_AVAILABLE = True
except ImportError:
    YAML_AVAILABLE = False


N_JOBS_ENV_VAR = "LINEUP_SIMLAB_N_JOBS"

DEFAULT_PERCENTILES = (0.10, 0.25, 0.50, 0.75, 0.90, 0.95, 0.99)
DEFAULT_TOP_FINISH_THRESHOLDS = (0.01, 0.10, 0.20, 0.50)

# Nested tables accepted in config files; their keys are merged into the top level.
_SECTIONS = ("generation", "simulation", "progress", "advanced")


def resolve_n_jobs(n_jobs: Optional[int]) -> int:
    """Resolve the worker count.

    ``None`` falls back to the ``LINEUP_SIMLAB_N_JOBS`` environment variable (or 1),
    ``-1`` means every CPU. The result is clamped to ``[1, cpu_count]``.
    """
    cpu_count = os.cpu_count() or 1
    if n_jobs is None:
        env_jobs = os.getenv(N_JOBS_ENV_VAR)
        if env_jobs:
            try:
                n_jobs = int(env_jobs)
            except ValueError:
                n_jobs = 1
        else:
            n_jobs = 1
    if n_jobs == -1:
        return cpu_count
    return max(1, min(int(n_jobs), cpu_count))


def _check_fractions(name: str, values: Sequence[float]) -> tuple:
    invalid = [v for v in values if not (0 <= v <= 1)]
    if invalid:
        raise ValueError(f"{name} must be in [0, 1] range. Invalid: {invalid}")
    return tuple(sorted(float(v) for v in values))


class LabConfig:
    """Configuration for lineup generation and Monte Carlo evaluation."""

    def __init__(
        self,
        n_trials: int = 10000,
        base_seed: int = 42,
        n_jobs: Optional[int] = None,
        percentiles: Optional[Sequence[float]] = None,
        top_finish_thresholds: Optional[Sequence[float]] = None,
        # Simulation
        dispersion_ratio: float = 0.25,
        simulate_correlation: bool = True,
        field_size: int = 100,
        field_pool_size: int = 250,
        trial_batch_size: int = 1000,
        # Generation
        greedy_power: float = 2.0,
        local_search_iterations: int = 25,
        restarts_per_attempt: int = 4,
        max_attempts_per_lineup: int = 50,
        # Progress
        progress_capacity: int = 256,
        **kwargs
    ):
        """Initialize configuration.

        Args:
            n_trials: Default number of simulation trials per lineup
            base_seed: Base random seed for reproducibility
            n_jobs: Worker threads (respects LINEUP_SIMLAB_N_JOBS env var, -1 for all CPUs)
            percentiles: Percentiles to report (0-1 range)
            top_finish_thresholds: Finish fractions reported as top-X% rates
            dispersion_ratio: Outcome standard deviation as a fraction of projection
            simulate_correlation: Share a per-team shock between correlated teammates
            field_size: Opponent lineups per simulated contest
            field_pool_size: Distinct opponent lineups built before sampling
            trial_batch_size: Trials between cancellation checks and progress events
            greedy_power: Exponent applied to player scores in greedy selection
            local_search_iterations: Maximum improvement passes per candidate
            restarts_per_attempt: Candidates built in parallel per attempt
            max_attempts_per_lineup: Attempts before a lineup slot is given up
            progress_capacity: Bounded size of a progress sink
            **kwargs: Additional configuration options
        """
        if n_trials <= 0:
            raise ValueError(f"n_trials must be positive, got {n_trials}")
        self.n_trials = int(n_trials)
        self.base_seed = int(base_seed)
        self.n_jobs = resolve_n_jobs(n_jobs)

        self.percentiles = _check_fractions(
            "Percentiles", DEFAULT_PERCENTILES if percentiles is None else percentiles
        )
        self.top_finish_thresholds = _check_fractions(
            "Top finish thresholds",
            DEFAULT_TOP_FINISH_THRESHOLDS if top_finish_thresholds is None else top_finish_thresholds,
        )

        if dispersion_ratio < 0:
            raise ValueError(f"dispersion_ratio must be non-negative, got {dispersion_ratio}")
        self.dispersion_ratio = float(dispersion_ratio)
        self.simulate_correlation = bool(simulate_correlation)
        if field_size < 0 or field_pool_size < 1:
            raise ValueError("field_size must be >= 0 and field_pool_size >= 1")
        self.field_size = int(field_size)
        self.field_pool_size = int(field_pool_size)
        if trial_batch_size < 1:
            raise ValueError(f"trial_batch_size must be >= 1, got {trial_batch_size}")
        self.trial_batch_size = int(trial_batch_size)

        if greedy_power < 0:
            raise ValueError(f"greedy_power must be non-negative, got {greedy_power}")
        self.greedy_power = float(greedy_power)
        if local_search_iterations < 0:
            raise ValueError("local_search_iterations must be non-negative")
        self.local_search_iterations = int(local_search_iterations)
        if restarts_per_attempt < 1 or max_attempts_per_lineup < 1:
            raise ValueError("restarts_per_attempt and max_attempts_per_lineup must be >= 1")
        self.restarts_per_attempt = int(restarts_per_attempt)
        self.max_attempts_per_lineup = int(max_attempts_per_lineup)

        if progress_capacity < 1:
            raise ValueError(f"progress_capacity must be >= 1, got {progress_capacity}")
        self.progress_capacity = int(progress_capacity)

        # Store additional options
        self.additional_options = kwargs

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "LabConfig":
        """Load configuration from a TOML or YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            LabConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If unsupported file format or invalid configuration
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == ".toml":
            with open(config_path, "rb") as f:
                config_data = tomllib.load(f)
        elif config_path.suffix.lower() in [".yaml", ".yml"]:
            if not YAML_AVAILABLE:
                raise ValueError(
                    "YAML support not available. Install with: pip install lineup-simlab[yaml]"
                )
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        else:
            raise ValueError(
                f"Unsupported configuration file format: {config_path.suffix}. "
                "Supported formats: .toml, .yaml, .yml"
            )

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "LabConfig":
        """Create configuration from a (possibly sectioned) dictionary."""
        flat = dict(config_dict)
        for section in _SECTIONS:
            nested = flat.pop(section, None)
            if isinstance(nested, dict):
                flat.update(nested)
        return cls(**flat)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "n_trials": self.n_trials,
            "base_seed": self.base_seed,
            "n_jobs": self.n_jobs,
            "percentiles": list(self.percentiles),
            "top_finish_thresholds": list(self.top_finish_thresholds),
            "dispersion_ratio": self.dispersion_ratio,
            "simulate_correlation": self.simulate_correlation,
            "field_size": self.field_size,
            "field_pool_size": self.field_pool_size,
            "trial_batch_size": self.trial_batch_size,
            "greedy_power": self.greedy_power,
            "local_search_iterations": self.local_search_iterations,
            "restarts_per_attempt": self.restarts_per_attempt,
            "max_attempts_per_lineup": self.max_attempts_per_lineup,
            "progress_capacity": self.progress_capacity,
            **self.additional_options,
        }

    def replace(self, **changes) -> "LabConfig":
        """Return a copy with some options overridden."""
        data = self.to_dict()
        data.update(changes)
        return LabConfig(**data)

    def __repr__(self) -> str:
        return (
            f"LabConfig(n_trials={self.n_trials}, base_seed={self.base_seed}, "
            f"n_jobs={self.n_jobs}, dispersion_ratio={self.dispersion_ratio}, "
            f"field_size={self.field_size})"
        )
