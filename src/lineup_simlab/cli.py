"""Command Line Interface for Lineup SimLab."""

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from . import __version__
from .config import LabConfig
from .errors import Infeasible, LabError
from .io import get_salary_cap, load_player_pool, save_outputs
from .models import ROSTER_PRESETS, ContestDescriptor, ContestFormat, Objective, OptimizationConstraints
from .pipeline import optimize_and_simulate
from .progress import CancellationToken, Deadline, ProgressEvent, ProgressSink

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INFEASIBLE = 2


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    Args:
        verbose: Enable verbose logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


class TqdmProgressSink(ProgressSink):
    """Progress sink that also drives one tqdm bar per stage."""

    def __init__(self, capacity: int = 256, disable: bool = False):
        super().__init__(capacity)
        self.disable = disable
        self._bars: Dict[str, tqdm] = {}
        self._bar_lock = threading.Lock()

    def publish(self, event: ProgressEvent) -> None:
        super().publish(event)
        # Workers publish concurrently; events may arrive out of order.
        with self._bar_lock:
            bar = self._bars.get(event.stage)
            if bar is None:
                bar = tqdm(total=event.total, desc=event.stage.capitalize(), disable=self.disable)
                self._bars[event.stage] = bar
            delta = event.completed - bar.n
            if delta > 0:
                bar.update(delta)

    def close(self) -> None:
        with self._bar_lock:
            for bar in self._bars.values():
                bar.close()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="DFS lineup generation and Monte Carlo contest simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate 20 DraftKings NFL lineups and simulate them
  lineup-simlab --input players.csv --output results/ --num-lineups 20

  # Lock a player, require 3 unique players between lineups, 60s budget
  lineup-simlab -i players.csv --lock QB_1 --min-distinct 3 --time-budget 60

  # Generate sample config
  lineup-simlab --generate-config sample_config.toml
        """
    )

    # Input/Output
    parser.add_argument("--input", "-i", type=Path, help="Input CSV file with the player pool")
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("simlab_output"),
        help="Output directory for results (default: simlab_output)"
    )

    # Configuration
    parser.add_argument("--config", "-c", type=Path, help="Configuration file (TOML or YAML)")

    # Contest
    parser.add_argument(
        "--preset",
        choices=sorted(ROSTER_PRESETS),
        default="draftkings_nfl",
        help="Roster preset (default: draftkings_nfl)"
    )
    parser.add_argument("--salary-cap", type=int, help="Salary cap (default: preset cap)")
    parser.add_argument(
        "--contest-format",
        choices=[f.value for f in ContestFormat],
        default=ContestFormat.GPP.value,
        help="Contest format used for payouts (default: gpp)"
    )
    parser.add_argument("--entry-fee", type=float, default=0.0, help="Entry fee")
    parser.add_argument("--prize-pool", type=float, default=0.0, help="Total prize pool")
    parser.add_argument("--max-entries", type=int, default=100, help="Total contest entries")

    # Generation
    parser.add_argument("--num-lineups", "-n", type=int, default=1, help="Number of lineups")
    parser.add_argument("--min-distinct", type=int, default=1, help="Minimum distinct players between lineups")
    parser.add_argument("--lock", nargs="+", default=[], metavar="PLAYER_ID", help="Players every lineup must use")
    parser.add_argument("--exclude", nargs="+", default=[], metavar="PLAYER_ID", help="Players no lineup may use")
    parser.add_argument("--correlation", action="store_true", help="Score lineups with teammate correlation")
    parser.add_argument(
        "--objective",
        choices=[o.value for o in Objective],
        default=Objective.PROJECTION.value,
        help="Per-player score to maximise (default: projection)"
    )
    parser.add_argument(
        "--max-team-exposure",
        nargs="+",
        default=[],
        metavar="TEAM=FRACTION",
        help="Max share of lineups using each team, e.g. KC=0.5"
    )

    # Simulation parameters
    parser.add_argument("--n-trials", type=int, help="Number of simulation trials per lineup")
    parser.add_argument("--seed", type=int, help="Random seed for reproducibility")
    parser.add_argument("--n-jobs", type=int, help="Number of worker threads (-1 for all CPUs)")
    parser.add_argument("--time-budget", type=float, help="Wall-clock budget in seconds")

    # Utility commands
    parser.add_argument(
        "--generate-config",
        type=Path,
        help="Generate sample configuration file and exit"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def generate_sample_config(config_path: Path) -> None:
    """Generate a sample configuration file.

    Args:
        config_path: Path to save the configuration file
    """
    config_content = """# Lineup SimLab Configuration File

n_trials = 10000        # Monte Carlo trials per lineup
base_seed = 42          # Random seed for reproducibility
n_jobs = 1              # Worker threads (or set LINEUP_SIMLAB_N_JOBS env var, -1 for all CPUs)

percentiles = [0.1, 0.25, 0.5, 0.75, 0.9, 0.95, 0.99]
top_finish_thresholds = [0.01, 0.1, 0.2, 0.5]

[generation]
greedy_power = 2.0
local_search_iterations = 25
restarts_per_attempt = 4
max_attempts_per_lineup = 50

[simulation]
dispersion_ratio = 0.25
simulate_correlation = true
field_size = 100
field_pool_size = 250
trial_batch_size = 1000
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(config_content)

    print(f"Sample configuration generated: {config_path}")


def parse_team_limits(values: List[str]) -> Dict[str, float]:
    """Parse TEAM=FRACTION pairs from the command line."""
    limits = {}
    for value in values:
        team, sep, fraction = value.partition("=")
        if not sep or not team:
            raise ValueError(f"Expected TEAM=FRACTION, got {value!r}")
        limits[team.upper()] = float(fraction)
    return limits


def build_config(args: argparse.Namespace) -> LabConfig:
    """Load the config file (if any) and apply command line overrides."""
    config = LabConfig.from_file(args.config) if args.config else LabConfig()
    overrides = {}
    if args.n_trials is not None:
        overrides['n_trials'] = args.n_trials
    if args.seed is not None:
        overrides['base_seed'] = args.seed
    if args.n_jobs is not None:
        overrides['n_jobs'] = args.n_jobs
    return config.replace(**overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success or partial results, 1 for error, 2 for infeasible)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.generate_config:
        generate_sample_config(args.generate_config)
        return EXIT_OK

    if not args.input:
        parser.error("--input is required when not generating config")
    if not args.input.exists():
        parser.error(f"Input file does not exist: {args.input}")
    if args.config and not args.config.exists():
        parser.error(f"Config file does not exist: {args.config}")

    cancel = CancellationToken()
    sink = None
    try:
        config = build_config(args)
        logger.info(f"Configuration: {config}")

        players = load_player_pool(args.input)
        contest = ContestDescriptor(
            salary_cap=args.salary_cap or get_salary_cap(args.preset),
            roster=ROSTER_PRESETS[args.preset](),
            entry_fee=args.entry_fee,
            prize_pool=args.prize_pool,
            max_entries=args.max_entries,
            contest_format=ContestFormat(args.contest_format),
        )
        constraints = OptimizationConstraints(
            num_lineups=args.num_lineups,
            locked=frozenset(args.lock),
            excluded=frozenset(args.exclude),
            min_distinct_players=args.min_distinct,
            use_correlation=args.correlation,
            objective=Objective(args.objective),
            max_team_exposure=parse_team_limits(args.max_team_exposure),
        )
        deadline = Deadline(args.time_budget) if args.time_budget else None
        sink = TqdmProgressSink(config.progress_capacity, disable=args.no_progress)

        result = optimize_and_simulate(
            players, contest, constraints, config,
            cancel=cancel, deadline=deadline, sink=sink,
        )
        sink.close()
        sink = None

        written = save_outputs(args.output, result.generation, result.simulation)

        generation = result.generation
        print("\nRun Summary:")
        print(f"  Lineups: {generation.produced_count}/{generation.requested_count} ({generation.status.value})")
        if result.simulation is not None:
            print(f"  Trials per lineup: {result.simulation.requested_trials}")
            print(f"  Simulation status: {result.simulation.status.value}")
        print(f"  Seed used: {config.base_seed}")
        print("  Files generated:")
        for path in written.values():
            print(f"    - {path}")
        return EXIT_OK

    except Infeasible as e:
        logger.error(f"Infeasible request: {e}")
        return EXIT_INFEASIBLE
    except KeyboardInterrupt:
        cancel.cancel()
        logger.info("Run interrupted by user")
        return EXIT_ERROR
    except (LabError, ValueError, FileNotFoundError) as e:
        logger.error(f"Run failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return EXIT_ERROR
    finally:
        if sink is not None:
            sink.close()


if __name__ == "__main__":
    sys.exit(main())
