#!/usr/bin/env python3
"""Quickstart example for Lineup SimLab.

Generates a handful of diverse lineups from a toy golf slate, simulates
them against a synthetic field, and prints the results.
"""

from lineup_simlab import (
    ContestDescriptor,
    LabConfig,
    OptimizationConstraints,
    Player,
    RosterRequirement,
    optimize_and_simulate,
)


def build_pool():
    """Fourteen golfers, salary rising with projection."""
    return [
        Player(
            player_id=f"G{i:02d}",
            name=f"Golfer {i}",
            team=f"G{i:02d}",
            positions=("G",),
            salary=6000 + 250 * i,
            projected_points=45.0 + 3.0 * i,
            ceiling_points=70.0 + 4.0 * i,
            ownership=4.0 + 1.5 * i,
        )
        for i in range(14)
    ]


def main() -> None:
    """Run a small generate-then-simulate example."""
    print("Lineup SimLab Quickstart Example")
    print("=" * 40)

    contest = ContestDescriptor(
        salary_cap=50000,
        roster=RosterRequirement.golf(),
        entry_fee=5.0,
        max_entries=50,
    )
    constraints = OptimizationConstraints(num_lineups=5, min_distinct_players=2)
    config = LabConfig(n_trials=2000, base_seed=42, n_jobs=1, field_size=49)

    result = optimize_and_simulate(build_pool(), contest, constraints, config)

    generation = result.generation
    print(f"Generated {generation.produced_count}/{generation.requested_count} lineups "
          f"({generation.status.value})")
    print("-" * 60)

    by_id = result.simulation.by_lineup() if result.simulation else {}
    for lineup in generation.lineups:
        names = ", ".join(p.name for p in lineup.players)
        print(f"{lineup.lineup_id} | ${lineup.total_salary} | proj {lineup.projected_points:6.1f}")
        print(f"{'':15} | {names}")
        stats = by_id.get(lineup.lineup_id)
        if stats is not None:
            print(
                f"{'':15} | Mean: {stats.mean:6.2f} | Std: {stats.std:6.2f} | "
                f"Cash: {stats.cash_probability:.1%} | ROI: {stats.roi:+.2f}"
            )
        print()

    assert generation.produced_count == constraints.num_lineups, "Wrong number of lineups"
    print("Quickstart completed successfully!")


if __name__ == "__main__":
    main()
