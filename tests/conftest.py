"""Shared fixtures: a small generic pool and contest."""

import pytest

from lineup_simlab import (
    ContestDescriptor,
    LabConfig,
    OptimizationConstraints,
    Player,
    RosterRequirement,
)


def make_pool(n_players: int = 20, n_teams: int = 4):
    """Players P00..P19: salary 5000-9750, projection rising with salary."""
    players = []
    for i in range(n_players):
        team = f"T{i % n_teams}"
        opponent = f"T{(i % n_teams) ^ 1}"
        players.append(
            Player(
                player_id=f"P{i:02d}",
                name=f"Player {i}",
                team=team,
                positions=("UTIL",),
                salary=5000 + 250 * i,
                projected_points=10.0 + 0.8 * i,
                ceiling_points=15.0 + 1.2 * i,
                ownership=5.0 + i,
                opponent=opponent,
            )
        )
    return players


@pytest.fixture
def pool():
    return make_pool()


@pytest.fixture
def contest():
    return ContestDescriptor(
        salary_cap=50000,
        roster=RosterRequirement.uniform("UTIL", 6),
        entry_fee=10.0,
        prize_pool=900.0,
        max_entries=100,
    )


@pytest.fixture
def fast_config():
    return LabConfig(
        n_trials=500,
        base_seed=7,
        n_jobs=1,
        field_size=20,
        field_pool_size=40,
        trial_batch_size=100,
        local_search_iterations=10,
        restarts_per_attempt=2,
        max_attempts_per_lineup=20,
    )


@pytest.fixture
def ten_lineups():
    return OptimizationConstraints(num_lineups=10, min_distinct_players=2)
