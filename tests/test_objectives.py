"""Tests for objective scoring."""

import numpy as np
import pytest

from lineup_simlab.constraints import compile_context
from lineup_simlab.models import Objective, OptimizationConstraints, Player
from lineup_simlab.objectives import objective_scores


def _player(pid, proj, salary=5000, ceiling=None, floor=None, ownership=0.0):
    return Player(
        player_id=pid,
        name=pid,
        team="T0",
        positions=("UTIL",),
        salary=salary,
        projected_points=proj,
        ceiling_points=ceiling,
        floor_points=floor,
        ownership=ownership,
    )


class TestObjectiveScores:
    def test_projection_is_identity(self, pool):
        """The default objective scores players by projection."""
        scores = objective_scores(pool, Objective.PROJECTION)
        assert scores == pytest.approx([p.projected_points for p in pool])

    def test_ceiling_rewards_upside(self):
        """Equal projections rank by ceiling."""
        safe = _player("safe", 20.0, ceiling=22.0)
        boom = _player("boom", 20.0, ceiling=40.0)
        scores = objective_scores([safe, boom], Objective.CEILING)
        assert scores[1] > scores[0]

    def test_floor_rewards_safety(self):
        """Equal projections rank by floor; a missing floor mirrors the ceiling."""
        steady = _player("steady", 20.0, floor=16.0)
        volatile = _player("volatile", 20.0, ceiling=35.0)
        assert volatile.floor == 5.0

        scores = objective_scores([steady, volatile], Objective.FLOOR)
        assert scores[0] > scores[1]

    def test_contrarian_prefers_low_ownership(self):
        """Low-owned players beat chalk at the same projection."""
        low = _player("low", 20.0, ownership=3.0)
        chalk = _player("chalk", 20.0, ownership=40.0)
        scores = objective_scores([low, chalk], Objective.CONTRARIAN)
        assert scores[0] > scores[1]

    def test_value_prefers_points_per_dollar(self):
        """Equal projections rank by salary under the value objective."""
        cheap = _player("cheap", 20.0, salary=4000)
        pricey = _player("pricey", 20.0, salary=8000)
        scores = objective_scores([cheap, pricey], Objective.VALUE)
        assert scores[0] > scores[1]

    @pytest.mark.parametrize("objective", list(Objective))
    def test_scores_non_negative(self, pool, objective):
        """Every objective yields one non-negative score per player."""
        scores = objective_scores(pool, objective)
        assert scores.shape == (len(pool),)
        assert np.all(scores >= 0)

    def test_objective_from_string(self, pool, contest):
        """Constraints accept the objective by name and the context carries its scores."""
        constraints = OptimizationConstraints(objective="balanced")
        assert constraints.objective is Objective.BALANCED

        context = compile_context(pool, contest, constraints)
        assert context.scores == pytest.approx(objective_scores(pool, Objective.BALANCED))
        assert context.projections == pytest.approx([p.projected_points for p in pool])
